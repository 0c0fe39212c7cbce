"""Calculator provider: arithmetic tools and a prompt that drives them."""

import math

from mcpforge.mcp.errors import ErrorKind, Failure
from mcpforge.mcp.schema import ParamSpec
from mcpforge.mcp.server import MCPServer, require

OPERATIONS = ("add", "subtract", "multiply", "divide", "power", "sqrt")


def _number(value: float) -> int | float:
    # 6 / 3 reads as "2", not "2.0"
    if isinstance(value, float) and value.is_integer() and abs(value) < 2**53:
        return int(value)
    return value


def add(a: float, b: float) -> int | float:
    return _number(a + b)


def subtract(a: float, b: float) -> int | float:
    return _number(a - b)


def multiply(a: float, b: float) -> int | float:
    return _number(a * b)


def divide(a: float, b: float) -> int | float | Failure:
    if b == 0:
        return Failure(ErrorKind.INTERNAL_ERROR, "Cannot divide by zero")
    return _number(a / b)


def power(base: float, exponent: float) -> int | float | Failure:
    try:
        return _number(math.pow(base, exponent))
    except (OverflowError, ValueError) as e:
        return Failure(ErrorKind.INTERNAL_ERROR, f"Cannot raise {base} to {exponent}: {e}")


def sqrt(n: float) -> int | float | Failure:
    if n < 0:
        return Failure(ErrorKind.INTERNAL_ERROR, "Cannot calculate square root of negative number")
    return _number(math.sqrt(n))


def calculate_prompt(operation: str, a: str | None = None, b: str | None = None) -> str:
    """Ask the model to work an operation through the calculator tools."""
    operands = ", ".join(value for value in (a, b) if value is not None)
    if operands:
        return (
            f"Use the '{operation}' tool with the operands {operands} "
            "and explain the result step by step."
        )
    return f"Pick suitable operands, use the '{operation}' tool and explain the result."


def _pair(first: str, second: str) -> list[ParamSpec]:
    return [
        ParamSpec(name="a", type="number", description=first),
        ParamSpec(name="b", type="number", description=second),
    ]


def register_tools(server: MCPServer) -> None:
    """Register the calculator tools and prompt."""
    for name, handler, description, first, second in (
        ("add", add, "Adds two numbers together", "First number to add", "Second number to add"),
        ("subtract", subtract, "Subtracts the second number from the first",
         "Number to subtract from", "Number to subtract"),
        ("multiply", multiply, "Multiplies two numbers", "First number", "Second number"),
        ("divide", divide, "Divides the first number by the second",
         "Dividend (number to be divided)", "Divisor (number to divide by)"),
    ):
        require(server.add_tool(name, handler, description, _pair(first, second)))
    require(
        server.add_tool(
            "power",
            power,
            "Raises a number to a power",
            [
                ParamSpec(name="base", type="number", description="Base number"),
                ParamSpec(name="exponent", type="number", description="Exponent"),
            ],
        )
    )
    require(
        server.add_tool(
            "sqrt",
            sqrt,
            "Calculates the square root of a number",
            [ParamSpec(name="n", type="number", description="Number to find square root of")],
        )
    )

    require(
        server.add_prompt(
            "calculate",
            calculate_prompt,
            description="Work through an arithmetic operation with the calculator tools",
            params=[
                ParamSpec(
                    name="operation",
                    type="string",
                    description="Operation to perform",
                    choices=OPERATIONS,
                ),
                ParamSpec(name="a", type="string", required=False, description="First operand"),
                ParamSpec(name="b", type="string", required=False, description="Second operand"),
            ],
        )
    )
