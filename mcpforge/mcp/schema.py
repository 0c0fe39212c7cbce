"""Parameter specs, JSON-Schema generation and per-parameter validation."""

from functools import lru_cache
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from mcpforge.mcp.models import PromptArgument

# Type tags understood by the schema provider and the default validator
TYPE_TAGS: dict[str, Any] = {
    "string": str,
    "number": float,
    "integer": int,
    "boolean": bool,
    "array": list,
    "object": dict,
    "any": Any,
}


class ParamSpec(BaseModel):
    """Declared parameter of a tool or prompt."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    description: str | None = None
    type: str = "any"
    required: bool = True
    choices: tuple[str, ...] = ()
    json_schema: dict[str, Any] | None = None


# (param, value) -> error message, or None when the value is acceptable
ParamValidator = Callable[[ParamSpec, Any], str | None]


@lru_cache(maxsize=None)
def _adapter(type_tag: str) -> TypeAdapter:
    return TypeAdapter(TYPE_TAGS.get(type_tag, Any))


def param_schema(param: ParamSpec) -> dict[str, Any]:
    """JSON-Schema fragment for a single parameter."""
    if param.json_schema is not None:
        schema = dict(param.json_schema)
    else:
        schema = _adapter(param.type).json_schema()
    if param.choices:
        schema["enum"] = list(param.choices)
    if param.description:
        schema["description"] = param.description
    return schema


def generate_params_schema(params: list[ParamSpec] | tuple[ParamSpec, ...] = ()) -> dict[str, Any]:
    """Build the ``inputSchema`` object advertised by tools/list."""
    properties: dict[str, Any] = {}
    required: list[str] = []
    for param in params:
        properties[param.name] = param_schema(param)
        if param.required:
            required.append(param.name)
    return {
        "type": "object",
        "properties": properties,
        "required": required,
    }


def generate_prompt_arguments(
    params: list[ParamSpec] | tuple[ParamSpec, ...] = (),
) -> list[PromptArgument]:
    """Build the ``arguments`` list advertised by prompts/list."""
    return [
        PromptArgument(
            name=param.name,
            description=param.description,
            required=param.required,
        )
        for param in params
    ]


def validate_param(param: ParamSpec, value: Any) -> str | None:
    """Default validator: strict pydantic check against the parameter's type tag.

    ``None`` is accepted for optional parameters. The value itself is never
    coerced; callers keep passing the original.
    """
    if value is None and not param.required:
        return None
    if param.choices and value not in param.choices:
        return f"must be one of: {', '.join(param.choices)}"
    try:
        _adapter(param.type).validate_python(value, strict=True)
    except ValidationError as e:
        return e.errors()[0]["msg"]
    return None
