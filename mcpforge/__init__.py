"""mcpforge - an MCP server runtime for tools, resources and prompts."""

__version__ = "1.0.0"
