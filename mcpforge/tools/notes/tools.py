"""Notes provider: subscribable in-memory resources managed through tools."""

import datetime

from mcpforge.mcp.errors import ErrorKind, Failure
from mcpforge.mcp.models import PromptMessage, TextContent
from mcpforge.mcp.schema import ParamSpec
from mcpforge.mcp.server import MCPServer, require
from mcpforge.tools.notes.store import get_store, is_valid_name, note_uri

LOG_LEVELS = ("debug", "info", "warning", "error")
REVIEW_FOCUS = ("bugs", "performance", "readability", "security")
WELCOME_NOTE = "welcome"


def _note_reader(name: str):
    def read_note() -> str | Failure:
        note = get_store().get(name)
        if note is None:
            return Failure(ErrorKind.RESOURCE_NOT_FOUND, f"Note deleted: {name}", {"uri": note_uri(name)})
        return note.text

    read_note.__name__ = f"read_note_{name}"
    return read_note


def _add_note_resource(server: MCPServer, name: str):
    return server.add_resource(
        uri=note_uri(name),
        name=name,
        description=f"Note '{name}'",
        mime_type="text/plain",
        subscribable=True,
        handler=_note_reader(name),
    )


def read_logs(date: str, level: str) -> str | Failure:
    """Serve logs://{date}/{level} with a synthetic log excerpt."""
    try:
        day = datetime.date.fromisoformat(date)
    except ValueError:
        return Failure(ErrorKind.RESOURCE_NOT_FOUND, f"Invalid log date: {date}")
    if level.lower() not in LOG_LEVELS:
        return Failure(ErrorKind.RESOURCE_NOT_FOUND, f"Unknown log level: {level}")

    tag = level.upper()
    return "\n".join(
        f"{day.isoformat()}T{hour:02d}:00:00Z {tag} scheduled check {hour // 6 + 1} completed"
        for hour in range(0, 24, 6)
    )


def complete_logs(argument: str, value: str) -> list[str]:
    if argument == "level":
        return [level for level in LOG_LEVELS if level.startswith(value.lower())]
    if argument == "date":
        today = datetime.date.today().isoformat()
        return [today] if today.startswith(value) else []
    return []


def read_note_markdown(name: str) -> str | Failure:
    """Serve notes:///{name}.md, the note rendered as a markdown document."""
    note = get_store().get(name)
    if note is None:
        return Failure(ErrorKind.RESOURCE_NOT_FOUND, f"Note not found: {name}")
    return f"# {note.name}\n\n{note.text}\n"


def complete_note_names(argument: str, value: str) -> list[str]:
    return [name for name in get_store().names() if name.startswith(value)]


def review_prompt(language: str, focus: str | None = None) -> list[PromptMessage]:
    """Build the review/{language} prompt."""
    instruction = f"You are reviewing {language} code."
    if focus:
        instruction += f" Concentrate on {focus}."
    return [
        PromptMessage(role="assistant", content=TextContent(text=instruction)),
        PromptMessage(
            role="user",
            content=TextContent(text=f"Review the following {language} code and list concrete issues."),
        ),
    ]


def register_tools(server: MCPServer) -> None:
    """Register the notes resources, tools and prompts."""
    store = get_store()
    if store.get(WELCOME_NOTE) is None:
        store.put(WELCOME_NOTE, "Notes live in memory. Use note-write to change this one.")
    for name in store.names():
        require(_add_note_resource(server, name))

    async def note_write(name: str, text: str) -> str | Failure:
        if store.get(name) is None:
            return Failure(ErrorKind.RESOURCE_NOT_FOUND, f"Note not found: {name}", {"uri": note_uri(name)})
        store.put(name, text)
        outcome = await server.notify_resource_updated(note_uri(name))
        if not outcome.ok:
            return outcome
        return f"Updated {note_uri(name)}"

    async def note_create(name: str, text: str | None = None) -> str | Failure:
        if not is_valid_name(name):
            return Failure(ErrorKind.INVALID_PARAMS, f"Invalid note name: {name}")
        outcome = _add_note_resource(server, name)
        if not outcome.ok:
            return outcome
        store.put(name, text or "")
        return f"Created {note_uri(name)}"

    async def note_delete(name: str) -> str | Failure:
        outcome = server.remove_resource(note_uri(name))
        if not outcome.ok:
            return outcome
        store.delete(name)
        return f"Deleted {note_uri(name)}"

    async def notes_touch_all() -> str | Failure:
        uris = [note_uri(name) for name in store.names()]
        outcome = await server.notify_multiple(uris)
        if not outcome.ok:
            return outcome
        return f"Notified {len(uris)} notes"

    name_param = ParamSpec(name="name", type="string", description="Note name (letters, digits, '.', '_', '-')")

    require(
        server.add_tool(
            name="note-write",
            description="Replace the text of an existing note and notify its subscribers.",
            params=[name_param, ParamSpec(name="text", type="string", description="New note text")],
            handler=note_write,
        )
    )
    require(
        server.add_tool(
            name="note-create",
            description="Create a new subscribable note resource.",
            params=[
                name_param,
                ParamSpec(name="text", type="string", required=False, description="Initial text"),
            ],
            handler=note_create,
        )
    )
    require(
        server.add_tool(
            name="note-delete",
            description="Delete a note and unregister its resource.",
            params=[name_param],
            handler=note_delete,
        )
    )
    require(
        server.add_tool(
            name="notes-touch-all",
            description="Send an update notification for every note.",
            handler=notes_touch_all,
        )
    )

    require(
        server.add_resource_template(
            uri_template="logs://{date}/{level}",
            name="Daily logs",
            description="Log excerpt for a day (YYYY-MM-DD) and level (debug, info, warning, error).",
            mime_type="text/plain",
            handler=read_logs,
            completer=complete_logs,
        )
    )
    require(
        server.add_resource_template(
            uri_template="notes:///{name}.md",
            name="Notes as markdown",
            description="A note rendered as a markdown document.",
            mime_type="text/markdown",
            handler=read_note_markdown,
            completer=complete_note_names,
        )
    )

    require(
        server.add_prompt_template(
            name_template="review/{language}",
            description="Code review prompt for a programming language.",
            params=[
                ParamSpec(
                    name="focus",
                    type="string",
                    required=False,
                    description="What the review should concentrate on",
                    choices=REVIEW_FOCUS,
                )
            ],
            handler=review_prompt,
        )
    )
