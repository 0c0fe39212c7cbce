"""In-memory note storage backing the notes provider."""

import re
import threading

NOTE_URI_PREFIX = "mem://notes/"

_NAME_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


def note_uri(name: str) -> str:
    return f"{NOTE_URI_PREFIX}{name}"


def is_valid_name(name: str) -> bool:
    return bool(_NAME_RE.match(name))


class Note:
    """One named note."""

    def __init__(self, name: str, text: str):
        self.name = name
        self.text = text


class NoteStore:
    """Thread-safe name -> Note map."""

    def __init__(self) -> None:
        self._notes: dict[str, Note] = {}
        self._lock = threading.Lock()

    def get(self, name: str) -> Note | None:
        with self._lock:
            return self._notes.get(name)

    def put(self, name: str, text: str) -> Note:
        note = Note(name, text)
        with self._lock:
            self._notes[name] = note
        return note

    def delete(self, name: str) -> bool:
        with self._lock:
            return self._notes.pop(name, None) is not None

    def names(self) -> list[str]:
        with self._lock:
            return list(self._notes)


# Singleton store instance
_store: NoteStore | None = None


def get_store() -> NoteStore:
    """Get the note store instance."""
    global _store
    if _store is None:
        _store = NoteStore()
    return _store


def reset_store() -> None:
    """Reset the note store (useful for testing)."""
    global _store
    _store = None
