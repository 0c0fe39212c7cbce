"""MIME type resolution for resource contents."""

import mimetypes
import re

DEFAULT_MIME_TYPE = "application/json"

# Extensions the platform mimetypes table misses or maps to something unhelpful
# (".ts" is MPEG transport stream there).
MIME_OVERRIDES = {
    ".txt": "text/plain",
    ".log": "text/plain",
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".csv": "text/csv",
    ".json": "application/json",
    ".yaml": "application/x-yaml",
    ".yml": "application/x-yaml",
    ".toml": "application/toml",
    ".ini": "text/plain",
    ".conf": "text/plain",
    ".env": "text/plain",
    ".js": "text/javascript",
    ".mjs": "text/javascript",
    ".jsx": "text/javascript",
    ".ts": "text/typescript",
    ".tsx": "text/typescript",
    ".py": "text/x-python",
    ".rs": "text/x-rust",
    ".go": "text/x-go",
    ".sh": "text/x-shellscript",
    ".sql": "text/x-sql",
    ".svg": "image/svg+xml",
    ".webp": "image/webp",
}

BINARY_MIME_TYPES = {"application/octet-stream", "application/pdf"}
BINARY_MIME_PREFIXES = ("image/", "audio/", "video/")

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")


def extract_extension(uri: str) -> str | None:
    """Return the lowercase extension (with dot) of the URI's last path segment.

    The authority part of ``scheme://authority/path`` is never sniffed, so
    ``https://example.com`` has no extension.
    """
    path = uri.split("?", 1)[0].split("#", 1)[0]
    if _SCHEME_RE.match(path):
        path = _SCHEME_RE.sub("", path, count=1)
        if "/" not in path:
            return None
        path = path.split("/", 1)[1]
    name = path.rsplit("/", 1)[-1]
    dot = name.rfind(".")
    if dot < 0 or dot == len(name) - 1:
        return None
    return name[dot:].lower()


def detect_mime_type(uri: str) -> str | None:
    """Guess a MIME type from the URI's file extension."""
    extension = extract_extension(uri)
    if extension is None:
        return None
    if extension in MIME_OVERRIDES:
        return MIME_OVERRIDES[extension]
    mime_type, _ = mimetypes.guess_type(f"file{extension}", strict=False)
    return mime_type


def resolve_mime_type(
    uri: str,
    provided: str | None = None,
    default: str = DEFAULT_MIME_TYPE,
) -> str:
    """Resolve the effective MIME type: provided, then sniffed, then default."""
    if provided:
        return provided
    return detect_mime_type(uri) or default


def is_binary_mime_type(mime_type: str) -> bool:
    """Check whether contents of this MIME type travel as a base64 blob."""
    mime_type = mime_type.split(";", 1)[0].strip().lower()
    return mime_type in BINARY_MIME_TYPES or mime_type.startswith(BINARY_MIME_PREFIXES)
