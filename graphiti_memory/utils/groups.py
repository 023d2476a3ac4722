"""Group identifier derivation and message text helpers."""

import getpass
import os
import re
from collections.abc import Iterable
from pathlib import Path

from ..core.schemas import MessagePart

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def _project_name(directory: str | None) -> str:
    name = Path(directory or os.getcwd()).name.strip()
    return name or "default"


def _user_name() -> str | None:
    try:
        name = getpass.getuser().strip()
    except (KeyError, OSError):
        name = Path.home().name.strip()
    return name or None


def _prefixed(prefix: str | None, rest: str) -> str:
    raw = f"{prefix}-{rest}" if prefix else rest
    return _UNSAFE_CHARS.sub("_", raw)


def make_group_id(prefix: str | None = None, directory: str | None = None) -> str:
    """Build a sanitized project group ID from a prefix and project directory."""
    return _prefixed(prefix, f"{_project_name(directory)}__main")


def make_user_group_id(
    prefix: str | None = None,
    directory: str | None = None,
    user: str | None = None,
) -> str:
    """Build a sanitized user-scoped group ID from a prefix, project directory and user name."""
    user = user or _user_name()
    return _prefixed(prefix, f"{_project_name(directory)}__user-{user}")


def extract_text_from_parts(parts: Iterable[MessagePart]) -> str:
    """Join the text of non-synthetic text parts."""
    return " ".join(part.text for part in parts if part.is_plain_text and part.text).strip()
