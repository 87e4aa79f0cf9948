"""Shell command rendering for commands executed inside a sandbox.

Sandboxes accept a single shell string, so argument vectors are rendered by
wrapping every argument in double quotes.  Inside POSIX double quotes only
backslash, double quote, dollar and backtick keep a special meaning; each of
them is escaped with a backslash (``ESCAPED_CHARACTERS``).  Everything else,
including newlines, ``;``, ``&&`` and ``|``, is inert inside the quotes.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

__all__ = [
    "ESCAPED_CHARACTERS",
    "quote_argument",
    "render_command",
    "unquote_argument",
]

ESCAPED_CHARACTERS = frozenset('\\"$`')

_ESCAPE_PATTERN = re.compile(r'([\\"$`])')


def quote_argument(value: str) -> str:
    """Return *value* as one double-quoted shell word."""
    return '"' + _ESCAPE_PATTERN.sub(r"\\\1", value) + '"'


def unquote_argument(quoted: str) -> str:
    """Invert ``quote_argument``.

    Raises:
        ValueError: If *quoted* is not a single double-quoted word as produced
            by ``quote_argument``.
    """
    if len(quoted) < 2 or quoted[0] != '"' or quoted[-1] != '"':
        raise ValueError("argument must be wrapped in double quotes")
    body = quoted[1:-1]
    chars: list[str] = []
    idx = 0
    while idx < len(body):
        char = body[idx]
        if char == "\\":
            if idx + 1 >= len(body):
                raise ValueError("argument ends with a dangling backslash")
            following = body[idx + 1]
            if following in ESCAPED_CHARACTERS:
                chars.append(following)
                idx += 2
                continue
        elif char in ESCAPED_CHARACTERS:
            raise ValueError(f"unescaped {char!r} inside quoted argument")
        chars.append(char)
        idx += 1
    return "".join(chars)


def render_command(argv: Sequence[str], *, cwd: str | None = None) -> str:
    """Render *argv* as a shell command, optionally changing into *cwd* first."""
    if not argv:
        raise ValueError("argv must contain at least the program name")
    command = " ".join(quote_argument(arg) for arg in argv)
    if cwd is None:
        return command
    return f"cd {quote_argument(cwd)} && {command}"
