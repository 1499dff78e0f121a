"""Conversion between TOML string literals and their logical values.

Only the scalar forms used by the metadata file are understood: basic
strings (``"..."``), literal strings (``'...'``) and multi-line literal
strings (``'''...'''``). Anything else is passed through untouched.
"""
from __future__ import annotations

from updater.app.domain.errors import EncodingError

_ESCAPES = {
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "\\": "\\",
    '"': '"',
}

_BASIC_UNSAFE = frozenset('\\"\n\r\t')


def decode(raw: str) -> str:
    """Return the logical value of a raw TOML scalar."""
    if len(raw) >= 6 and raw.startswith("'''") and raw.endswith("'''"):
        return raw[3:-3]
    if len(raw) >= 2 and raw.startswith("'") and raw.endswith("'"):
        return raw[1:-1]
    if len(raw) >= 2 and raw.startswith('"') and raw.endswith('"'):
        return _unescape(raw[1:-1])
    return raw


def encode(value: str) -> str:
    """Return the least-escaped TOML literal that decodes back to ``value``."""
    if not any(ch in _BASIC_UNSAFE for ch in value):
        return f'"{value}"'
    if "'" not in value:
        return f"'{value}'"
    if "'''" not in value:
        return f"'''{value}'''"
    raise EncodingError(f"no TOML string literal can represent {value!r}")


def _unescape(body: str) -> str:
    out: list[str] = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\" and i + 1 < len(body) and body[i + 1] in _ESCAPES:
            out.append(_ESCAPES[body[i + 1]])
            i += 2
            continue
        # unknown escapes are kept as written
        out.append(ch)
        i += 1
    return "".join(out)
