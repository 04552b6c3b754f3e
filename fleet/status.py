"""
AOF Stagger — INFO persistence Parser

Turns the newline-delimited `key:value` report returned by
`INFO persistence` into a PersistenceSnapshot. Pure, no I/O.

Recognized keys (everything else is ignored so newer Redis versions
that add fields keep working):

    rdb_bgsave_in_progress          bool
    rdb_current_bgsave_time_sec     int
    aof_enabled                     bool
    aof_rewrite_in_progress         bool
    aof_rewrite_scheduled           bool
    aof_current_rewrite_time_sec    int
    aof_current_size                int
    aof_base_size                   int
"""

from __future__ import annotations

import re
from typing import Any, Callable

from fleet.types import ParseError, PersistenceSnapshot

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

_TRUE_LITERALS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_LITERALS = frozenset({"0", "f", "F", "FALSE", "false", "False"})
_INT_RE = re.compile(r"[+-]?[0-9]+")


def parse_bool(raw: str) -> bool:
    if raw in _TRUE_LITERALS:
        return True
    if raw in _FALSE_LITERALS:
        return False
    raise ValueError(f"invalid boolean literal {raw!r}")


def parse_int64(raw: str) -> int:
    if not _INT_RE.fullmatch(raw):
        raise ValueError(f"invalid integer literal {raw!r}")
    value = int(raw)
    if value < INT64_MIN or value > INT64_MAX:
        raise ValueError(f"integer out of range {raw!r}")
    return value


# status key → (snapshot field, value parser)
STATUS_FIELDS: dict[str, tuple[str, Callable[[str], Any]]] = {
    "rdb_bgsave_in_progress": ("bgsave_in_progress", parse_bool),
    "rdb_current_bgsave_time_sec": ("bgsave_elapsed_seconds", parse_int64),
    "aof_enabled": ("rewrite_enabled", parse_bool),
    "aof_rewrite_in_progress": ("rewrite_in_progress", parse_bool),
    "aof_rewrite_scheduled": ("rewrite_scheduled", parse_bool),
    "aof_current_rewrite_time_sec": ("rewrite_elapsed_seconds", parse_int64),
    "aof_current_size": ("current_log_size", parse_int64),
    "aof_base_size": ("base_log_size", parse_int64),
}


def apply_status_line(fields: dict[str, Any], line: str) -> None:
    """
    Update a field mapping from one report line.

    Lines without a colon (blank lines, `# Persistence` headers) are
    skipped. Only the text between the first and second colon is taken
    as the value.

    Raises:
        ParseError: recognized key with a malformed value
    """
    parts = line.strip().split(":")
    if len(parts) < 2:
        return
    key, raw_value = parts[0], parts[1]
    entry = STATUS_FIELDS.get(key)
    if entry is None:
        return
    field_name, parser = entry
    try:
        fields[field_name] = parser(raw_value)
    except ValueError:
        raise ParseError(key, raw_value) from None


def parse_status(text: str) -> PersistenceSnapshot:
    """
    Parse a full INFO persistence report.

    Raises:
        ParseError: the report is unusable for this poll
    """
    fields: dict[str, Any] = {}
    for line in text.strip().split("\n"):
        apply_status_line(fields, line)
    return PersistenceSnapshot(**fields)
