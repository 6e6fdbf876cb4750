"""
Record validation shared by the CLI dispatcher and the HTTP handlers.

Scope:
- non-empty name/phone checks
- id parsing (SERIAL ids are 32-bit signed integers)
- query-parameter shape for the list endpoint
"""
from __future__ import annotations

import re
from typing import Iterable, Optional, Tuple

from ..errors import ValidationError

INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1

_ID_RE = re.compile(r"[+-]?[0-9]+")


def parse_id(text: str) -> int:
    if not isinstance(text, str) or not _ID_RE.fullmatch(text):
        raise ValidationError(f"bad id: {text!r}")
    value = int(text)
    if value < INT32_MIN or value > INT32_MAX:
        raise ValidationError(f"bad id: {text!r}")
    return value


def parse_ids(texts: Iterable[str]) -> list[int]:
    return [parse_id(t) for t in texts]


def validate_fields(name: str, phone: str) -> Tuple[str, str]:
    if name == "" or phone == "":
        raise ValidationError("empty name or phone")
    return name, phone


def name_filter_from_query(pairs: Iterable[Tuple[str, str]]) -> Optional[str]:
    """
    Only `name` is accepted, at most once. Anything else is a client error.
    """
    name: Optional[str] = None
    for key, value in pairs:
        if key != "name":
            raise ValidationError("unexpected query parameters")
        if name is not None:
            raise ValidationError("passed name in query more than once")
        name = value
    return name
