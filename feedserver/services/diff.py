from __future__ import annotations

from collections.abc import Mapping
from typing import Any

class _Absent:
    __slots__ = ()

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False

# Stands for the missing side of a key in a descriptor; distinct from None (JSON null)
ABSENT = _Absent()

def _kind(value: Any) -> str:
    # bool first: True == 1 in Python, but a flag never equals a number here
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if value is None:
        return "null"
    if isinstance(value, Mapping):
        return "record"
    if isinstance(value, (list, tuple)):
        return "list"
    return type(value).__name__

def _entries(value: Any, kind: str) -> Mapping:
    return value if kind == "record" else dict(enumerate(value))

def deep_equal(a: Any, b: Any) -> bool:
    kind = _kind(a)
    if kind != _kind(b):
        return False
    if kind == "record":
        return a.keys() == b.keys() and all(deep_equal(a[k], b[k]) for k in a)
    if kind == "list":
        return len(a) == len(b) and all(deep_equal(x, y) for x, y in zip(a, b))
    return a == b

def diff(a: Any, b: Any) -> bool | dict[Any, tuple[Any, Any]]:
    """Compare two JSON-like values.

    Returns ``False`` when they are deeply equal and ``True`` when their
    types differ or they are two different scalars. Two records or two lists
    give a one-level descriptor: every differing key (list index for lists)
    maps to an ``(old, new)`` pair holding the whole values at that key, with
    ``ABSENT`` for a side that lacks it.
    """
    if deep_equal(a, b):
        return False

    kind = _kind(a)
    if kind != _kind(b) or kind not in ("record", "list"):
        return True

    old, new = _entries(a, kind), _entries(b, kind)
    descr: dict[Any, tuple[Any, Any]] = {}
    for key, value in old.items():
        if key not in new:
            descr[key] = (value, ABSENT)
        elif diff(value, new[key]) is not False:
            descr[key] = (value, new[key])
    for key, value in new.items():
        if key not in old:
            descr[key] = (ABSENT, value)
    return descr
