"""Helpers for safely working with dynamic (untyped) structures.

Used wherever TOML config or forge JSON payloads enter the program. They
validate at runtime and narrow types for the checker.
"""

from __future__ import annotations

from typing import Mapping, TypeGuard, cast

StrDict = dict[str, object]
ObjList = list[object]


def is_str_dict(obj: object) -> TypeGuard[StrDict]:
    """Return True if obj is a dict with string keys."""
    if not isinstance(obj, dict):
        return False
    d = cast(dict[object, object], obj)
    return all(isinstance(k, str) for k in d.keys())


def as_str_dict(obj: object) -> StrDict | None:
    """Return obj as StrDict if it matches, else None."""
    if is_str_dict(obj):
        return obj
    return None


def as_obj_list(obj: object) -> ObjList | None:
    """Return obj as ObjList if it is a list, else None."""
    if isinstance(obj, list):
        return cast(ObjList, obj)
    return None


def get_str(table: Mapping[str, object], key: str) -> str | None:
    """Get a string value, stripping whitespace.

    Returns None if missing, not a str, or empty after stripping.
    """
    value = table.get(key)
    if not isinstance(value, str):
        return None
    s = value.strip()
    return s or None


def get_raw_str(table: Mapping[str, object], key: str) -> str | None:
    """Get a string value as-is (templates keep their whitespace)."""
    value = table.get(key)
    if not isinstance(value, str):
        return None
    return value


def get_int(table: Mapping[str, object], key: str) -> int | None:
    """Get an int value. Booleans are rejected."""
    value = table.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def get_bool(table: Mapping[str, object], key: str) -> bool | None:
    value = table.get(key)
    if not isinstance(value, bool):
        return None
    return value


def get_table(table: Mapping[str, object], key: str) -> StrDict | None:
    """Get a nested table (dict with string keys) from a mapping."""
    return as_str_dict(table.get(key))


def get_list(table: Mapping[str, object], key: str) -> ObjList | None:
    return as_obj_list(table.get(key))


def get_str_list(table: Mapping[str, object], key: str) -> list[str] | None:
    """Get a list of strings. Returns None if any item is not a string."""
    items = get_list(table, key)
    if items is None:
        return None
    out: list[str] = []
    for item in items:
        if not isinstance(item, str):
            return None
        out.append(item)
    return out
