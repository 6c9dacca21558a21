"""Tests for unirel.core.structured helpers."""

from unirel.core.structured import (
    as_obj_list,
    as_str_dict,
    get_bool,
    get_int,
    get_raw_str,
    get_str,
    get_str_list,
    get_table,
    is_str_dict,
)


def test_is_str_dict() -> None:
    assert is_str_dict({"a": 1})
    assert not is_str_dict({1: "a"})
    assert not is_str_dict(["a"])


def test_as_helpers() -> None:
    assert as_str_dict({"a": 1}) == {"a": 1}
    assert as_str_dict("x") is None
    assert as_obj_list([1, "a"]) == [1, "a"]
    assert as_obj_list({"a": 1}) is None


def test_get_str_strips_and_rejects_empty() -> None:
    table = {"name": "  core ", "blank": "  ", "n": 3}
    assert get_str(table, "name") == "core"
    assert get_str(table, "blank") is None
    assert get_str(table, "n") is None
    assert get_raw_str(table, "name") == "  core "


def test_get_int_rejects_bool() -> None:
    assert get_int({"n": 5}, "n") == 5
    assert get_int({"n": True}, "n") is None
    assert get_bool({"b": False}, "b") is False
    assert get_bool({"b": 0}, "b") is None


def test_get_table_and_lists() -> None:
    table: dict[str, object] = {"t": {"k": "v"}, "labels": ["a", "b"], "mixed": ["a", 1]}
    assert get_table(table, "t") == {"k": "v"}
    assert get_table(table, "labels") is None
    assert get_str_list(table, "labels") == ["a", "b"]
    assert get_str_list(table, "mixed") is None
    assert get_str_list(table, "missing") is None
