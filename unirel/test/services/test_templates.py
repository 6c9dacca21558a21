"""Tests for template rendering and tag matching."""

from unirel.services.release.templates import render, template_regex


class TestRender:
    def test_substitutes(self) -> None:
        assert render("v{{ version }}", {"version": "1.2.3"}) == "v1.2.3"
        assert render("{{version}}-{{ package }}", {"version": 1, "package": "core"}) == "1-core"

    def test_unknown_variable_is_empty(self) -> None:
        assert render("release {{ nope }}!", {}) == "release !"

    def test_plain_text_untouched(self) -> None:
        assert render("no vars {here}", {"here": "x"}) == "no vars {here}"


class TestTemplateRegex:
    def test_captures_version(self) -> None:
        m = template_regex("v{{ version }}", "version").match("v1.2.3")
        assert m is not None
        assert m.group("version") == "1.2.3"

    def test_other_variables_match_anything(self) -> None:
        m = template_regex("{{ package }}-v{{ version }}", "version").match("core-v1.0.0")
        assert m is not None
        assert m.group("version") == "1.0.0"

    def test_literal_text_is_escaped(self) -> None:
        pattern = template_regex("release.{{ version }}", "version")
        assert pattern.match("release.1.0.0") is not None
        assert pattern.match("releaseX1.0.0") is None

    def test_no_match(self) -> None:
        assert template_regex("v{{ version }}", "version").match("1.0.0") is None
