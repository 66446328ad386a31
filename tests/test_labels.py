"""Unit tests for label specs, identifier quoting and label consistency."""

from __future__ import annotations

import pytest

from graph_loader.labels import (
    LabelSpec,
    LabelValidationError,
    build_label_mapping,
    is_identifier,
    primary_label,
    quote_identifier,
    sanitize_label,
)


class TestPrimaryLabel:
    @pytest.mark.parametrize(
        ("spec", "expected"),
        [
            ("Person", "Person"),
            ("OS:Process", "OS"),
            ("", ""),
            (" A : B ", "A"),
            (":Tag", "Tag"),
            ("::", ""),
        ],
    )
    def test_primary_label(self, spec, expected):
        assert primary_label(spec) == expected

    def test_parse_drops_empty_parts(self):
        spec = LabelSpec.parse("A::B:")
        assert spec.labels == ("A", "B")
        assert spec.is_compound
        assert str(spec) == "A:B"

    def test_empty_spec(self):
        spec = LabelSpec.parse("")
        assert spec.primary == ""
        assert not spec.is_compound


class TestIdentifiers:
    def test_sanitize_label(self):
        assert sanitize_label("OS:Process") == "OS_Process"

    @pytest.mark.parametrize("name", ["Person", "_x", "a1"])
    def test_plain_identifiers_unquoted(self, name):
        assert is_identifier(name)
        assert quote_identifier(name) == name

    @pytest.mark.parametrize(
        ("name", "quoted"),
        [
            ("first name", "`first name`"),
            ("1st", "`1st`"),
            ("a`b", "`a``b`"),
            ("Café", "`Café`"),
        ],
    )
    def test_other_names_backticked(self, name, quoted):
        assert not is_identifier(name)
        assert quote_identifier(name) == quoted


class TestLabelMapping:
    def test_exact_match_is_identity(self):
        assert build_label_mapping(["Person"], ["Person"]) == {"Person": "Person"}

    def test_case_insensitive_match_maps_to_node_spelling(self):
        assert build_label_mapping(["Person"], ["person"]) == {"person": "Person"}

    def test_compound_spec_with_known_parts_is_valid(self):
        mapping = build_label_mapping(["OS", "Process"], ["OS:Process"])
        assert mapping == {"OS:Process": "OS:Process"}

    def test_compound_spec_respelled_to_node_labels(self):
        mapping = build_label_mapping(["OS", "Process", "Port"], ["os:process", "Port"])
        assert mapping == {"Port": "Port", "os:process": "OS:Process"}
        assert primary_label(mapping["os:process"]) == "OS"

    def test_compound_spec_with_spaces_respelled(self):
        mapping = build_label_mapping(["OS", "Process"], [" os : Process "])
        assert mapping == {" os : Process ": "OS:Process"}

    def test_empty_edge_labels_ignored(self):
        assert build_label_mapping(["Person"], ["", "Person"]) == {"Person": "Person"}

    def test_missing_label_raises(self):
        with pytest.raises(LabelValidationError) as excinfo:
            build_label_mapping(["Person"], ["Person", "Company", "OS:Ghost"])
        assert excinfo.value.missing == ["Company", "OS:Ghost"]
        assert "Company" in str(excinfo.value)

    def test_non_strict_returns_partial_mapping(self):
        mapping = build_label_mapping(["Person"], ["person", "Company"], strict=False)
        assert mapping == {"person": "Person"}
