"""Tests for project norm parsing and normalization."""

from __future__ import annotations

from secudo.norms import (
    DEFAULT_NORM,
    normalize_selectable_project_norms,
    parse_project_norms,
    serialize_project_norms,
)


def test_parse_splits_and_dedupes():
    assert parse_project_norms("IEC 62443 | ISO 27001 | IEC 62443") == ["IEC 62443", "ISO 27001"]


def test_parse_blank():
    assert parse_project_norms(None) == []
    assert parse_project_norms("   ") == []


def test_normalize_drops_unknown():
    assert normalize_selectable_project_norms(["ISO 27001", "SOC 2"]) == ["ISO 27001"]


def test_normalize_defaults_when_nothing_known():
    assert normalize_selectable_project_norms(["SOC 2"]) == [DEFAULT_NORM]
    assert normalize_selectable_project_norms(None) == [DEFAULT_NORM]


def test_none_only_when_alone():
    assert normalize_selectable_project_norms(["None"]) == ["None"]
    assert normalize_selectable_project_norms(["None", "NIST CSF"]) == ["NIST CSF"]


def test_fallback_string_is_parsed():
    assert normalize_selectable_project_norms(None, "IEC 61508 | NIST CSF") == [
        "IEC 61508",
        "NIST CSF",
    ]


def test_serialize_joins_with_delimiter():
    assert serialize_project_norms(["IEC 62443", "ISO 27001"]) == "IEC 62443 | ISO 27001"
