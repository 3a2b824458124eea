import json

import pytest

from study_core.domain.cheatsheet import (
    CHEAT_SHEET_JSON_SCHEMA,
    CheatSheet,
    cheat_sheet_to_markdown,
    parse_cheat_sheet,
)
from study_core.domain.exceptions import SchemaMismatch


def test_parse_keeps_every_field(cheat_sheet_payload):
    doc = parse_cheat_sheet(json.dumps(cheat_sheet_payload))
    assert doc.model_dump() == cheat_sheet_payload
    assert doc.formulas[0].note is None
    assert doc.sections[1].bullets == []


def test_empty_lists_and_null_note_survive_serialization():
    payload = {
        "title": "Empty",
        "overview": "",
        "sections": [],
        "formulas": [{"name": "f", "expression": "x", "note": None}],
        "common_mistakes": [],
        "mini_examples": [],
        "practice": [],
    }
    doc = CheatSheet.model_validate(payload)
    again = parse_cheat_sheet(doc.model_dump_json())
    assert again.model_dump() == payload
    assert "note" in again.model_dump()["formulas"][0]


@pytest.mark.parametrize("field", ["title", "sections", "practice", "common_mistakes"])
def test_missing_mandatory_field_is_rejected(cheat_sheet_payload, field):
    cheat_sheet_payload.pop(field)
    with pytest.raises(SchemaMismatch):
        parse_cheat_sheet(cheat_sheet_payload)


def test_missing_note_is_rejected(cheat_sheet_payload):
    del cheat_sheet_payload["formulas"][0]["note"]
    with pytest.raises(SchemaMismatch):
        parse_cheat_sheet(cheat_sheet_payload)


def test_unknown_field_and_bad_json_are_rejected(cheat_sheet_payload):
    cheat_sheet_payload["extra"] = "nope"
    with pytest.raises(SchemaMismatch):
        parse_cheat_sheet(cheat_sheet_payload)
    with pytest.raises(SchemaMismatch):
        parse_cheat_sheet("{not json")
    with pytest.raises(SchemaMismatch):
        parse_cheat_sheet("[]")
    with pytest.raises(SchemaMismatch):
        parse_cheat_sheet(None)


def test_json_schema_requires_every_property():
    assert set(CHEAT_SHEET_JSON_SCHEMA["required"]) == set(CheatSheet.model_fields)
    formula = CHEAT_SHEET_JSON_SCHEMA["properties"]["formulas"]["items"]
    assert formula["required"] == ["name", "expression", "note"]
    assert formula["additionalProperties"] is False


def test_markdown_rendering(cheat_sheet_payload):
    text = cheat_sheet_to_markdown(CheatSheet.model_validate(cheat_sheet_payload))
    assert text.startswith("# Derivatives")
    assert "## Rules" in text
    assert "(order does not matter)" in text
    assert "Answer: 3x^2" in text
