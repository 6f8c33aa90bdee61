from app.services.extraction.canonicalizer import canonicalize
from app.services.verdict.overrides import FactOverrideTable
from app.services.verdict.types import Verdict


def _match(table: FactOverrideTable, claim: str):
    return table.match(claim, canonicalize(claim))


def test_shipped_table_loads():
    table = FactOverrideTable.load()

    assert len(table) == 8


def test_orbit_overrides_are_direction_aware():
    table = FactOverrideTable.load()

    assert _match(table, "The Earth orbits the Sun").override_id == "earth-orbits-sun"
    assert _match(table, "The Sun orbits the Earth").verdict == Verdict.FALSE


def test_canonical_field_conditions():
    table = FactOverrideTable.load()

    override = _match(table, "Tokyo is the capital of Japan")
    assert override.override_id == "tokyo-capital-japan"

    result = override.to_result()
    assert result.verdict == "true"
    assert result.confidence == 99
    assert result.sources()[0]["url"] == "https://en.wikipedia.org/wiki/Tokyo"


def test_claim_text_conditions_ignore_case_and_punctuation():
    table = FactOverrideTable.load()

    assert _match(table, "Vaccines cause autism!").override_id == "vaccines-autism"
    assert _match(table, "WATER BOILS AT 100 DEGREES CELSIUS.").override_id == "water-boils-100c"


def test_unknown_claim_has_no_override():
    assert _match(FactOverrideTable.load(), "The Eiffel Tower is in Paris") is None


def test_canonical_condition_needs_a_canonical_form():
    table = FactOverrideTable.from_rows([{"id": "x", "subject": "^tokyo$", "verdict": "true"}])

    assert table.match("Tokyo is the capital of Japan", None) is None


def test_invalid_rows_are_skipped():
    table = FactOverrideTable.from_rows(
        [
            {"id": "bad-verdict", "claim": "x", "verdict": "maybe"},
            {"id": "bad-regex", "claim": "(", "verdict": "true"},
            {"id": "no-condition", "verdict": "true"},
            {"id": "ok", "claim": "^sky is blue$", "verdict": "true", "confidence": 150},
        ]
    )

    assert len(table) == 1
    assert table.match("The sky is blue", None) is None
    assert table.match("Sky is blue.", None).confidence == 100


def test_missing_file_yields_empty_table(tmp_path):
    table = FactOverrideTable.load(str(tmp_path / "missing.json"))

    assert len(table) == 0
