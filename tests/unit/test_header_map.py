"""Unit tests for district_etl.header_map."""

from __future__ import annotations

from types import MappingProxyType

import pytest

from district_etl.header_map import (
    HEADER_SYNONYMS,
    assign_fields,
    build_synonym_table,
    header_keys,
    load_header_synonyms,
    map_headers,
    resolve_header,
)
from district_etl.shared import DISTRICT_COLUMNS, HeaderSynonymValidationError


# ---------------------------------------------------------------------------
# Synonym table
# ---------------------------------------------------------------------------

class TestSynonymTable:
    def test_is_read_only(self):
        assert isinstance(HEADER_SYNONYMS, MappingProxyType)
        with pytest.raises(TypeError):
            HEADER_SYNONYMS["NEW"] = "name"  # type: ignore[index]

    def test_every_target_is_a_district_field(self):
        assert set(HEADER_SYNONYMS.values()) <= set(DISTRICT_COLUMNS)

    def test_every_field_has_a_synonym(self):
        assert set(HEADER_SYNONYMS.values()) == set(DISTRICT_COLUMNS)

    def test_keys_are_upper_case(self):
        assert all(key == key.upper() for key in HEADER_SYNONYMS)

    @pytest.mark.parametrize("header", ["LEAID", "LEA_ID", "NCES_ID", "DISTRICT_ID"])
    def test_nces_id_synonyms(self, header):
        assert HEADER_SYNONYMS[header] == "nces_id"

    @pytest.mark.parametrize(
        "header, field_name",
        [
            ("ST_LEAID", "state_lea_id"),
            ("LEA_NAME", "name"),
            ("ST", "state"),
            ("STATENAME", "state_name"),
            ("LSTREET1", "address"),
            ("LCITY", "city"),
            ("LZIP", "zip"),
            ("LZIP4", "zip4"),
            ("PHONE", "phone"),
            ("WEBSITE", "website"),
            ("LEA_TYPE", "lea_type"),
            ("LEA_TYPE_TEXT", "lea_type_text"),
            ("CHARTER_LEA", "charter_lea"),
            ("SY_STATUS", "operational_status"),
            ("SY_STATUS_TEXT", "operational_status_text"),
            ("GSLO", "lowest_grade"),
            ("GSHI", "highest_grade"),
            ("OPERATIONAL_SCHOOLS", "operational_schools"),
        ],
    )
    def test_ccd_directory_headers(self, header, field_name):
        assert HEADER_SYNONYMS[header] == field_name


class TestBuildSynonymTable:
    def test_rejects_missing_fields_key(self):
        with pytest.raises(HeaderSynonymValidationError):
            build_synonym_table({"version": "1"})

    def test_rejects_unknown_field(self):
        with pytest.raises(HeaderSynonymValidationError, match="unknown district field"):
            build_synonym_table({"fields": {"nces_id": ["LEAID"], "mascot": ["MASCOT"]}})

    def test_rejects_empty_spelling_list(self):
        with pytest.raises(HeaderSynonymValidationError):
            build_synonym_table({"fields": {"nces_id": []}})

    def test_rejects_blank_spelling(self):
        with pytest.raises(HeaderSynonymValidationError):
            build_synonym_table({"fields": {"nces_id": ["LEAID", "  "]}})

    def test_rejects_spelling_claimed_by_two_fields(self):
        with pytest.raises(HeaderSynonymValidationError, match="maps to both"):
            build_synonym_table({"fields": {"nces_id": ["ID"], "name": ["id"]}})

    def test_requires_an_nces_id_spelling(self):
        with pytest.raises(HeaderSynonymValidationError, match="nces_id"):
            build_synonym_table({"fields": {"name": ["NAME"]}})

    def test_upper_cases_spellings(self):
        table = build_synonym_table({"fields": {"nces_id": ["leaid"]}})
        assert dict(table) == {"LEAID": "nces_id"}

    def test_loads_from_yaml_file(self, tmp_path):
        path = tmp_path / "synonyms.yaml"
        path.write_text("fields:\n  nces_id:\n    - LEAID\n  city:\n    - TOWN\n")
        table = load_header_synonyms(path)
        assert table["TOWN"] == "city"


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

class TestHeaderKeys:
    def test_raw_and_normalized(self):
        assert header_keys("  District   ID ") == ("DISTRICT   ID", "DISTRICT_ID")

    def test_tabs_collapse(self):
        assert header_keys("lea\tname")[1] == "LEA_NAME"


class TestResolveHeader:
    def test_case_insensitive(self):
        assert resolve_header("leaid") == "nces_id"

    def test_space_separated_falls_back_to_underscore_form(self):
        assert resolve_header("District ID") == "nces_id"

    def test_raw_key_with_spaces(self):
        header = "Agency ID - NCES Assigned [District] Latest available year"
        assert resolve_header(header) == "nces_id"

    def test_unknown_header(self):
        assert resolve_header("MASCOT") is None

    def test_custom_table(self):
        assert resolve_header("town", {"TOWN": "city"}) == "city"


class TestMapHeaders:
    def test_maps_known_columns_by_index(self):
        assert map_headers(["LEAID", "LEA_NAME", "ST", "LCITY"]) == {
            0: "nces_id", 1: "name", 2: "state", 3: "city",
        }

    def test_unknown_columns_ignored(self):
        assert map_headers(["MASCOT", "LEAID", "COLORS"]) == {1: "nces_id"}

    def test_no_matches_gives_empty_mapping(self):
        assert map_headers(["foo", "bar"]) == {}

    def test_duplicate_field_keeps_both_indices(self):
        assert map_headers(["LEAID", "NCES_ID"]) == {0: "nces_id", 1: "nces_id"}


class TestAssignFields:
    def test_last_column_wins_per_field(self):
        values = assign_fields(["0100001", "0200002"], {0: "nces_id", 1: "nces_id"})
        assert values == {"nces_id": "0200002"}

    def test_last_column_wins_even_when_blank(self):
        values = assign_fields(["0100001", ""], {0: "nces_id", 1: "nces_id"})
        assert values == {"nces_id": ""}

    def test_short_row_reads_none(self):
        values = assign_fields(["0100001"], {0: "nces_id", 3: "city"})
        assert values == {"nces_id": "0100001", "city": None}
