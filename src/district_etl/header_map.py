"""district_etl.header_map

Static header-synonym table and column resolution.

The table lives in header_synonyms.yaml next to this module. It is loaded
and validated once at import time and exposed as a read-only mapping from
upper-cased header spelling to DistrictRecord field name.

Resolution of one header:
  1. trim, upper-case                      → raw key
  2. raw key with whitespace runs → "_"    → normalized key
  3. look up the raw key, then the normalized key
"""

from __future__ import annotations

import re
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml

from district_etl.shared import DISTRICT_COLUMNS, HeaderSynonymValidationError

SYNONYMS_PATH = Path(__file__).with_name("header_synonyms.yaml")

_WHITESPACE_RE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Loader + validator
# ---------------------------------------------------------------------------

def load_header_synonyms(yaml_path: Path) -> Mapping[str, str]:
    """Load, validate, and return the synonym table from a YAML file.

    Raises:
        HeaderSynonymValidationError: If the file does not match the schema.
        FileNotFoundError: If the YAML file does not exist.
    """
    data: dict[str, Any] = yaml.safe_load(yaml_path.read_text(encoding="utf-8"))
    return build_synonym_table(data)


def build_synonym_table(data: dict[str, Any]) -> Mapping[str, str]:
    if not isinstance(data, dict) or not isinstance(data.get("fields"), dict):
        raise HeaderSynonymValidationError("synonym file must have a 'fields' mapping")

    table: dict[str, str] = {}
    for field_name, spellings in data["fields"].items():
        if field_name not in DISTRICT_COLUMNS:
            raise HeaderSynonymValidationError(f"unknown district field: {field_name!r}")
        if not isinstance(spellings, list) or not spellings:
            raise HeaderSynonymValidationError(
                f"field {field_name!r} must list at least one header spelling"
            )
        for spelling in spellings:
            if not isinstance(spelling, str) or not spelling.strip():
                raise HeaderSynonymValidationError(
                    f"field {field_name!r} has a blank or non-string spelling"
                )
            key = spelling.strip().upper()
            existing = table.get(key)
            if existing is not None and existing != field_name:
                raise HeaderSynonymValidationError(
                    f"header {key!r} maps to both {existing!r} and {field_name!r}"
                )
            table[key] = field_name

    if "nces_id" not in table.values():
        raise HeaderSynonymValidationError("no header spelling maps to nces_id")
    return MappingProxyType(table)


HEADER_SYNONYMS: Mapping[str, str] = load_header_synonyms(SYNONYMS_PATH)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

def header_keys(header: str) -> tuple[str, str]:
    """Return (raw_key, normalized_key) for one header cell."""
    raw = header.strip().upper()
    return raw, _WHITESPACE_RE.sub("_", raw)


def resolve_header(
    header: str,
    table: Mapping[str, str] = HEADER_SYNONYMS,
) -> str | None:
    raw, normalized = header_keys(header)
    if raw in table:
        return table[raw]
    return table.get(normalized)


def map_headers(
    headers: list[str],
    table: Mapping[str, str] = HEADER_SYNONYMS,
) -> dict[int, str]:
    """Map column index → canonical field; unknown columns are left out."""
    mapping: dict[int, str] = {}
    for idx, header in enumerate(headers):
        field_name = resolve_header(header, table)
        if field_name is not None:
            mapping[idx] = field_name
    return mapping


def assign_fields(cells: list[Any], mapping: dict[int, str]) -> dict[str, Any]:
    """Collect mapped cell values by field name.

    Columns are visited left to right, so when two columns share a field the
    rightmost one wins, blank or not. Missing trailing cells read as None.
    """
    values: dict[str, Any] = {}
    for idx in sorted(mapping):
        values[mapping[idx]] = cells[idx] if idx < len(cells) else None
    return values
