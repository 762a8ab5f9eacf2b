"""district_etl.shared

Shared types and utilities used by the parsers, the import orchestrator,
the CLI and the HTTP app. Includes the canonical DistrictRecord, the
exception taxonomy, RejectWriter, ImportCounters and report-writing support.
"""

from __future__ import annotations

import csv
import json
from dataclasses import astuple, dataclass, field, fields
from datetime import datetime
from pathlib import Path
from typing import Any

from district_etl.normalize import (
    cell_text,
    expand_scientific_notation,
    parse_int_or_zero,
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class NoValidRowsError(ValueError):
    """Raised when an uploaded file yields no rows with an NCES ID."""


class BatchWriteError(Exception):
    """Raised by a DistrictStore when one batch could not be written."""


class HeaderSynonymValidationError(ValueError):
    """Raised when the header synonym table is malformed."""


# ---------------------------------------------------------------------------
# DistrictRecord
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DistrictRecord:
    nces_id: str
    state_lea_id: str | None = None
    name: str | None = None
    state: str | None = None
    state_name: str | None = None
    address: str | None = None
    city: str | None = None
    zip: str | None = None
    zip4: str | None = None
    phone: str | None = None
    website: str | None = None
    lea_type: str | None = None
    lea_type_text: str | None = None
    charter_lea: str | None = None
    operational_status: str | None = None
    operational_status_text: str | None = None
    lowest_grade: str | None = None
    highest_grade: str | None = None
    operational_schools: int = 0

    def as_params(self) -> tuple[Any, ...]:
        """Column values in DISTRICT_COLUMNS order."""
        return astuple(self)


DISTRICT_COLUMNS: tuple[str, ...] = tuple(f.name for f in fields(DistrictRecord))


def build_record(
    values: dict[str, Any],
    counters: ImportCounters | None = None,
) -> DistrictRecord | None:
    """Coerce mapped cell values into a DistrictRecord.

    Returns None when the NCES ID is blank. operational_schools goes through
    parse_int_or_zero; every other field becomes trimmed text or None.
    """
    raw_id = cell_text(values.get("nces_id"))
    nces_id = expand_scientific_notation(raw_id)
    if not nces_id:
        return None
    if counters is not None and nces_id != raw_id:
        counters.nces_ids_repaired += 1

    kwargs: dict[str, Any] = {}
    for name in DISTRICT_COLUMNS:
        if name == "nces_id" or name not in values:
            continue
        if name == "operational_schools":
            kwargs[name] = parse_int_or_zero(values[name])
        else:
            kwargs[name] = cell_text(values[name])
    return DistrictRecord(nces_id=nces_id, **kwargs)


# ---------------------------------------------------------------------------
# RejectWriter
# ---------------------------------------------------------------------------

class RejectWriter:
    """Lazy-open CSV writer for rejected rows."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fh = None
        self._writer = None

    def write(self, row: dict[str, str], reason: str) -> None:
        if self._fh is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(self._path, "w", newline="", encoding="utf-8")
            fieldnames = list(row.keys()) + ["_reject_reason"]
            self._writer = csv.DictWriter(
                self._fh, fieldnames=fieldnames, extrasaction="ignore"
            )
            self._writer.writeheader()
        out = dict(row)
        out["_reject_reason"] = reason
        self._writer.writerow(out)
        self._fh.flush()

    def close(self) -> None:
        if self._fh:
            self._fh.close()


def reject_row(headers: list[str], cells: list[Any], row_number: int) -> dict[str, str]:
    """Pair a rejected row's cells with their headers for the rejects file."""
    out = {"_source_row": str(row_number)}
    for idx, header in enumerate(headers):
        key = header or f"column_{idx + 1}"
        value = cells[idx] if idx < len(cells) else None
        out[key] = "" if value is None else str(value)
    return out


# ---------------------------------------------------------------------------
# ImportCounters
# ---------------------------------------------------------------------------

@dataclass
class ImportCounters:
    rows_read: int = 0
    rows_skipped_no_key: int = 0
    nces_ids_repaired: int = 0
    batches_attempted: int = 0
    batches_failed: int = 0
    rows_inserted: int = 0
    rows_updated: int = 0
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        d = {k: v for k, v in self.__dict__.items() if k != "warnings"}
        d["warnings"] = self.warnings[:50]
        return d


# ---------------------------------------------------------------------------
# Report writer
# ---------------------------------------------------------------------------

def write_run_report(
    run_id: str,
    started_at: str,
    dry_run: bool,
    source_paths: dict[str, str],
    counters: ImportCounters,
    extra: dict[str, Any] | None = None,
    report_dir: Path = Path("./artifacts/reports"),
) -> Path:
    report = {
        "run_id": run_id,
        "mode": "district_import",
        "started_at": started_at,
        "finished_at": datetime.utcnow().isoformat(),
        "dry_run": dry_run,
        **source_paths,
        **(extra or {}),
        "counters": counters.to_dict(),
    }
    report_path = report_dir / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path
