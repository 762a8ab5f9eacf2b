"""district_etl.parsers

Format detection and row parsing for district uploads.

Both parsers share one contract: header row → map_headers, each data row →
assign_fields → build_record, and only rows with an NCES ID survive. Rows
dropped for a blank ID are counted in ImportCounters.rows_skipped_no_key
and, when a RejectWriter is supplied, written to it with reason
'blank_nces_id'.

The CSV tokenizer is forgiving: a double quote toggles
quoted mode, a comma only splits outside quotes, and unbalanced quotes are
never rejected.
"""

from __future__ import annotations

import io
import logging
import zipfile
from enum import Enum
from typing import Any
from xml.etree.ElementTree import ParseError

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from district_etl.header_map import assign_fields, map_headers
from district_etl.shared import (
    DistrictRecord,
    ImportCounters,
    RejectWriter,
    build_record,
    reject_row,
)

log = logging.getLogger(__name__)

EXCEL_EXTENSIONS = {"xlsx", "xls"}
REJECT_BLANK_NCES_ID = "blank_nces_id"


# ---------------------------------------------------------------------------
# Format detection
# ---------------------------------------------------------------------------

class FileType(str, Enum):
    CSV = "csv"
    EXCEL = "excel"

    @property
    def label(self) -> str:
        return self.value.upper()


def detect_file_type(filename: str | None) -> FileType:
    """EXCEL for .xlsx / .xls (any case), CSV for everything else."""
    if not filename or "." not in filename:
        return FileType.CSV
    extension = filename.rsplit(".", 1)[1].lower()
    return FileType.EXCEL if extension in EXCEL_EXTENSIONS else FileType.CSV


# ---------------------------------------------------------------------------
# Shared row loop
# ---------------------------------------------------------------------------

def _records_from_rows(
    headers: list[str],
    numbered_rows: list[tuple[int, list[Any]]],
    counters: ImportCounters,
    rejects: RejectWriter | None,
) -> list[DistrictRecord]:
    """numbered_rows pairs each data row with its 1-based source row number."""
    mapping = map_headers(headers)
    if not mapping:
        counters.warnings.append(
            f"no recognised column headers in {len(headers)} header cell(s)"
        )

    records: list[DistrictRecord] = []
    for row_number, cells in numbered_rows:
        counters.rows_read += 1
        record = build_record(assign_fields(cells, mapping), counters)
        if record is None:
            counters.rows_skipped_no_key += 1
            if rejects is not None:
                rejects.write(
                    reject_row(headers, cells, row_number), REJECT_BLANK_NCES_ID
                )
            continue
        records.append(record)
    return records


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------

def tokenize_csv_line(line: str) -> list[str]:
    """Split one CSV line into trimmed fields, honouring double-quoted commas.

    Quote characters only toggle quoted mode and never reach the output.
    """
    values: list[str] = []
    current: list[str] = []
    in_quotes = False
    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            values.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    values.append("".join(current).strip())
    return values


def parse_csv_text(
    text: str,
    counters: ImportCounters | None = None,
    rejects: RejectWriter | None = None,
) -> list[DistrictRecord]:
    counters = counters if counters is not None else ImportCounters()
    lines = text.split("\n")
    headers = tokenize_csv_line(lines[0])

    numbered_rows = [
        (line_number, tokenize_csv_line(line))
        for line_number, line in enumerate(lines[1:], start=2)
        if line.strip()
    ]
    records = _records_from_rows(headers, numbered_rows, counters, rejects)
    log.info(
        "Parsed %d district(s) from %d CSV row(s), %d skipped without NCES ID",
        len(records), counters.rows_read, counters.rows_skipped_no_key,
    )
    return records


def parse_csv_bytes(
    content: bytes,
    counters: ImportCounters | None = None,
    rejects: RejectWriter | None = None,
) -> list[DistrictRecord]:
    text = content.decode("utf-8-sig", errors="replace")
    return parse_csv_text(text, counters, rejects)


# ---------------------------------------------------------------------------
# Excel
# ---------------------------------------------------------------------------

def _sheet_rows(content: bytes) -> list[list[Any]]:
    """Return the first worksheet as a list of row lists ([] if unreadable)."""
    wb = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    try:
        if not wb.worksheets:
            return []
        ws = wb.worksheets[0]
        return [list(row) for row in ws.iter_rows(values_only=True)]
    finally:
        wb.close()


def parse_workbook_bytes(
    content: bytes,
    counters: ImportCounters | None = None,
    rejects: RejectWriter | None = None,
) -> list[DistrictRecord]:
    """Parse the first sheet of an .xlsx workbook; later sheets are ignored."""
    counters = counters if counters is not None else ImportCounters()
    try:
        sheet = _sheet_rows(content)
    except (
        InvalidFileException, zipfile.BadZipFile, ParseError, KeyError, OSError, ValueError,
    ) as exc:
        log.warning("Unreadable workbook: %s", exc)
        counters.warnings.append(f"unreadable workbook: {exc}")
        return []

    if len(sheet) < 2:
        log.info("Workbook has %d row(s); nothing to import", len(sheet))
        return []

    headers = ["" if cell is None else str(cell) for cell in sheet[0]]
    numbered_rows = [
        (row_number, cells)
        for row_number, cells in enumerate(sheet[1:], start=2)
        if any(cell is not None and str(cell).strip() for cell in cells)
    ]
    records = _records_from_rows(headers, numbered_rows, counters, rejects)
    log.info(
        "Parsed %d district(s) from %d sheet row(s), %d skipped without NCES ID",
        len(records), counters.rows_read, counters.rows_skipped_no_key,
    )
    return records


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

def parse_upload(
    filename: str | None,
    content: bytes,
    counters: ImportCounters | None = None,
    rejects: RejectWriter | None = None,
) -> tuple[FileType, list[DistrictRecord]]:
    """Detect the format from the file name and parse with the matching parser."""
    file_type = detect_file_type(filename)
    if file_type is FileType.EXCEL:
        return file_type, parse_workbook_bytes(content, counters, rejects)
    return file_type, parse_csv_bytes(content, counters, rejects)
