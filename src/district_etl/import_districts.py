"""district_etl.import_districts

District reference-data import: orchestrator and CLI entrypoint.

Pipeline (run_import):
  1. detect format from the file name (xlsx/xls → Excel, anything else → CSV)
  2. parse rows into DistrictRecords; rows without an NCES ID are skipped
  3. no records → NoValidRowsError, nothing written
  4. split into batches of batch_size and upsert each batch on nces_id
  5. a failed batch is recorded in ImportResult.errors and the run moves on

Batches are independent: there is no rollback across batches and no retry.
Re-running the same file converges on the same rows.

Usage:
    python -m district_etl.import_districts \\
        --db-dsn "$DB_DSN" \\
        --file-path "rawEvidence/ccd_lea_029_2324_w_1a_073124.csv" \\
        --rejects-path "artifacts/rejects/district_rejects.csv"
"""

from __future__ import annotations

import logging
import sys
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, Sequence

import click
import psycopg

from district_etl.parsers import FileType, parse_upload
from district_etl.shared import (
    BatchWriteError,
    DistrictRecord,
    ImportCounters,
    NoValidRowsError,
    RejectWriter,
    write_run_report,
)
from district_etl.store import DistrictStore, PostgresDistrictStore

log = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 500

NO_VALID_ROWS_MESSAGE = (
    "No valid district data found. Expected columns: "
    "NCES ID (LEAID / NCES_ID / DISTRICT_ID), Name (LEA_NAME / NAME), State (ST / STATE)"
)


# ---------------------------------------------------------------------------
# Batch + result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ImportBatch:
    number: int
    records: Sequence[DistrictRecord]


@dataclass
class ImportResult:
    total: int
    file_type: FileType
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def written(self) -> int:
        return self.inserted + self.updated

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "success": True,
            "total": self.total,
            "inserted": self.inserted,
            "updated": self.updated,
            "skipped": self.skipped,
            "fileType": self.file_type.label,
        }
        if self.errors:
            body["errors"] = list(self.errors)
        return body


def iter_batches(
    records: Sequence[DistrictRecord],
    batch_size: int,
) -> Iterator[ImportBatch]:
    for number, start in enumerate(range(0, len(records), batch_size), start=1):
        yield ImportBatch(number=number, records=records[start:start + batch_size])


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

def run_import(
    store: DistrictStore,
    filename: str | None,
    content: bytes,
    batch_size: int = DEFAULT_BATCH_SIZE,
    counters: ImportCounters | None = None,
    rejects: RejectWriter | None = None,
) -> ImportResult:
    """Parse one uploaded file and upsert its districts batch by batch.

    Raises:
        NoValidRowsError: If no row carries an NCES ID. Nothing is written.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be at least 1, got {batch_size}")
    counters = counters if counters is not None else ImportCounters()
    file_type, records = parse_upload(filename, content, counters, rejects)
    log.info(
        "Parsed %d district(s) from %s (%s), %d skipped",
        len(records), filename, file_type.label, counters.rows_skipped_no_key,
    )

    if not records:
        raise NoValidRowsError(NO_VALID_ROWS_MESSAGE)

    result = ImportResult(
        total=len(records),
        file_type=file_type,
        skipped=counters.rows_skipped_no_key,
    )
    batch_count = (len(records) + batch_size - 1) // batch_size

    for batch in iter_batches(records, batch_size):
        counters.batches_attempted += 1
        try:
            outcome = store.upsert_batch(batch.records)
        except BatchWriteError as exc:
            counters.batches_failed += 1
            log.error("Batch %d error: %s", batch.number, exc)
            result.errors.append(f"Batch {batch.number}: {exc}")
        else:
            result.inserted += outcome.inserted
            result.updated += outcome.updated
            counters.rows_inserted += outcome.inserted
            counters.rows_updated += outcome.updated
        log.info("Processed batch %d/%d", batch.number, batch_count)

    return result


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

@click.command()
@click.option("--db-dsn", required=True, envvar="DB_DSN", help="PostgreSQL DSN")
@click.option(
    "--file-path",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="District CSV or Excel file",
)
@click.option("--batch-size", default=DEFAULT_BATCH_SIZE, type=click.IntRange(min=1), show_default=True)
@click.option("--dry-run", is_flag=True, default=False)
@click.option(
    "--rejects-path",
    default="./artifacts/rejects/district_rejects.csv",
    show_default=True,
)
@click.option("--report-dir", default="./artifacts/reports", show_default=True, type=click.Path())
@click.option("--run-id", default=None, help="Override UUID for log correlation")
def main(
    db_dsn: str,
    file_path: str,
    batch_size: int,
    dry_run: bool,
    rejects_path: str,
    report_dir: str,
    run_id: str | None,
) -> None:
    """Import NCES district reference data from a CSV or Excel file."""
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.utcnow().isoformat()
    counters = ImportCounters()
    rejects = RejectWriter(Path(rejects_path))
    source = Path(file_path)

    click.echo(f"[{run_id}] Starting district import of {source.name} (dry_run={dry_run})")

    conn = psycopg.connect(db_dsn, autocommit=True)
    result: ImportResult | None = None
    try:
        store = PostgresDistrictStore(conn)
        if dry_run:
            with conn.transaction(force_rollback=True):
                result = _run_and_report(
                    store, source, batch_size, counters, rejects, run_id
                )
            click.echo(f"[{run_id}] [dry-run] All changes rolled back.")
        else:
            result = _run_and_report(
                store, source, batch_size, counters, rejects, run_id
            )
    finally:
        conn.close()
        rejects.close()

    report_path = write_run_report(
        run_id, started_at, dry_run,
        {"file_path": str(source), "rejects_path": rejects_path},
        counters,
        extra={"result": result.to_response()} if result is not None else None,
        report_dir=Path(report_dir),
    )
    click.echo(f"[{run_id}] Run report: {report_path}")

    if result is None:
        sys.exit(1)
    if result.errors:
        click.echo(
            f"[{run_id}] {len(result.errors)} batch error(s), exiting non-zero",
            err=True,
        )
        sys.exit(1)


def _run_and_report(
    store: DistrictStore,
    source: Path,
    batch_size: int,
    counters: ImportCounters,
    rejects: RejectWriter,
    run_id: str,
) -> ImportResult | None:
    try:
        result = run_import(
            store, source.name, source.read_bytes(),
            batch_size=batch_size, counters=counters, rejects=rejects,
        )
    except NoValidRowsError as exc:
        click.echo(f"[{run_id}] FATAL: {exc}", err=True)
        return None

    click.echo(
        f"[{run_id}] {result.file_type.label}: {counters.rows_read} rows read, "
        f"{result.skipped} skipped, {result.total} valid"
    )
    click.echo(
        f"[{run_id}] {result.inserted} inserted, {result.updated} updated, "
        f"{counters.batches_failed}/{counters.batches_attempted} batch(es) failed"
    )
    for error in result.errors:
        click.echo(f"[{run_id}] {error}", err=True)
    return result


if __name__ == "__main__":
    main()
