"""district_etl.store

Batch upsert of DistrictRecords into the districts table.

A DistrictStore takes one batch at a time. PostgresDistrictStore writes each
batch inside its own transaction block: the batch lands completely or not at
all, and a failed batch leaves earlier batches committed. On an nces_id
conflict every column is replaced by the incoming value (no merge), so a
column missing from the upload is cleared.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, Sequence

import psycopg

from district_etl.shared import DISTRICT_COLUMNS, BatchWriteError, DistrictRecord

log = logging.getLogger(__name__)

CONFLICT_KEY = "nces_id"


def _build_upsert_sql() -> str:
    columns = ", ".join(DISTRICT_COLUMNS)
    placeholders = ", ".join(["%s"] * len(DISTRICT_COLUMNS))
    assignments = ",\n          ".join(
        f"{col} = EXCLUDED.{col}" for col in DISTRICT_COLUMNS if col != CONFLICT_KEY
    )
    return f"""
        INSERT INTO districts ({columns})
        VALUES ({placeholders})
        ON CONFLICT ({CONFLICT_KEY}) DO UPDATE SET
          {assignments},
          updated_at = now()
        RETURNING (xmax = 0) AS inserted
        """


UPSERT_DISTRICT_SQL = _build_upsert_sql()


@dataclass(frozen=True)
class BatchOutcome:
    inserted: int = 0
    updated: int = 0

    @property
    def written(self) -> int:
        return self.inserted + self.updated


class DistrictStore(Protocol):
    def upsert_batch(self, records: Sequence[DistrictRecord]) -> BatchOutcome:
        """Write one batch keyed on nces_id; raise BatchWriteError on failure."""
        ...


class PostgresDistrictStore:
    """DistrictStore over a psycopg connection.

    Use an autocommit connection so each batch's transaction block commits
    on exit; inside an enclosing transaction the blocks become savepoints.
    """

    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn

    def upsert_batch(self, records: Sequence[DistrictRecord]) -> BatchOutcome:
        if not records:
            return BatchOutcome()
        flags: list[bool] = []
        try:
            with self._conn.transaction():
                with self._conn.cursor() as cur:
                    cur.executemany(
                        UPSERT_DISTRICT_SQL,
                        [record.as_params() for record in records],
                        returning=True,
                    )
                    while True:
                        row = cur.fetchone()
                        flags.append(bool(row[0]))
                        if not cur.nextset():
                            break
        except psycopg.Error as exc:
            raise BatchWriteError(str(exc).strip()) from exc

        inserted = sum(flags)
        return BatchOutcome(inserted=inserted, updated=len(flags) - inserted)


def has_role(conn: psycopg.Connection, user_id: str, role: str) -> bool:
    """Ask the database whether user_id holds role (the has_role SQL function)."""
    row = conn.execute(
        "SELECT has_role(%s::uuid, %s)",
        (user_id, role),
    ).fetchone()
    return bool(row and row[0])
