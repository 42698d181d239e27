"""DuckDB persistence utilities for mortgage rate history."""

from __future__ import annotations

import os
from datetime import UTC
from pathlib import Path
from typing import Iterable, Sequence

import duckdb

from pipelines.model import RateHistoryRecord

DB_ENV_VAR = "RATE_HISTORY_DB_PATH"
DEFAULT_DB_PATH = Path("data/rate_history.duckdb")

RATE_HISTORY_TABLE = "rate_history"

_COLUMNS = ("rate_date", "rate_type", "rate_value", "term_years", "created_at")


def _ensure_parent_dir(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def get_database_path(override: str | os.PathLike[str] | None = None) -> Path:
    """Resolve the DuckDB file path from an explicit override or environment variable."""

    if override is not None:
        return Path(override)
    env_value = os.getenv(DB_ENV_VAR)
    if env_value:
        return Path(env_value)
    return DEFAULT_DB_PATH


def connect(
    path: str | os.PathLike[str] | None = None,
    *,
    read_only: bool = False,
    ensure: bool = True,
) -> duckdb.DuckDBPyConnection:
    """Create a DuckDB connection, optionally ensuring schema availability."""

    db_path = get_database_path(path)
    if not read_only:
        _ensure_parent_dir(db_path)
    conn = duckdb.connect(str(db_path), read_only=read_only)
    if ensure and not read_only:
        ensure_rate_history_table(conn)
    return conn


def ensure_rate_history_table(conn: duckdb.DuckDBPyConnection) -> None:
    """Create the ``rate_history`` table if it does not already exist."""

    conn.execute(
        f"""
        CREATE TABLE IF NOT EXISTS {RATE_HISTORY_TABLE} (
            rate_date DATE NOT NULL,
            rate_type TEXT NOT NULL,
            rate_value DOUBLE NOT NULL,
            term_years INTEGER NOT NULL,
            created_at TIMESTAMP NOT NULL,
            PRIMARY KEY (rate_date, term_years)
        )
        """
    )


def _serialize_record(record: RateHistoryRecord) -> tuple:
    # DuckDB TIMESTAMP is naive; stored values are UTC.
    created_at = record.created_at
    if created_at.tzinfo is not None:
        created_at = created_at.astimezone(UTC).replace(tzinfo=None)
    return (
        record.rate_date,
        record.rate_type,
        record.rate_value,
        record.term_years,
        created_at,
    )


def upsert_rate_records(
    conn: duckdb.DuckDBPyConnection, records: Iterable[RateHistoryRecord]
) -> int:
    """Insert or replace rows keyed by ``(rate_date, term_years)``.

    Returns
    -------
    int
        Number of records written to the database.
    """

    serialized = [_serialize_record(record) for record in records]
    if not serialized:
        return 0

    conn.executemany(
        f"""
        INSERT OR REPLACE INTO {RATE_HISTORY_TABLE} (
            rate_date,
            rate_type,
            rate_value,
            term_years,
            created_at
        ) VALUES (?, ?, ?, ?, ?)
        """,
        serialized,
    )
    return len(serialized)


def upsert_rate_record(conn: duckdb.DuckDBPyConnection, record: RateHistoryRecord) -> None:
    upsert_rate_records(conn, [record])


def _row_to_record(row: Sequence[object]) -> RateHistoryRecord:
    return RateHistoryRecord(**dict(zip(_COLUMNS, row)))


def fetch_rate_history(
    conn: duckdb.DuckDBPyConnection,
    *,
    term_years: int | None = None,
    limit: int | None = None,
) -> list[RateHistoryRecord]:
    """Return stored rows, newest date first (ties ordered by term)."""

    sql = f"SELECT {', '.join(_COLUMNS)} FROM {RATE_HISTORY_TABLE}"
    params: list[object] = []
    if term_years is not None:
        sql += " WHERE term_years = ?"
        params.append(term_years)
    sql += " ORDER BY rate_date DESC, term_years DESC"
    if limit is not None:
        sql += f" LIMIT {int(limit)}"
    return [_row_to_record(row) for row in conn.execute(sql, params).fetchall()]


def fetch_latest_rates(conn: duckdb.DuckDBPyConnection) -> list[RateHistoryRecord]:
    """Return the most recent row for each stored term, longest term first."""

    sql = f"""
        SELECT {', '.join(_COLUMNS)}
        FROM {RATE_HISTORY_TABLE}
        QUALIFY ROW_NUMBER() OVER (PARTITION BY term_years ORDER BY rate_date DESC) = 1
        ORDER BY term_years DESC
    """
    return [_row_to_record(row) for row in conn.execute(sql).fetchall()]


def count_rate_history(conn: duckdb.DuckDBPyConnection) -> int:
    return conn.execute(f"SELECT COUNT(*) FROM {RATE_HISTORY_TABLE}").fetchone()[0]


__all__ = [
    "connect",
    "count_rate_history",
    "ensure_rate_history_table",
    "fetch_latest_rates",
    "fetch_rate_history",
    "get_database_path",
    "upsert_rate_record",
    "upsert_rate_records",
    "RATE_HISTORY_TABLE",
]
