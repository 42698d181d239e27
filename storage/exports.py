"""CSV and Parquet exports of the rate history table."""

from __future__ import annotations

from pathlib import Path

import duckdb

from storage.db import RATE_HISTORY_TABLE

EXPORT_FORMATS = {
    "csv": ("FORMAT CSV, HEADER TRUE", "text/csv", ".csv"),
    "parquet": ("FORMAT PARQUET", "application/vnd.apache.parquet", ".parquet"),
}


def history_query(*, term_years: int | None = None, limit: int | None = None) -> tuple[str, list]:
    sql = f"SELECT * FROM {RATE_HISTORY_TABLE}"
    params: list = []
    if term_years is not None:
        sql += " WHERE term_years = ?"
        params.append(term_years)
    sql += " ORDER BY rate_date DESC, term_years DESC"
    if limit is not None:
        sql += f" LIMIT {int(limit)}"
    return sql, params


def export_rate_history(
    conn: duckdb.DuckDBPyConnection,
    destination: str | Path,
    *,
    fmt: str = "csv",
    term_years: int | None = None,
    limit: int | None = None,
) -> Path:
    """Write stored rates (newest first) to ``destination`` with DuckDB's COPY."""

    try:
        options = EXPORT_FORMATS[fmt][0]
    except KeyError:
        raise ValueError(f"Unsupported export format '{fmt}'.") from None

    dest_path = Path(destination)
    dest_path.parent.mkdir(parents=True, exist_ok=True)
    sql, params = history_query(term_years=term_years, limit=limit)
    sanitized_path = str(dest_path).replace("'", "''")
    conn.execute(f"COPY ({sql}) TO '{sanitized_path}' ({options})", params)
    return dest_path


def media_type_for(fmt: str) -> str:
    return EXPORT_FORMATS[fmt][1]


def suffix_for(fmt: str) -> str:
    return EXPORT_FORMATS[fmt][2]


__all__ = ["EXPORT_FORMATS", "export_rate_history", "history_query", "media_type_for", "suffix_for"]
