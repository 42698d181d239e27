"""Backends the ingestion job writes rate history through."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Protocol

import duckdb
import httpx

from jobs.config import BACKEND_DUCKDB, RateJobConfig
from pipelines.model import RateHistoryRecord
from storage import db, hosted

logger = logging.getLogger(__name__)


class PersistenceError(RuntimeError):
    """A storage backend rejected a rate history write."""


class RateWriter(Protocol):
    async def upsert(self, record: RateHistoryRecord) -> None:
        """Insert or overwrite the row for ``record.key()``."""


class DuckDBRateWriter:
    """Writes to a local DuckDB file, one short-lived connection per write."""

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = path

    def _write(self, record: RateHistoryRecord) -> None:
        conn = db.connect(self.path)
        try:
            db.upsert_rate_record(conn, record)
        finally:
            conn.close()

    async def upsert(self, record: RateHistoryRecord) -> None:
        try:
            await asyncio.to_thread(self._write, record)
        except (duckdb.Error, OSError) as exc:
            raise PersistenceError(f"Error storing rate: {exc}") from exc


class SupabaseRateWriter:
    """Writes to the hosted table with the service-role key."""

    def __init__(
        self,
        base_url: str,
        service_key: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url
        self.service_key = service_key
        self.transport = transport

    async def upsert(self, record: RateHistoryRecord) -> None:
        try:
            await hosted.upsert_rate_record(
                self.base_url, self.service_key, record, transport=self.transport
            )
        except httpx.HTTPStatusError as exc:
            raise PersistenceError(
                f"Error storing rate: {exc.response.status_code} {exc.response.text}"
            ) from exc
        except httpx.HTTPError as exc:
            raise PersistenceError(f"Error storing rate: {exc}") from exc


def build_writer(config: RateJobConfig) -> RateWriter:
    if config.store_backend == BACKEND_DUCKDB:
        logger.debug("Using DuckDB rate store at %s", config.db_path)
        return DuckDBRateWriter(config.db_path)
    logger.debug("Using Supabase rate store at %s", config.supabase_url)
    return SupabaseRateWriter(config.supabase_url, config.supabase_service_key)


__all__ = [
    "DuckDBRateWriter",
    "PersistenceError",
    "RateWriter",
    "SupabaseRateWriter",
    "build_writer",
]
