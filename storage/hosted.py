"""Upserts into the hosted ``rate_history`` table through the PostgREST API."""

from __future__ import annotations

from typing import Any

import httpx

from pipelines.common import request
from pipelines.model import RateHistoryRecord
from storage.db import RATE_HISTORY_TABLE

REST_PATH = "/rest/v1"
ON_CONFLICT = "rate_date,term_years"


def table_url(base_url: str, table: str = RATE_HISTORY_TABLE) -> str:
    return f"{base_url.rstrip('/')}{REST_PATH}/{table}"


def service_headers(service_key: str) -> dict[str, str]:
    """Headers authenticating as the service role and asking for a merge upsert."""

    return {
        "apikey": service_key,
        "Authorization": f"Bearer {service_key}",
        "Content-Type": "application/json",
        "Prefer": "resolution=merge-duplicates,return=minimal",
    }


def serialize_record(record: RateHistoryRecord) -> dict[str, Any]:
    return record.model_dump(mode="json")


async def upsert_rate_record(
    base_url: str,
    service_key: str,
    record: RateHistoryRecord,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> None:
    """Upsert one row keyed by ``(rate_date, term_years)``; raises on rejection."""

    await request(
        table_url(base_url),
        method="POST",
        params={"on_conflict": ON_CONFLICT},
        headers=service_headers(service_key),
        json=serialize_record(record),
        transport=transport,
    )


__all__ = ["ON_CONFLICT", "serialize_record", "service_headers", "table_url", "upsert_rate_record"]
