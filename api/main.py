"""FastAPI service exposing the rate ingestion trigger and stored rate history."""

from __future__ import annotations

import logging
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Callable, Sequence

import duckdb
from dotenv import load_dotenv
from fastapi import BackgroundTasks, FastAPI, HTTPException, Query, Request
from fastapi.responses import FileResponse, JSONResponse, Response
from starlette.endpoints import HTTPEndpoint

from jobs.config import ConfigurationError
from jobs.fetch_rates import RateIngestionJob, build_job
from pipelines.model import RateHistoryRecord
from storage.db import connect, fetch_latest_rates, fetch_rate_history
from storage.exports import EXPORT_FORMATS, export_rate_history, media_type_for, suffix_for

DEFAULT_LIMIT = 200
MAX_LIMIT = 2000
ALLOWED_FORMATS = {"json", *EXPORT_FORMATS}
ERROR_MESSAGE = "Failed to fetch rates"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "*",
    "Access-Control-Max-Age": "86400",
}

load_dotenv()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    conn = connect()
    conn.close()
    yield


app = FastAPI(title="Mortgage Rate Monitor API", version="0.1.0", lifespan=lifespan)


def get_job_factory() -> Callable[[], RateIngestionJob]:
    """Dependency returning the job builder; configuration is read per invocation."""

    return build_job


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


def _error_response(details: str) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"error": ERROR_MESSAGE, "details": details},
        headers=CORS_HEADERS,
    )


async def fetch_rates(request: Request) -> Response:
    """Run the ingestion job for any method except the OPTIONS preflight."""

    if request.method == "OPTIONS":
        return Response(status_code=204, headers=CORS_HEADERS)

    # Registered as a plain route, so FastAPI does not apply dependency overrides.
    provider = request.app.dependency_overrides.get(get_job_factory, get_job_factory)
    job_factory = provider()

    try:
        job = job_factory()
    except ConfigurationError as exc:
        logger.error("Rate ingestion not configured: %s", exc)
        return _error_response(str(exc))

    try:
        result = await job.run()
    except Exception as exc:
        logger.exception("Rate ingestion raised unexpectedly")
        return _error_response(str(exc))

    if not result.ok:
        logger.error(
            "Rate ingestion failed (status=%s, persisted=%s): %s",
            result.status.value,
            [obs.term_years for obs in result.persisted],
            result.error,
        )
        return _error_response(result.error or ERROR_MESSAGE)

    return JSONResponse(status_code=200, content=result.payload(), headers=CORS_HEADERS)


class RateTrigger(HTTPEndpoint):
    """Endpoint class, so the route matches every method (HEAD, PURGE, ...)."""

    async def dispatch(self) -> None:
        request = Request(self.scope, receive=self.receive)
        response = await fetch_rates(request)
        await response(self.scope, self.receive, self.send)


app.add_route("/fetch-rates", RateTrigger)
app.add_route("/", RateTrigger, include_in_schema=False)


def _serialize_records(records: Sequence[RateHistoryRecord]) -> list[dict[str, Any]]:
    return [record.model_dump(mode="json") for record in records]


@app.get("/rates")
def get_rates(
    background_tasks: BackgroundTasks,
    format: str = Query("json", description="Response format: json, csv, or parquet"),
    term_years: int | None = Query(None, description="Restrict to one loan term"),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT, description="Maximum records returned"),
):
    fmt = format.lower()
    if fmt not in ALLOWED_FORMATS:
        raise HTTPException(status_code=400, detail=f"Unsupported format '{format}'.")

    conn = connect(read_only=True)
    try:
        if fmt == "json":
            records = fetch_rate_history(conn, term_years=term_years, limit=limit)
            return JSONResponse(
                content={"count": len(records), "items": _serialize_records(records)}
            )

        suffix = suffix_for(fmt)
        with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as tmp:
            dest = Path(tmp.name)
        export_rate_history(conn, dest, fmt=fmt, term_years=term_years, limit=limit)

        def _cleanup(path: Path) -> None:
            path.unlink(missing_ok=True)

        background_tasks.add_task(_cleanup, dest)
        return FileResponse(
            dest,
            media_type=media_type_for(fmt),
            filename=f"rate_history{suffix}",
            background=background_tasks,
        )
    except duckdb.Error as exc:  # pragma: no cover - defensive
        raise HTTPException(status_code=500, detail="Database query failed") from exc
    finally:
        conn.close()


@app.get("/rates/latest")
def get_latest_rates() -> dict[str, Any]:
    conn = connect(read_only=True)
    try:
        records = fetch_latest_rates(conn)
    finally:
        conn.close()
    if not records:
        raise HTTPException(status_code=404, detail="No rates stored yet")
    return {"items": _serialize_records(records)}
