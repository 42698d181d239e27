from datetime import date

import httpx
import pytest

from jobs.config import BACKEND_DUCKDB, RateJobConfig
from pipelines.model import RateHistoryRecord
from storage.writers import PersistenceError

ENV_VARS = [
    "FRED_API_KEY",
    "FRED_SERIES_ID",
    "RATE_STORE_BACKEND",
    "RATE_LOOKBACK_DAYS",
    "RATE_MAX_VALUE",
    "RATE_TERM_OFFSETS",
    "RATE_FETCH_ATTEMPTS",
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
]

TODAY = date(2024, 6, 3)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # Keep load_dotenv() from picking up a developer's .env.
    monkeypatch.setattr("jobs.config.load_dotenv", lambda *args, **kwargs: False)
    db_path = tmp_path / "rate_history.duckdb"
    monkeypatch.setenv("RATE_HISTORY_DB_PATH", str(db_path))
    return db_path


@pytest.fixture()
def db_path(isolated_env):
    return isolated_env


@pytest.fixture()
def config(db_path):
    return RateJobConfig(
        fred_api_key="test-key",
        store_backend=BACKEND_DUCKDB,
        db_path=db_path,
    )


def fred_payload(value, observed_on="2024-06-01"):
    return {"observations": [{"date": observed_on, "value": value}]}


def fred_transport(payload=None, *, status_code=200, requests=None):
    """Mock transport answering every request with ``payload``."""

    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        return httpx.Response(status_code, json=payload)

    return httpx.MockTransport(handler)


class RecordingWriter:
    """In-memory upsert store that can be told to fail on the N-th write."""

    def __init__(self, fail_on=None):
        self.rows: dict = {}
        self.calls: list[RateHistoryRecord] = []
        self.fail_on = fail_on

    async def upsert(self, record):
        self.calls.append(record)
        if self.fail_on is not None and len(self.calls) == self.fail_on:
            raise PersistenceError("Error storing rate: simulated outage")
        self.rows[record.key()] = record


@pytest.fixture()
def recording_writer():
    return RecordingWriter()
