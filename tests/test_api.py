from datetime import date, datetime

import pytest
from fastapi.testclient import TestClient

from api.main import CORS_HEADERS, app, get_job_factory
from conftest import RecordingWriter
from jobs.config import ConfigurationError
from jobs.fetch_rates import RateIngestionJob
from pipelines.model import RateHistoryRecord, RateObservation
from storage.db import connect, upsert_rate_records


def _assert_cors(response):
    for name, value in CORS_HEADERS.items():
        assert response.headers[name] == value


@pytest.fixture()
def client():
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def use_job(config):
    """Install a job whose fetch step returns ``observation``."""

    created = []

    def install(observation, writer=None):
        writer = writer or RecordingWriter()

        async def fetcher(cfg):
            return observation

        def factory():
            job = RateIngestionJob(config, writer, fetcher=fetcher)
            created.append(job)
            return job

        app.dependency_overrides[get_job_factory] = lambda: factory
        return writer

    install.created = created
    return install


def test_options_returns_empty_204_without_running_job(client, use_job):
    use_job(None)

    response = client.options("/fetch-rates")

    assert response.status_code == 204
    assert response.content == b""
    _assert_cors(response)
    assert use_job.created == []


def test_options_on_root_path(client):
    def factory():
        raise AssertionError("job must not be built for OPTIONS")

    app.dependency_overrides[get_job_factory] = lambda: factory

    response = client.options("/")

    assert response.status_code == 204
    _assert_cors(response)


@pytest.mark.parametrize("method", ["GET", "POST"])
def test_trigger_returns_three_rates(client, use_job, method):
    writer = use_job(RateObservation(date="2024-06-01", value=6.91, term_years=30))

    response = client.request(method, "/fetch-rates")

    assert response.status_code == 200
    _assert_cors(response)
    assert response.json() == [
        {"date": "2024-06-01", "type": "Fixed", "value": 6.91, "termYears": 30},
        {"date": "2024-06-01", "type": "Fixed", "value": 6.285, "termYears": 15},
        {"date": "2024-06-01", "type": "Fixed", "value": 6.5975, "termYears": 20},
    ]
    assert len(writer.calls) == 3


def test_trigger_reports_fetch_failure(client, use_job):
    writer = use_job(None)

    response = client.post("/fetch-rates")

    assert response.status_code == 500
    _assert_cors(response)
    assert response.json() == {
        "error": "Failed to fetch rates",
        "details": "Failed to fetch 30-year rate",
    }
    assert writer.calls == []


def test_trigger_reports_persistence_failure(client, use_job):
    use_job(
        RateObservation(date="2024-06-01", value=6.91, term_years=30),
        writer=RecordingWriter(fail_on=2),
    )

    response = client.post("/fetch-rates")

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Failed to fetch rates"
    assert "simulated outage" in body["details"]


def test_trigger_reports_missing_configuration(client):
    response = client.post("/")

    assert response.status_code == 500
    _assert_cors(response)
    assert response.json() == {
        "error": "Failed to fetch rates",
        "details": "FRED API key not configured",
    }


def test_trigger_reports_configuration_error_from_factory(client):
    def factory():
        raise ConfigurationError("SUPABASE_URL not configured")

    app.dependency_overrides[get_job_factory] = lambda: factory

    response = client.get("/fetch-rates")

    assert response.status_code == 500
    assert response.json()["details"] == "SUPABASE_URL not configured"


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


@pytest.fixture()
def stored_rates(db_path):
    conn = connect(db_path)
    try:
        upsert_rate_records(
            conn,
            [
                RateHistoryRecord(
                    rate_date=day,
                    rate_type="Fixed",
                    rate_value=value,
                    term_years=term,
                    created_at=datetime(2024, 6, 3, 12, 0),
                )
                for day, term, value in [
                    (date(2024, 5, 23), 30, 6.94),
                    (date(2024, 5, 30), 30, 7.03),
                    (date(2024, 5, 30), 15, 6.405),
                    (date(2024, 5, 30), 20, 6.7175),
                ]
            ],
        )
    finally:
        conn.close()


def test_rates_json(client, stored_rates):
    response = client.get("/rates", params={"term_years": 30})

    assert response.status_code == 200
    payload = response.json()
    assert payload["count"] == 2
    assert [item["rate_date"] for item in payload["items"]] == ["2024-05-30", "2024-05-23"]


def test_rates_csv(client, stored_rates):
    response = client.get("/rates", params={"format": "csv"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    body = response.content.decode()
    assert body.splitlines()[0].startswith("rate_date,rate_type,rate_value,term_years")
    assert "6.7175" in body


def test_rates_parquet(client, stored_rates):
    response = client.get("/rates", params={"format": "parquet"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/vnd.apache.parquet")


def test_rates_rejects_unknown_format(client):
    assert client.get("/rates", params={"format": "xml"}).status_code == 400


def test_latest_rates(client, stored_rates):
    response = client.get("/rates/latest")

    assert response.status_code == 200
    assert [(item["term_years"], item["rate_value"]) for item in response.json()["items"]] == [
        (30, 7.03),
        (20, 6.7175),
        (15, 6.405),
    ]


def test_latest_rates_empty_store(client):
    assert client.get("/rates/latest").status_code == 404


@pytest.mark.parametrize("method", ["HEAD", "PUT", "PURGE"])
def test_trigger_runs_job_for_any_other_method(client, use_job, method):
    writer = use_job(RateObservation(date="2024-06-01", value=6.91, term_years=30))

    response = client.request(method, "/fetch-rates")

    assert response.status_code == 200
    _assert_cors(response)
    assert len(use_job.created) == 1
    assert [record.term_years for record in writer.calls] == [30, 15, 20]


def test_root_path_runs_job_for_custom_method(client, use_job):
    use_job(None)

    response = client.request("PURGE", "/")

    assert response.status_code == 500
    _assert_cors(response)
    assert len(use_job.created) == 1
