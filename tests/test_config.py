from pathlib import Path

import pytest

from jobs.config import (
    BACKEND_DUCKDB,
    BACKEND_SUPABASE,
    DEFAULT_TERM_OFFSETS,
    ConfigurationError,
    RateJobConfig,
    parse_term_offsets,
)

SUPABASE_ENV = {
    "FRED_API_KEY": "fred-key",
    "SUPABASE_URL": "https://project.supabase.co",
    "SUPABASE_SERVICE_ROLE_KEY": "service-role",
}


def test_from_env_defaults_to_supabase_store():
    config = RateJobConfig.from_env(SUPABASE_ENV)

    assert config.store_backend == BACKEND_SUPABASE
    assert config.fred_api_key == "fred-key"
    assert config.supabase_url == "https://project.supabase.co"
    assert config.series_id == "MORTGAGE30US"
    assert config.lookback_days == 7
    assert config.max_rate == 15.0
    assert dict(config.term_offsets) == dict(DEFAULT_TERM_OFFSETS)
    assert config.fetch_attempts == 1


def test_missing_api_key_fails_fast():
    env = dict(SUPABASE_ENV, FRED_API_KEY="")

    with pytest.raises(ConfigurationError, match="FRED API key not configured"):
        RateJobConfig.from_env(env)


@pytest.mark.parametrize("missing", ["SUPABASE_URL", "SUPABASE_SERVICE_ROLE_KEY"])
def test_supabase_store_requires_credentials(missing):
    env = {key: value for key, value in SUPABASE_ENV.items() if key != missing}

    with pytest.raises(ConfigurationError, match=missing):
        RateJobConfig.from_env(env)


def test_duckdb_store_needs_no_hosted_credentials(tmp_path):
    config = RateJobConfig.from_env(
        {
            "FRED_API_KEY": "fred-key",
            "RATE_STORE_BACKEND": "DuckDB",
            "RATE_HISTORY_DB_PATH": str(tmp_path / "rates.duckdb"),
        }
    )

    assert config.store_backend == BACKEND_DUCKDB
    assert config.db_path == Path(tmp_path / "rates.duckdb")


def test_backend_argument_overrides_environment():
    config = RateJobConfig.from_env({"FRED_API_KEY": "k"}, store_backend="duckdb")

    assert config.store_backend == BACKEND_DUCKDB


def test_unknown_backend_is_rejected():
    with pytest.raises(ConfigurationError, match="Unknown rate store backend"):
        RateJobConfig.from_env({"FRED_API_KEY": "k", "RATE_STORE_BACKEND": "mysql"})


def test_from_env_reads_process_environment(monkeypatch):
    for key, value in SUPABASE_ENV.items():
        monkeypatch.setenv(key, value)
    monkeypatch.setenv("RATE_TERM_OFFSETS", "15:0.5")
    monkeypatch.setenv("RATE_LOOKBACK_DAYS", "14")

    config = RateJobConfig.from_env()

    assert config.term_offsets == {15: 0.5}
    assert config.lookback_days == 14


@pytest.mark.parametrize(
    "name, raw",
    [
        ("RATE_LOOKBACK_DAYS", "seven"),
        ("RATE_MAX_VALUE", "high"),
        ("RATE_FETCH_ATTEMPTS", "1.5"),
        ("RATE_LOOKBACK_DAYS", "0"),
        ("RATE_FETCH_ATTEMPTS", "0"),
    ],
)
def test_malformed_numbers_are_configuration_errors(name, raw):
    with pytest.raises(ConfigurationError):
        RateJobConfig.from_env(dict(SUPABASE_ENV, **{name: raw}))


def test_parse_term_offsets():
    assert parse_term_offsets(None) == {15: 0.625, 20: 0.3125}
    assert parse_term_offsets(" ") == {15: 0.625, 20: 0.3125}
    assert parse_term_offsets("20:0.25, 15:0.5,") == {20: 0.25, 15: 0.5}

    with pytest.raises(ConfigurationError):
        parse_term_offsets("15=0.5")


def test_offsets_cannot_target_source_term():
    with pytest.raises(ConfigurationError):
        RateJobConfig(fred_api_key="k", store_backend="duckdb", term_offsets={30: 0.1})

    with pytest.raises(ConfigurationError):
        RateJobConfig(fred_api_key="k", store_backend="duckdb", term_offsets={15: -0.1})
