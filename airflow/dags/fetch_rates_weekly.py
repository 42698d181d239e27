from __future__ import annotations

import os
from datetime import datetime, timedelta
from textwrap import dedent

from airflow import DAG
from airflow.providers.docker.operators.docker import DockerOperator
from docker.types import Mount

DEFAULT_ARGS = {
    "owner": "rate-monitor",
    "depends_on_past": False,
    "email_on_failure": False,
    "email_on_retry": False,
    "retries": 1,
    "retry_delay": timedelta(minutes=30),
}

COMPOSE_PROJECT = os.environ.get("COMPOSE_PROJECT_NAME", "mortgage-rate-monitor")
DOCKER_NETWORK = f"{COMPOSE_PROJECT}_default"
API_IMAGE = os.environ.get("API_IMAGE", "mortgage-rate-monitor-api:latest")
DATA_MOUNT = Mount(target="/app/data", source="rate_history_data", type="volume")

ENV_KEYS = [
    "FRED_API_KEY",
    "FRED_SERIES_ID",
    "RATE_STORE_BACKEND",
    "RATE_HISTORY_DB_PATH",
    "RATE_TERM_OFFSETS",
    "RATE_FETCH_ATTEMPTS",
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
]

ENVIRONMENT = {key: value for key in ENV_KEYS if (value := os.environ.get(key))}

# Only meaningful for the duckdb backend; the hosted table is checked by its owner.
QUALITY_CHECK_SCRIPT = dedent(
    """
from storage.db import connect, fetch_latest_rates

conn = connect(read_only=True)
latest = fetch_latest_rates(conn)
conn.close()

terms = {record.term_years for record in latest}
dates = {record.rate_date for record in latest}
assert terms >= {15, 20, 30}, f"Missing terms: {sorted({15, 20, 30} - terms)}"
assert len(dates) == 1, f"Terms out of step: {sorted(dates)}"
print({record.term_years: record.rate_value for record in latest})
    """
).strip()

with DAG(
    dag_id="fetch_rates_weekly",
    description="Run jobs.fetch_rates to refresh 15/20/30-year mortgage rates",
    # PMMS is published Thursdays at noon Eastern.
    schedule="0 18 * * 4",
    start_date=datetime(2024, 1, 1),
    catchup=False,
    default_args=DEFAULT_ARGS,
    max_active_runs=1,
    tags=["mortgage-rates", "etl"],
) as dag:

    fetch_rates = DockerOperator(
        task_id="fetch_rates",
        image=API_IMAGE,
        command=["python", "-m", "jobs.fetch_rates"],
        docker_url="unix://var/run/docker.sock",
        auto_remove=True,
        network_mode=DOCKER_NETWORK,
        environment=ENVIRONMENT,
        mounts=[DATA_MOUNT],
        mount_tmp_dir=False,
        do_xcom_push=False,
    )

    if ENVIRONMENT.get("RATE_STORE_BACKEND") == "duckdb":
        data_quality_checks = DockerOperator(
            task_id="data_quality_checks",
            image=API_IMAGE,
            command=["python", "-c", QUALITY_CHECK_SCRIPT],
            docker_url="unix://var/run/docker.sock",
            auto_remove=True,
            network_mode=DOCKER_NETWORK,
            environment=ENVIRONMENT,
            mounts=[DATA_MOUNT],
            mount_tmp_dir=False,
            do_xcom_push=False,
        )
        fetch_rates >> data_quality_checks
