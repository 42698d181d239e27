"""Job that fetches the 30-year mortgage rate, derives 15/20-year estimates and persists them."""

from __future__ import annotations

import asyncio
import enum
import json
import logging
import os
from dataclasses import dataclass
from datetime import date
from typing import Awaitable, Callable

from jobs.config import ConfigurationError, RateJobConfig
from pipelines.derive import derive_term_rates
from pipelines.model import RateHistoryRecord, RateObservation
from pipelines.sources.fred import fetch_latest_mortgage_rate
from storage.writers import PersistenceError, RateWriter, build_writer

logger = logging.getLogger(__name__)

FETCH_FAILED_MESSAGE = "Failed to fetch 30-year rate"

Fetcher = Callable[[RateJobConfig], Awaitable[RateObservation | None]]


class IngestionStatus(str, enum.Enum):
    COMPLETE = "complete"
    PARTIAL = "partial"
    NOT_PERSISTED = "not_persisted"


@dataclass(frozen=True)
class IngestionResult:
    """Outcome of one run.

    ``observations`` holds every candidate rate (empty when the fetch failed);
    ``persisted`` holds the prefix of it that was written before any failure.
    """

    status: IngestionStatus
    observations: tuple[RateObservation, ...] = ()
    persisted: tuple[RateObservation, ...] = ()
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is IngestionStatus.COMPLETE

    def payload(self) -> list[dict]:
        return [observation.to_payload() for observation in self.observations]


@dataclass
class RateIngestionJob:
    """Fetch, derive and upsert mortgage rates for one invocation."""

    config: RateJobConfig
    writer: RateWriter
    fetcher: Fetcher | None = None
    today: date | None = None

    async def _fetch(self) -> RateObservation | None:
        if self.fetcher is not None:
            return await self.fetcher(self.config)
        return await fetch_latest_mortgage_rate(self.config, today=self.today)

    async def run(self) -> IngestionResult:
        source = await self._fetch()
        if source is None:
            logger.error("%s; nothing persisted.", FETCH_FAILED_MESSAGE)
            return IngestionResult(IngestionStatus.NOT_PERSISTED, error=FETCH_FAILED_MESSAGE)

        observations = tuple(derive_term_rates(source, self.config.term_offsets))
        persisted: list[RateObservation] = []
        for observation in observations:
            record = RateHistoryRecord.from_observation(observation)
            try:
                await self.writer.upsert(record)
            except PersistenceError as exc:
                status = IngestionStatus.PARTIAL if persisted else IngestionStatus.NOT_PERSISTED
                logger.error(
                    "Stopped after %s of %s writes (%s-year rate for %s): %s",
                    len(persisted),
                    len(observations),
                    observation.term_years,
                    observation.date,
                    exc,
                )
                return IngestionResult(
                    status,
                    observations=observations,
                    persisted=tuple(persisted),
                    error=str(exc),
                )
            logger.info(
                "Stored %s-year rate %s for %s.",
                observation.term_years,
                observation.value,
                observation.date,
            )
            persisted.append(observation)

        return IngestionResult(
            IngestionStatus.COMPLETE, observations=observations, persisted=tuple(persisted)
        )


def build_job(config: RateJobConfig | None = None) -> RateIngestionJob:
    """Create a job wired to the configured store; raises ``ConfigurationError``."""

    config = config or RateJobConfig.from_env()
    return RateIngestionJob(config=config, writer=build_writer(config))


def main(config: RateJobConfig | None = None) -> int:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
    try:
        job = build_job(config)
    except ConfigurationError as exc:
        logger.error("Rate ingestion not started: %s", exc)
        return 1
    result = asyncio.run(job.run())
    logger.info(
        "Rate ingestion finished (status=%s, persisted=%s/%s).",
        result.status.value,
        len(result.persisted),
        len(result.observations),
    )
    if not result.ok:
        logger.error("Rate ingestion failed: %s", result.error)
        return 1
    print(json.dumps(result.payload(), indent=2))
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
