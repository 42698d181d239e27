"""Canonical data model for mortgage rate observations and stored history rows."""

from __future__ import annotations

import datetime as dt
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RateObservation(BaseModel):
    """A single market rate for one loan term, as fetched or derived."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, str_strip_whitespace=True)

    date: dt.date = Field(..., description="As-of date of the observation.")
    rate_type: str = Field(
        "Fixed", alias="type", description="Rate type tag (currently always 'Fixed')."
    )
    value: float = Field(..., ge=0, description="Rate as a decimal percentage (6.91 = 6.91%).")
    term_years: int = Field(
        ..., alias="termYears", gt=0, description="Loan term in years (15, 20 or 30)."
    )

    def to_payload(self) -> dict[str, Any]:
        """Serialize as the ``{date, type, value, termYears}`` wire shape."""

        return self.model_dump(mode="json", by_alias=True)


class RateHistoryRecord(BaseModel):
    """Row of the ``rate_history`` table, unique on ``(rate_date, term_years)``."""

    model_config = ConfigDict(frozen=True)

    rate_date: dt.date
    rate_type: str
    rate_value: float
    term_years: int
    created_at: dt.datetime

    @classmethod
    def from_observation(
        cls, observation: RateObservation, *, created_at: dt.datetime | None = None
    ) -> "RateHistoryRecord":
        return cls(
            rate_date=observation.date,
            rate_type=observation.rate_type,
            rate_value=observation.value,
            term_years=observation.term_years,
            created_at=created_at or dt.datetime.now(dt.UTC),
        )

    def key(self) -> tuple[dt.date, int]:
        return self.rate_date, self.term_years


__all__ = ["RateObservation", "RateHistoryRecord"]
