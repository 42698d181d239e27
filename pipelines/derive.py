"""Fixed-offset estimates of shorter-term rates from the 30-year rate."""

from __future__ import annotations

from typing import Mapping

from jobs.config import DEFAULT_TERM_OFFSETS
from pipelines.model import RateObservation

RATE_PRECISION = 10


def derive_rate(value: float, offset: float) -> float:
    """Subtract ``offset`` from ``value``, clamped at zero."""

    return round(max(0.0, value - offset), RATE_PRECISION)


def derive_term_rates(
    source: RateObservation,
    offsets: Mapping[int, float] = DEFAULT_TERM_OFFSETS,
) -> list[RateObservation]:
    """Return ``[source, *derived]`` with one derived observation per offset.

    Derived observations keep the source's date and type; only the term and
    value change.
    """

    rates = [source]
    for term_years, offset in offsets.items():
        rates.append(
            source.model_copy(
                update={
                    "value": derive_rate(source.value, offset),
                    "term_years": term_years,
                }
            )
        )
    return rates


__all__ = ["RATE_PRECISION", "derive_rate", "derive_term_rates"]
