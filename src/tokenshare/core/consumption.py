"""Consumption statistics used to flag implausible meter readings."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from statistics import median
from typing import Sequence

from tokenshare.core.dates import days_between

ZERO = Decimal("0")


@dataclass(frozen=True)
class ConsumptionStatistics:
    daily_consumption: Decimal
    historical_average: Decimal
    historical_max: Decimal
    historical_min: Decimal
    historical_median: Decimal
    threshold: Decimal
    days_between: int


@dataclass(frozen=True)
class ConsumptionCheck:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    statistics: ConsumptionStatistics | None = None


def daily_rate(consumption: Decimal, days: int) -> Decimal:
    """Consumption per day; same-day intervals count as a single day."""
    return consumption / days if days > 0 else consumption


def historical_daily_rates(history: Sequence[tuple[date, Decimal]]) -> list[Decimal]:
    """
    Per-interval daily consumption of a reading history.

    ``history`` is ordered newest first. Intervals where the meter went
    backwards are skipped.
    """
    rates: list[Decimal] = []
    for (newer_date, newer), (older_date, older) in zip(history, history[1:]):
        rate = daily_rate(newer - older, days_between(older_date, newer_date))
        if rate >= 0:
            rates.append(rate)
    return rates


def analyse_consumption(
    value: Decimal,
    reading_date: date,
    previous: tuple[date, Decimal],
    history: Sequence[tuple[date, Decimal]],
) -> ConsumptionCheck:
    """
    Compares the consumption implied by a new reading with the user's history.

    Args:
        value: The candidate reading.
        reading_date: The candidate's date.
        previous: ``(date, reading)`` of the reading immediately before it.
        history: Earlier ``(date, reading)`` pairs, newest first.

    Returns:
        Errors for consumption far above the historical pattern, warnings for
        merely unusual values, and the statistics used.
    """
    previous_date, previous_value = previous
    consumption = value - previous_value
    days = days_between(previous_date, reading_date)
    daily = daily_rate(consumption, days)

    rates = historical_daily_rates(history)
    if not rates:
        return ConsumptionCheck()

    average = sum(rates, ZERO) / len(rates)
    highest = max(rates)
    lowest = min(rates)
    mid = median(rates)

    threshold = max(average * 3, mid * 4, highest * Decimal("1.5"), Decimal("50"))
    lower_limit = max(ZERO, average * Decimal("0.1"))

    errors: list[str] = []
    warnings: list[str] = []

    if daily > threshold:
        errors.append(
            f"Daily consumption of {daily:.2f} kWh seems unusually high. Your "
            f"historical average is {average:.2f} kWh/day and maximum was "
            f"{highest:.2f} kWh/day. Please verify the reading."
        )
    elif daily > average * 2:
        warnings.append(
            f"Daily consumption of {daily:.2f} kWh is significantly higher than "
            f"your average of {average:.2f} kWh/day."
        )

    if daily < lower_limit and consumption > 0:
        warnings.append(
            f"Daily consumption of {daily:.2f} kWh is unusually low compared to "
            f"your average of {average:.2f} kWh/day."
        )

    if consumption == 0 and days > 1:
        warnings.append(
            f"Zero consumption over {days} days is unusual. Please verify the reading."
        )

    return ConsumptionCheck(
        errors=errors,
        warnings=warnings,
        statistics=ConsumptionStatistics(
            daily_consumption=daily,
            historical_average=average,
            historical_max=highest,
            historical_min=lowest,
            historical_median=mid,
            threshold=threshold,
            days_between=days,
        ),
    )
