"""Tests for consumption anomaly detection."""

from datetime import date
from decimal import Decimal

from tokenshare.core.consumption import (
    analyse_consumption,
    daily_rate,
    historical_daily_rates,
)

# Newest first, 10 kWh/day throughout
HISTORY = [
    (date(2025, 1, 21), Decimal("300")),
    (date(2025, 1, 11), Decimal("200")),
    (date(2025, 1, 1), Decimal("100")),
]
PREVIOUS = HISTORY[0]


def test_daily_rate_treats_same_day_as_one_day():
    assert daily_rate(Decimal("30"), 0) == Decimal("30")
    assert daily_rate(Decimal("30"), 3) == Decimal("10")


def test_historical_rates_skip_backward_intervals():
    history = [
        (date(2025, 1, 3), Decimal("120")),
        (date(2025, 1, 2), Decimal("90")),
        (date(2025, 1, 1), Decimal("100")),
    ]

    assert historical_daily_rates(history) == [Decimal("30")]
    assert historical_daily_rates(HISTORY) == [Decimal("10"), Decimal("10")]


def test_without_history_nothing_is_flagged():
    result = analyse_consumption(
        Decimal("5000"), date(2025, 1, 2), (date(2025, 1, 1), Decimal("0")), []
    )

    assert result.errors == []
    assert result.warnings == []
    assert result.statistics is None


def test_consumption_far_above_history_is_an_error():
    result = analyse_consumption(Decimal("400"), date(2025, 1, 22), PREVIOUS, HISTORY)

    assert len(result.errors) == 1
    assert "unusually high" in result.errors[0]
    assert result.statistics.daily_consumption == Decimal("100")
    assert result.statistics.threshold == Decimal("50")


def test_consumption_above_twice_average_is_a_warning():
    result = analyse_consumption(Decimal("325"), date(2025, 1, 22), PREVIOUS, HISTORY)

    assert result.errors == []
    assert len(result.warnings) == 1
    assert "significantly higher" in result.warnings[0]


def test_unusually_low_consumption_is_a_warning():
    result = analyse_consumption(Decimal("305"), date(2025, 1, 31), PREVIOUS, HISTORY)

    assert result.errors == []
    assert len(result.warnings) == 1
    assert "unusually low" in result.warnings[0]


def test_zero_consumption_over_several_days_is_a_warning():
    result = analyse_consumption(Decimal("300"), date(2025, 1, 24), PREVIOUS, HISTORY)

    assert result.errors == []
    assert result.warnings == [
        "Zero consumption over 3 days is unusual. Please verify the reading."
    ]


def test_typical_consumption_passes_cleanly():
    result = analyse_consumption(Decimal("310"), date(2025, 1, 22), PREVIOUS, HISTORY)

    assert result.errors == []
    assert result.warnings == []
    assert result.statistics.historical_average == Decimal("10")


def test_statistics_report_median_alongside_average():
    # Rates of 40, 10 and 10 kWh/day
    history = [
        (date(2025, 1, 4), Decimal("190")),
        (date(2025, 1, 3), Decimal("150")),
        (date(2025, 1, 2), Decimal("140")),
        (date(2025, 1, 1), Decimal("130")),
    ]

    result = analyse_consumption(Decimal("210"), date(2025, 1, 5), history[0], history)

    assert result.errors == []
    assert result.statistics.historical_average == Decimal("20")
    assert result.statistics.historical_median == Decimal("10")
    assert result.statistics.historical_max == Decimal("40")
    assert result.statistics.historical_min == Decimal("10")
    assert result.statistics.threshold == Decimal("60")
