"""Monotonic bound rules for cumulative meter readings."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from tokenshare.core.dates import format_date
from tokenshare.core.verdicts import Violation


class ReadingType(str, enum.Enum):
    """What a candidate reading is being recorded for."""

    PURCHASE = "purchase"
    CONTRIBUTION = "contribution"


class AnchorKind(str, enum.Enum):
    """Where a known reading came from."""

    PURCHASE = "purchase"
    METER_READING = "meter_reading"


@dataclass(frozen=True)
class ReadingPoint:
    """A known meter value on a date."""

    value: Decimal
    date: date
    kind: AnchorKind
    tokens: Decimal | None = None  # purchased quantity, purchases only
    record_id: UUID | None = None

    @classmethod
    def from_purchase(cls, purchase: Any) -> ReadingPoint:
        return cls(
            value=purchase.meter_reading,
            date=purchase.purchase_date,
            kind=AnchorKind.PURCHASE,
            tokens=purchase.total_tokens,
            record_id=purchase.id,
        )

    @classmethod
    def from_meter_reading(cls, reading: Any) -> ReadingPoint:
        return cls(
            value=reading.reading,
            date=reading.reading_date,
            kind=AnchorKind.METER_READING,
            record_id=reading.id,
        )


@dataclass(frozen=True)
class ReadingBounds:
    """Inclusive range a candidate reading must fall in. ``None`` is unbounded."""

    minimum: Decimal
    maximum: Decimal | None = None

    def contains(self, value: Decimal) -> bool:
        if value < self.minimum:
            return False
        return self.maximum is None or value <= self.maximum


@dataclass(frozen=True)
class ReadingValidationResult:
    """Verdict of a chronology check."""

    valid: bool
    error: str | None = None
    violation: Violation | None = None
    suggested_minimum: Decimal | None = None
    last_reading: ReadingPoint | None = None
    minimum: Decimal | None = None
    maximum: Decimal | None = None


def pick_previous(*points: ReadingPoint | None) -> ReadingPoint | None:
    """
    Chooses the anchor closest before the candidate date.

    The latest date wins; on the same date a purchase outranks a standalone
    meter reading.
    """
    known = [p for p in points if p is not None]
    if not known:
        return None
    return max(known, key=lambda p: (p.date, p.kind == AnchorKind.PURCHASE))


def pick_next(*points: ReadingPoint | None) -> ReadingPoint | None:
    """Chooses the earliest anchor after the candidate date (lowest value on ties)."""
    known = [p for p in points if p is not None]
    if not known:
        return None
    return min(known, key=lambda p: (p.date, p.value))


def compute_bounds(
    previous: ReadingPoint | None,
    following: ReadingPoint | None,
    previous_purchase: ReadingPoint | None = None,
    extend_by: Decimal = Decimal("0"),
) -> ReadingBounds:
    """
    Derives the allowed range for a reading placed between two anchors.

    Args:
        previous: Nearest known reading before the candidate date.
        following: Nearest known reading after the candidate date.
        previous_purchase: Nearest purchase before the candidate date. The
            meter cannot advance past its reading plus the tokens it bought.
        extend_by: Extra headroom on the purchase ceiling. Callers pass the
            candidate's own token quantity when it is the most recent purchase.

    Returns:
        The inclusive bounds. A first-ever reading only has to be non-negative.
    """
    minimum = previous.value if previous is not None else Decimal("0")

    ceilings: list[Decimal] = []
    if previous_purchase is not None and previous_purchase.tokens is not None:
        ceilings.append(previous_purchase.value + previous_purchase.tokens + extend_by)
    if following is not None:
        ceilings.append(following.value)

    return ReadingBounds(minimum=minimum, maximum=min(ceilings) if ceilings else None)


def check_reading(
    candidate: Decimal,
    bounds: ReadingBounds,
    previous: ReadingPoint | None = None,
    following: ReadingPoint | None = None,
) -> ReadingValidationResult:
    """Applies ``bounds`` to ``candidate`` and explains any violation."""
    if candidate < bounds.minimum:
        if previous is not None:
            error = (
                "Meter reading cannot decrease. The last reading on "
                f"{format_date(previous.date)} was {previous.value:,} kWh."
            )
        else:
            error = "Meter reading cannot be negative."
        return ReadingValidationResult(
            valid=False,
            error=error,
            violation=Violation.RANGE,
            suggested_minimum=bounds.minimum,
            last_reading=previous,
            minimum=bounds.minimum,
            maximum=bounds.maximum,
        )

    if bounds.maximum is not None and candidate > bounds.maximum:
        if following is not None and bounds.maximum == following.value:
            error = (
                f"Meter reading cannot exceed the next reading of "
                f"{following.value:,} kWh on {format_date(following.date)}."
            )
        else:
            error = (
                f"Meter reading cannot exceed {bounds.maximum:,} kWh, the "
                "previous purchase reading plus the tokens available."
            )
        return ReadingValidationResult(
            valid=False,
            error=error,
            violation=Violation.RANGE,
            suggested_minimum=bounds.maximum,
            last_reading=previous,
            minimum=bounds.minimum,
            maximum=bounds.maximum,
        )

    return ReadingValidationResult(
        valid=True,
        last_reading=previous,
        minimum=bounds.minimum,
        maximum=bounds.maximum,
    )
