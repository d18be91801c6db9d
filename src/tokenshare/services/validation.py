"""Service validating meter readings against the recorded chronology."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from tokenshare.config import settings
from tokenshare.core.chronology import (
    AnchorKind,
    ReadingPoint,
    ReadingType,
    ReadingValidationResult,
    check_reading,
    compute_bounds,
    pick_next,
    pick_previous,
)
from tokenshare.core.consumption import ConsumptionStatistics, analyse_consumption
from tokenshare.core.dates import days_between, format_date
from tokenshare.core.models import MeterReading, TokenPurchase
from tokenshare.core.repositories.meter_reading import MeterReadingRepository
from tokenshare.core.repositories.purchase import PurchaseRepository
from tokenshare.core.verdicts import Violation
from tokenshare.schemas import ReadingCheckRequest

logger = logging.getLogger(__name__)


def _purchase_point(purchase: TokenPurchase | None) -> ReadingPoint | None:
    return ReadingPoint.from_purchase(purchase) if purchase is not None else None


def _reading_point(reading: MeterReading | None) -> ReadingPoint | None:
    return ReadingPoint.from_meter_reading(reading) if reading is not None else None


@dataclass(frozen=True)
class Neighbourhood:
    """Recorded readings immediately around a candidate date."""

    previous_purchase: ReadingPoint | None
    next_purchase: ReadingPoint | None
    previous_reading: ReadingPoint | None
    next_reading: ReadingPoint | None
    same_day: tuple[ReadingPoint, ...] = ()

    @property
    def previous(self) -> ReadingPoint | None:
        # Records already on the candidate date come first; the highest binds.
        if self.same_day:
            return max(
                self.same_day, key=lambda p: (p.value, p.kind == AnchorKind.PURCHASE)
            )
        return pick_previous(self.previous_purchase, self.previous_reading)

    @property
    def following(self) -> ReadingPoint | None:
        return pick_next(self.next_purchase, self.next_reading)


@dataclass(frozen=True)
class ReadingSuggestion:
    minimum: Decimal
    suggestion: Decimal
    context: str


@dataclass(frozen=True)
class MeterReadingCheck:
    """Verdict for a standalone meter reading."""

    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    violation: Violation | None = None
    statistics: ConsumptionStatistics | None = None


class ReadingValidationService:
    """
    Checks candidate readings against the purchases and meter readings
    already recorded.

    Stateless: every call re-queries the repositories, so two concurrent
    callers can both pass against the same stale state.
    """

    def __init__(
        self,
        purchase_repo: PurchaseRepository,
        meter_reading_repo: MeterReadingRepository,
        average_daily_usage: Decimal | None = None,
        minimum_increment: Decimal | None = None,
        default_suggestion: Decimal | None = None,
        history_limit: int | None = None,
    ):
        self._purchase_repo = purchase_repo
        self._meter_reading_repo = meter_reading_repo
        self._average_daily_usage = (
            average_daily_usage
            if average_daily_usage is not None
            else settings.AVERAGE_DAILY_USAGE_KWH
        )
        self._minimum_increment = (
            minimum_increment
            if minimum_increment is not None
            else settings.MINIMUM_SUGGESTED_INCREMENT_KWH
        )
        self._default_suggestion = (
            default_suggestion
            if default_suggestion is not None
            else settings.DEFAULT_READING_SUGGESTION_KWH
        )
        self._history_limit = (
            history_limit
            if history_limit is not None
            else settings.CONSUMPTION_HISTORY_LIMIT
        )

    async def _neighbourhood(
        self,
        candidate_date: date,
        exclude_id: UUID | str | None,
        include_same_date: bool = False,
    ) -> Neighbourhood:
        prev_purchase = await self._purchase_repo.find_previous(candidate_date, exclude_id)
        next_purchase = await self._purchase_repo.find_next(candidate_date, exclude_id)
        prev_reading = await self._meter_reading_repo.find_previous(
            candidate_date, exclude_id
        )
        next_reading = await self._meter_reading_repo.find_next(
            candidate_date, exclude_id
        )

        same_day: tuple[ReadingPoint, ...] = ()
        if include_same_date:
            day_purchase = await self._purchase_repo.latest_on_date(
                candidate_date, exclude_id
            )
            day_reading = await self._meter_reading_repo.highest_on_date(
                candidate_date, exclude_id
            )
            if day_purchase is not None:
                prev_purchase = day_purchase
            same_day = tuple(
                point
                for point in (_purchase_point(day_purchase), _reading_point(day_reading))
                if point is not None
            )

        return Neighbourhood(
            previous_purchase=_purchase_point(prev_purchase),
            next_purchase=_purchase_point(next_purchase),
            previous_reading=_reading_point(prev_reading),
            next_reading=_reading_point(next_reading),
            same_day=same_day,
        )

    async def validate(
        self,
        candidate_reading: Decimal,
        candidate_date: date,
        reading_type: ReadingType,
        exclude_id: UUID | str | None = None,
        candidate_tokens: Decimal = Decimal("0"),
        include_same_date: bool = False,
    ) -> ReadingValidationResult:
        """
        Checks that a reading fits between its chronological neighbours.

        Args:
            candidate_reading: The reading being entered.
            candidate_date: Date the reading belongs to.
            reading_type: Whether it is for a purchase or a contribution.
            exclude_id: Record being edited, left out of the neighbour lookup.
            candidate_tokens: Tokens bought with the candidate purchase. They
                raise the ceiling when no later purchase exists yet.
            include_same_date: Treat records already on ``candidate_date`` as
                earlier ones. The ledger sets it when appending a purchase.

        Returns:
            A ReadingValidationResult. A RangeViolation carries the violated
            bound in ``suggested_minimum``.
        """
        around = await self._neighbourhood(
            candidate_date, exclude_id, include_same_date=include_same_date
        )

        extend_by = Decimal("0")
        if reading_type == ReadingType.PURCHASE and around.next_purchase is None:
            extend_by = candidate_tokens

        bounds = compute_bounds(
            around.previous, around.following, around.previous_purchase, extend_by
        )
        result = check_reading(candidate_reading, bounds, around.previous, around.following)
        if not result.valid:
            logger.info(
                f"Rejected {reading_type.value} reading {candidate_reading} "
                f"on {candidate_date}: {result.error}"
            )
        return result

    async def check(self, request: ReadingCheckRequest) -> ReadingValidationResult:
        """Runs ``validate`` for a parsed check request."""
        return await self.validate(
            request.meter_reading,
            request.reading_date,
            request.type,
            exclude_id=request.exclude_id,
            candidate_tokens=request.total_tokens,
        )

    async def validate_contribution_reading(
        self, reading: Decimal, purchase_id: UUID | str
    ) -> ReadingValidationResult:
        """A contribution must carry exactly the reading of its purchase."""
        purchase = await self._purchase_repo.get(pk=purchase_id)
        if not purchase:
            return ReadingValidationResult(
                valid=False, error="Purchase not found.", violation=Violation.NOT_FOUND
            )

        if reading != purchase.meter_reading:
            return ReadingValidationResult(
                valid=False,
                error=(
                    "Contribution meter reading must match the purchase meter "
                    f"reading exactly: {purchase.meter_reading:,} kWh. "
                    f"Current: {reading:,} kWh."
                ),
                violation=Violation.READING_MISMATCH,
                suggested_minimum=purchase.meter_reading,
            )
        return ReadingValidationResult(valid=True)

    async def validate_meter_reading(
        self,
        reading: Decimal,
        reading_date: date,
        user_id: UUID | str,
        exclude_id: UUID | str | None = None,
    ) -> MeterReadingCheck:
        """
        Validates a standalone periodic meter reading.

        Rules, in order:
        1. one reading per user per date;
        2. at least the highest reading already recorded that day;
        3. not below the previous reading, not above the next one;
        4. not above the first purchase reading plus all tokens bought to date;
        5. daily consumption in line with the user's history.
        """
        repo = self._meter_reading_repo

        if await repo.for_user_on_date(user_id, reading_date, exclude_id):
            return MeterReadingCheck(
                valid=False,
                errors=["A meter reading already exists for this date."],
                violation=Violation.DUPLICATE_READING_DATE,
            )

        same_day = await repo.highest_on_date(reading_date, exclude_id)
        if same_day and reading < same_day.reading:
            return self._range_failure(
                "Reading must be greater than or equal to the highest reading "
                f"on the same date ({same_day.reading:.2f})."
            )

        previous = await repo.find_previous(reading_date, exclude_id)
        if previous and reading < previous.reading:
            return self._range_failure(
                "Reading must be greater than or equal to the most recent reading "
                f"({previous.reading:.2f} on {format_date(previous.reading_date)})."
            )

        following = await repo.find_next(reading_date, exclude_id)
        if following and reading > following.reading:
            return self._range_failure(
                "Reading cannot be greater than the next chronological reading "
                f"({following.reading:.2f} on {format_date(following.reading_date)}). "
                "Meter readings must increase chronologically."
            )

        first_purchase = await self._purchase_repo.earliest()
        if not first_purchase:
            return MeterReadingCheck(
                valid=False,
                errors=[
                    "No token purchases found. Please create a token purchase "
                    "first to establish the initial meter reading."
                ],
                violation=Violation.NO_PURCHASES,
            )

        bought = await self._purchase_repo.total_tokens_through(reading_date)
        ceiling = first_purchase.meter_reading + bought
        if reading > ceiling:
            return self._range_failure(
                f"Meter reading cannot exceed {ceiling:.2f} kWh (initial reading "
                f"{first_purchase.meter_reading:.2f} + total tokens purchased "
                f"{bought:.2f})."
            )

        if previous is None:
            return MeterReadingCheck(valid=True)

        history = await repo.history(user_id, reading_date, limit=self._history_limit)
        consumption = analyse_consumption(
            reading,
            reading_date,
            previous=(previous.reading_date, previous.reading),
            history=[(r.reading_date, r.reading) for r in history],
        )
        if consumption.errors:
            logger.info(f"Reading {reading} on {reading_date} flagged as anomalous.")
            return MeterReadingCheck(
                valid=False,
                errors=consumption.errors,
                warnings=consumption.warnings,
                violation=Violation.CONSUMPTION_ANOMALY,
                statistics=consumption.statistics,
            )
        return MeterReadingCheck(
            valid=True,
            warnings=consumption.warnings,
            statistics=consumption.statistics,
        )

    @staticmethod
    def _range_failure(message: str) -> MeterReadingCheck:
        return MeterReadingCheck(
            valid=False, errors=[message], violation=Violation.RANGE
        )

    async def minimum_reading(
        self, candidate_date: date, exclude_id: UUID | str | None = None
    ) -> Decimal:
        """Lowest reading acceptable on ``candidate_date``."""
        around = await self._neighbourhood(candidate_date, exclude_id)
        return around.previous.value if around.previous else Decimal("0")

    async def suggest_reading(
        self, candidate_date: date, exclude_id: UUID | str | None = None
    ) -> ReadingSuggestion:
        """Suggests a plausible reading from the last one and average daily usage."""
        around = await self._neighbourhood(candidate_date, exclude_id)
        last = around.previous
        if last is None:
            return ReadingSuggestion(
                minimum=Decimal("0"),
                suggestion=self._default_suggestion,
                context=(
                    "No previous meter readings found. "
                    "Enter your current meter reading."
                ),
            )

        days = days_between(last.date, candidate_date)
        increment = max(days * self._average_daily_usage, self._minimum_increment)
        return ReadingSuggestion(
            minimum=last.value,
            suggestion=last.value + increment,
            context=(
                f"Last reading was {last.value:,} kWh on {format_date(last.date)} "
                f"({last.kind.value}). Suggested: ~{increment} kWh increase."
            ),
        )
