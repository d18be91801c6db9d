"""Service enforcing the order in which purchases are recorded and settled."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from tokenshare.core.dates import format_date
from tokenshare.core.models import TokenPurchase
from tokenshare.core.repositories.contribution import ContributionRepository
from tokenshare.core.repositories.purchase import PurchaseRepository
from tokenshare.core.verdicts import Violation
from tokenshare.schemas import SequentialPurchaseRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SequenceResult:
    """Verdict of the sequential purchase guard."""

    valid: bool
    context: str
    error: str | None = None
    violation: Violation | None = None
    blocking_purchase: TokenPurchase | None = None


@dataclass(frozen=True)
class ContributionQueue:
    next_purchase: TokenPurchase | None
    outstanding: int

    @property
    def all_settled(self) -> bool:
        return self.outstanding == 0


@dataclass(frozen=True)
class ContributionEligibility:
    allowed: bool
    reason: str | None = None
    violation: Violation | None = None
    next_purchase_id: UUID | None = None


@dataclass(frozen=True)
class TokenAvailability:
    valid: bool
    available: Decimal | None = None  # None when there is nothing to draw against
    error: str | None = None
    violation: Violation | None = None


@dataclass(frozen=True)
class ContributionProgress:
    total_purchases: int
    contributed: int
    next_purchase: TokenPurchase | None
    percentage: int


class SequencingService:
    """
    Keeps purchases and contributions in chronological settlement order.

    A purchase is settled once it has a contribution. New purchases may only
    follow settled ones, and contributions are taken oldest purchase first.
    """

    def __init__(
        self,
        purchase_repo: PurchaseRepository,
        contribution_repo: ContributionRepository,
    ):
        self._purchase_repo = purchase_repo
        self._contribution_repo = contribution_repo

    async def can_record_purchase(
        self,
        candidate_date: date,
        is_admin: bool = False,
        exclude_id: UUID | str | None = None,
        include_same_date: bool = False,
    ) -> SequenceResult:
        """
        Rejects a purchase dated after any purchase that is still unsettled.

        The earliest unsettled purchase is returned as ``blocking_purchase`` so
        the caller can point the user at it. Admins bypass the rule.

        With ``include_same_date`` the candidate is placed after purchases
        already recorded on its own date, so those must be settled too.
        """
        if is_admin:
            return SequenceResult(
                valid=True,
                context="Admin bypass enabled - sequential purchase constraint skipped.",
            )

        blocking = await self._purchase_repo.oldest_unsettled(
            before=candidate_date,
            exclude_id=exclude_id,
            inclusive=include_same_date,
        )
        if blocking:
            error = (
                "Cannot create new purchase. Previous purchase from "
                f"{format_date(blocking.purchase_date)} requires a contribution first."
            )
            logger.info(f"Purchase on {candidate_date} blocked by {blocking.id}.")
            return SequenceResult(
                valid=False,
                context=error,
                error=error,
                violation=Violation.SEQUENCE,
                blocking_purchase=blocking,
            )

        previous = await self._purchase_repo.find_previous(candidate_date, exclude_id)
        if previous:
            context = (
                f"Last purchase from {format_date(previous.purchase_date)} "
                "has a valid contribution."
            )
        else:
            context = "No previous purchases found - this will be the first purchase."
        return SequenceResult(valid=True, context=context)

    async def check(
        self, request: SequentialPurchaseRequest, is_admin: bool = False
    ) -> SequenceResult:
        return await self.can_record_purchase(request.purchase_date, is_admin=is_admin)

    async def next_purchase_to_contribute(self) -> ContributionQueue:
        """The oldest unsettled purchase and how many remain unsettled."""
        unsettled = await self._purchase_repo.unsettled()
        return ContributionQueue(
            next_purchase=unsettled[0] if unsettled else None,
            outstanding=len(unsettled),
        )

    async def can_contribute(
        self, purchase_id: UUID | str, is_admin: bool = False
    ) -> ContributionEligibility:
        """
        Checks whether a purchase may receive its contribution now.

        Admins may settle any unsettled purchase; everyone else must settle
        the oldest one first.
        """
        purchase = await self._purchase_repo.get(pk=purchase_id)
        if not purchase:
            return ContributionEligibility(
                allowed=False,
                reason="Purchase not found.",
                violation=Violation.NOT_FOUND,
            )

        if await self._contribution_repo.exists_for_purchase(purchase.id):
            return ContributionEligibility(
                allowed=False,
                reason="Purchase already has a contribution.",
                violation=Violation.DUPLICATE_CONTRIBUTION,
            )

        if is_admin:
            return ContributionEligibility(allowed=True)

        queue = await self.next_purchase_to_contribute()
        if queue.next_purchase is not None and queue.next_purchase.id == purchase.id:
            return ContributionEligibility(allowed=True)

        return ContributionEligibility(
            allowed=False,
            reason="You must contribute to older purchases first.",
            violation=Violation.SEQUENCE,
            next_purchase_id=queue.next_purchase.id if queue.next_purchase else None,
        )

    async def check_token_availability(
        self,
        purchase_id: UUID | str,
        requested_tokens: Decimal,
        exclude_contribution_id: UUID | str | None = None,
    ) -> TokenAvailability:
        """
        Checks that consumption fits in the previous purchase's quantity.

        Tokens consumed before a purchase were drawn from the purchase
        preceding it, less whatever that purchase's own contribution already
        claimed. The first purchase has nothing to draw from and is not
        limited.
        """
        purchase = await self._purchase_repo.get(pk=purchase_id)
        if not purchase:
            return TokenAvailability(
                valid=False, error="Purchase not found.", violation=Violation.NOT_FOUND
            )

        previous = await self._purchase_repo.find_previous(
            purchase.purchase_date, exclude_id=purchase.id
        )
        if not previous:
            return TokenAvailability(valid=True)

        drawn = Decimal("0")
        existing = await self._contribution_repo.for_purchase(previous.id)
        if existing and str(existing.id) != str(exclude_contribution_id):
            drawn = existing.tokens_consumed

        available = previous.total_tokens - drawn
        if requested_tokens > available:
            return TokenAvailability(
                valid=False,
                available=available,
                error=(
                    "Insufficient tokens available from previous purchase. "
                    f"Requested: {requested_tokens}, Available: {available}"
                ),
                violation=Violation.TOKEN_AVAILABILITY,
            )
        return TokenAvailability(valid=True, available=available)

    async def contribution_progress(self) -> ContributionProgress:
        """How far contributions have caught up with purchases."""
        total = await self._purchase_repo.count()
        contributed = await self._contribution_repo.count()
        queue = await self.next_purchase_to_contribute()
        percentage = round(contributed / total * 100) if total else 100
        return ContributionProgress(
            total_purchases=total,
            contributed=contributed,
            next_purchase=queue.next_purchase,
            percentage=percentage,
        )
