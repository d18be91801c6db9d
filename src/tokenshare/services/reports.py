"""Service producing cost and efficiency reports from the ledger."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from tokenshare.config import settings
from tokenshare.core import calculations
from tokenshare.core.repositories.contribution import ContributionRepository
from tokenshare.core.repositories.purchase import PurchaseRepository


class ReportError(Exception):
    """Raised when a report cannot be produced."""


class CostReportService:
    """Loads contributions and feeds them to the pure cost calculations."""

    def __init__(
        self,
        purchase_repo: PurchaseRepository,
        contribution_repo: ContributionRepository,
        penalty_rate: Decimal | None = None,
    ):
        self._purchase_repo = purchase_repo
        self._contribution_repo = contribution_repo
        self._penalty_rate = (
            penalty_rate if penalty_rate is not None else settings.EMERGENCY_PENALTY_RATE
        )

    async def cost_breakdown(
        self,
        user_id: UUID | str | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> calculations.CostBreakdown:
        """Breakdown for one user, or for everyone when ``user_id`` is omitted."""
        entries = await self._contribution_repo.with_purchases(user_id, start, end)
        return calculations.calculate_cost_breakdown(entries)

    async def period_analysis(
        self, start: date | None = None, end: date | None = None
    ) -> calculations.PeriodCostAnalysis:
        purchases = await self._purchase_repo.chain()
        entries = await self._contribution_repo.with_purchases(start=start, end=end)
        return calculations.calculate_period_analysis(purchases, entries, start, end)

    async def recommendations(
        self,
        user_id: UUID | str,
        start: date | None = None,
        end: date | None = None,
    ) -> calculations.CostRecommendations:
        breakdown = await self.cost_breakdown(user_id, start, end)
        return calculations.generate_cost_recommendations(breakdown)

    async def account_balance(self, user_id: UUID | str) -> Decimal:
        """
        Running balance of a user's payments against their fair shares.

        The first purchase is taken from the whole ledger, not just the
        user's own contributions, so only the genuine first purchase is
        treated as having no prior consumption.
        """
        first = await self._purchase_repo.earliest()
        entries = await self._contribution_repo.with_purchases(user_id)
        return calculations.calculate_account_balance(
            entries, first.purchase_date if first else None
        )

    async def monthly_costs(
        self, user_id: UUID | str | None = None
    ) -> dict[date, calculations.CostBreakdown]:
        entries = await self._contribution_repo.with_purchases(user_id)
        return calculations.calculate_monthly_costs(entries)

    async def optimal_contribution(
        self,
        purchase_id: UUID | str,
        tokens_consumed: Decimal,
        include_emergency_penalty: bool = True,
    ) -> calculations.OptimalContribution:
        """What should be paid for ``tokens_consumed`` drawn from a purchase."""
        purchase = await self._purchase_repo.get(pk=purchase_id)
        if not purchase:
            raise ReportError(f"Purchase with id {purchase_id} not found.")
        return calculations.calculate_optimal_contribution(
            tokens_consumed,
            purchase,
            penalty_rate=self._penalty_rate,
            include_emergency_penalty=include_emergency_penalty,
        )
