"""Repository for TokenPurchase model."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from tokenshare.core.models import TokenPurchase, UserContribution
from tokenshare.core.repositories.base import BaseRepository


def chronological(purchase: TokenPurchase) -> tuple[date, Decimal]:
    """Sort key: purchase date, then meter reading for same-day purchases."""
    return purchase.purchase_date, purchase.meter_reading


class PurchaseRepository(BaseRepository[TokenPurchase]):
    """Purchase-specific repository operations."""

    def __init__(self) -> None:
        super().__init__(TokenPurchase)

    def _excluding(self, exclude_id: UUID | str | None):
        query = self.model.all()
        if exclude_id:
            query = query.exclude(id=exclude_id)
        return query

    async def _on_date(
        self, target: TokenPurchase | None, exclude_id: UUID | str | None
    ) -> list[TokenPurchase]:
        if target is None:
            return []
        return await self._excluding(exclude_id).filter(
            purchase_date=target.purchase_date
        )

    async def find_previous(
        self, target_date: date, exclude_id: UUID | str | None = None
    ) -> TokenPurchase | None:
        """Latest purchase dated strictly before ``target_date``."""
        latest = (
            await self._excluding(exclude_id)
            .filter(purchase_date__lt=target_date)
            .order_by("-purchase_date")
            .first()
        )
        same_day = await self._on_date(latest, exclude_id)
        return max(same_day, key=chronological, default=None)

    async def find_next(
        self, target_date: date, exclude_id: UUID | str | None = None
    ) -> TokenPurchase | None:
        """Earliest purchase dated strictly after ``target_date``."""
        earliest = (
            await self._excluding(exclude_id)
            .filter(purchase_date__gt=target_date)
            .order_by("purchase_date")
            .first()
        )
        same_day = await self._on_date(earliest, exclude_id)
        return min(same_day, key=chronological, default=None)

    async def latest_on_date(
        self, target_date: date, exclude_id: UUID | str | None = None
    ) -> TokenPurchase | None:
        """The last purchase in chronological order on exactly ``target_date``."""
        same_day = await self._excluding(exclude_id).filter(purchase_date=target_date)
        return max(same_day, key=chronological, default=None)

    async def earliest(self) -> TokenPurchase | None:
        """The first purchase ever recorded."""
        first = await self.model.all().order_by("purchase_date").first()
        same_day = await self._on_date(first, None)
        return min(same_day, key=chronological, default=None)

    async def chain(self) -> list[TokenPurchase]:
        """All purchases in chronological order."""
        return sorted(await self.model.all(), key=chronological)

    async def unsettled(
        self,
        before: date | None = None,
        exclude_id: UUID | str | None = None,
        inclusive: bool = False,
    ) -> list[TokenPurchase]:
        """
        Purchases without a contribution, oldest first.

        ``before`` is exclusive unless ``inclusive`` is set, in which case
        purchases on that date are included too.
        """
        settled_ids = await UserContribution.all().values_list(
            "purchase_id", flat=True
        )
        query = self._excluding(exclude_id)
        if settled_ids:
            query = query.exclude(id__in=list(settled_ids))
        if before is not None:
            if inclusive:
                query = query.filter(purchase_date__lte=before)
            else:
                query = query.filter(purchase_date__lt=before)
        return sorted(await query, key=chronological)

    async def oldest_unsettled(
        self,
        before: date | None = None,
        exclude_id: UUID | str | None = None,
        inclusive: bool = False,
    ) -> TokenPurchase | None:
        """The oldest purchase without a contribution, optionally before a date."""
        unsettled = await self.unsettled(
            before=before, exclude_id=exclude_id, inclusive=inclusive
        )
        return unsettled[0] if unsettled else None

    async def total_tokens_through(self, target_date: date) -> Decimal:
        """Sum of tokens bought on or before ``target_date``."""
        amounts = await self.model.filter(purchase_date__lte=target_date).values_list(
            "total_tokens", flat=True
        )
        return sum((Decimal(str(amount)) for amount in amounts), Decimal("0"))
