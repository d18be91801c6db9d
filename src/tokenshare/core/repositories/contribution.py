"""Repository for UserContribution model."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from tokenshare.core.models import TokenPurchase, UserContribution
from tokenshare.core.repositories.base import BaseRepository
from tokenshare.core.repositories.purchase import chronological


class ContributionRepository(BaseRepository[UserContribution]):
    """Contribution-specific repository operations."""

    def __init__(self) -> None:
        super().__init__(UserContribution)

    async def for_purchase(self, purchase_id: UUID | str) -> UserContribution | None:
        """Get the contribution settling a purchase, if any."""
        return await self.model.get_or_none(purchase_id=purchase_id)

    async def exists_for_purchase(self, purchase_id: UUID | str) -> bool:
        """Whether a purchase has already been settled."""
        return await self.model.filter(purchase_id=purchase_id).exists()

    async def with_purchases(
        self,
        user_id: UUID | str | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> list[tuple[TokenPurchase, UserContribution]]:
        """
        Returns ``(purchase, contribution)`` pairs ordered by purchase date,
        optionally narrowed to one user and an inclusive purchase-date range.
        """
        query = self.model.all().prefetch_related("purchase")
        if user_id is not None:
            query = query.filter(user_id=user_id)
        if start is not None:
            query = query.filter(purchase__purchase_date__gte=start)
        if end is not None:
            query = query.filter(purchase__purchase_date__lte=end)

        contributions = await query
        pairs = [(c.purchase, c) for c in contributions]
        pairs.sort(key=lambda pair: chronological(pair[0]))
        return pairs
