"""Service auditing the stored purchase chain for invariant breaches."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from tokenshare.core.integrity import IntegrityIssue, find_chain_violations
from tokenshare.core.repositories.contribution import ContributionRepository
from tokenshare.core.repositories.purchase import PurchaseRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IntegrityReport:
    total_purchases: int
    total_contributions: int
    issues: list[IntegrityIssue] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return not self.issues


class IntegrityService:
    """Re-validates the committed ledger after the fact."""

    def __init__(
        self,
        purchase_repo: PurchaseRepository,
        contribution_repo: ContributionRepository,
    ):
        self._purchase_repo = purchase_repo
        self._contribution_repo = contribution_repo

    async def audit(self) -> IntegrityReport:
        purchases = await self._purchase_repo.chain()
        contributions = {
            contribution.purchase_id: contribution
            for contribution in await self._contribution_repo.all()
        }
        chain = [(purchase, contributions.get(purchase.id)) for purchase in purchases]

        issues = find_chain_violations(chain)
        for issue in issues:
            logger.warning(
                f"{issue.violation.value} on record {issue.record_id}: {issue.message}"
            )

        return IntegrityReport(
            total_purchases=len(purchases),
            total_contributions=len(contributions),
            issues=issues,
        )
