"""Service recording purchases, contributions and meter readings."""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from tortoise.transactions import in_transaction

from tokenshare.core.chronology import ReadingType
from tokenshare.core.models import MeterReading, TokenPurchase, User, UserContribution
from tokenshare.core.permissions import can_modify_contribution, can_modify_purchase
from tokenshare.core.repositories.contribution import ContributionRepository
from tokenshare.core.repositories.meter_reading import MeterReadingRepository
from tokenshare.core.repositories.purchase import PurchaseRepository
from tokenshare.core.repositories.user import UserRepository
from tokenshare.schemas import (
    ContributionInput,
    ContributionUpdate,
    MeterReadingInput,
    PurchaseInput,
)
from tokenshare.services.sequencing import SequencingService
from tokenshare.services.validation import ReadingValidationService

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """Base exception for ledger write errors."""


class RecordNotFound(LedgerError):
    """Raised when a referenced record does not exist."""


class PermissionDenied(LedgerError):
    """Raised when the acting user may not change a record."""


class ValidationFailed(LedgerError):
    """Raised when a write breaks a ledger rule; carries the validator's verdict."""

    def __init__(self, message: str, verdict: Any) -> None:
        self.verdict = verdict
        self.violation = getattr(verdict, "violation", None)
        super().__init__(message)


class LedgerService:
    """
    Runs every write through the validators before committing it.

    Each operation reads, validates and writes inside one database
    transaction. That narrows, but does not close, the window in which two
    concurrent writers both validate against the same state; the integrity
    audit reports anything that slips through.
    """

    def __init__(
        self,
        purchase_repo: PurchaseRepository,
        contribution_repo: ContributionRepository,
        meter_reading_repo: MeterReadingRepository,
        user_repo: UserRepository,
        validation_service: ReadingValidationService,
        sequencing_service: SequencingService,
    ):
        self._purchase_repo = purchase_repo
        self._contribution_repo = contribution_repo
        self._meter_reading_repo = meter_reading_repo
        self._user_repo = user_repo
        self._validation = validation_service
        self._sequencing = sequencing_service

    async def _get_purchase(self, purchase_id: UUID | str) -> TokenPurchase:
        purchase = await self._purchase_repo.get(pk=purchase_id)
        if not purchase:
            raise RecordNotFound(f"Purchase {purchase_id} not found.")
        return purchase

    async def _get_contribution(self, contribution_id: UUID | str) -> UserContribution:
        contribution = await self._contribution_repo.get(pk=contribution_id)
        if not contribution:
            raise RecordNotFound(f"Contribution {contribution_id} not found.")
        return contribution

    async def record_purchase(self, data: PurchaseInput, actor: User) -> TokenPurchase:
        """
        Validates settlement order and meter chronology, then stores the purchase.

        A new purchase goes after any purchase or meter reading already
        recorded on the same date.
        """
        async with in_transaction():
            sequence = await self._sequencing.can_record_purchase(
                data.purchase_date, is_admin=actor.is_admin, include_same_date=True
            )
            if not sequence.valid:
                raise ValidationFailed(sequence.error, sequence)

            verdict = await self._validation.validate(
                data.meter_reading,
                data.purchase_date,
                ReadingType.PURCHASE,
                candidate_tokens=data.total_tokens,
                include_same_date=True,
            )
            if not verdict.valid:
                raise ValidationFailed(verdict.error, verdict)

            purchase = await self._purchase_repo.create(
                creator=actor, **data.model_dump()
            )

        logger.info(f"Purchase {purchase.id} recorded by {actor.name}.")
        return purchase

    async def update_purchase(
        self, purchase_id: UUID | str, data: PurchaseInput, actor: User
    ) -> TokenPurchase:
        """Re-validates an edited purchase, ignoring its own stored values."""
        async with in_transaction():
            purchase = await self._get_purchase(purchase_id)
            settled = await self._contribution_repo.exists_for_purchase(purchase.id)
            if not can_modify_purchase(actor, purchase, settled):
                raise PermissionDenied(
                    f"{actor.name} may not modify purchase {purchase.id}."
                )

            moved = data.purchase_date != purchase.purchase_date
            if moved:
                sequence = await self._sequencing.can_record_purchase(
                    data.purchase_date,
                    is_admin=actor.is_admin,
                    exclude_id=purchase.id,
                    include_same_date=True,
                )
                if not sequence.valid:
                    raise ValidationFailed(sequence.error, sequence)

            verdict = await self._validation.validate(
                data.meter_reading,
                data.purchase_date,
                ReadingType.PURCHASE,
                exclude_id=purchase.id,
                candidate_tokens=data.total_tokens,
                include_same_date=moved,
            )
            if not verdict.valid:
                raise ValidationFailed(verdict.error, verdict)

            purchase = await self._purchase_repo.update(purchase, **data.model_dump())

        logger.info(f"Purchase {purchase.id} updated by {actor.name}.")
        return purchase

    async def delete_purchase(self, purchase_id: UUID | str, actor: User) -> None:
        """Deletes a purchase together with its contribution."""
        async with in_transaction():
            purchase = await self._get_purchase(purchase_id)
            settled = await self._contribution_repo.exists_for_purchase(purchase.id)
            if not can_modify_purchase(actor, purchase, settled):
                raise PermissionDenied(
                    f"{actor.name} may not delete purchase {purchase.id}."
                )
            await self._purchase_repo.delete(purchase.id)

        logger.info(f"Purchase {purchase_id} deleted by {actor.name}.")

    async def record_contribution(
        self, data: ContributionInput, actor: User
    ) -> UserContribution:
        """Settles a purchase, enforcing order, reading match and token availability."""
        async with in_transaction():
            purchase = await self._get_purchase(data.purchase_id)

            contributor = actor
            if actor.is_admin and data.user_id:
                contributor = await self._user_repo.get(pk=data.user_id)
                if not contributor:
                    raise RecordNotFound(f"User {data.user_id} not found.")

            eligibility = await self._sequencing.can_contribute(
                purchase.id, is_admin=actor.is_admin
            )
            if not eligibility.allowed:
                raise ValidationFailed(eligibility.reason, eligibility)

            reading = await self._validation.validate_contribution_reading(
                data.meter_reading, purchase.id
            )
            if not reading.valid:
                raise ValidationFailed(reading.error, reading)

            availability = await self._sequencing.check_token_availability(
                purchase.id, data.tokens_consumed
            )
            if not availability.valid:
                raise ValidationFailed(availability.error, availability)

            contribution = await self._contribution_repo.create(
                purchase=purchase,
                user=contributor,
                meter_reading=data.meter_reading,
                tokens_consumed=data.tokens_consumed,
                contribution_amount=data.contribution_amount,
            )

        logger.info(
            f"Contribution {contribution.id} recorded for purchase {purchase.id} "
            f"by {contributor.name}."
        )
        return contribution

    async def update_contribution(
        self, contribution_id: UUID | str, data: ContributionUpdate, actor: User
    ) -> UserContribution:
        """Re-checks reading match and availability for an edited contribution."""
        async with in_transaction():
            contribution = await self._get_contribution(contribution_id)
            if not can_modify_contribution(actor, contribution):
                raise PermissionDenied(
                    f"{actor.name} may not modify contribution {contribution.id}."
                )

            reading = await self._validation.validate_contribution_reading(
                data.meter_reading, contribution.purchase_id
            )
            if not reading.valid:
                raise ValidationFailed(reading.error, reading)

            availability = await self._sequencing.check_token_availability(
                contribution.purchase_id,
                data.tokens_consumed,
                exclude_contribution_id=contribution.id,
            )
            if not availability.valid:
                raise ValidationFailed(availability.error, availability)

            contribution = await self._contribution_repo.update(
                contribution, **data.model_dump()
            )

        logger.info(f"Contribution {contribution.id} updated by {actor.name}.")
        return contribution

    async def delete_contribution(self, contribution_id: UUID | str, actor: User) -> None:
        async with in_transaction():
            contribution = await self._get_contribution(contribution_id)
            if not can_modify_contribution(actor, contribution):
                raise PermissionDenied(
                    f"{actor.name} may not delete contribution {contribution.id}."
                )
            await self._contribution_repo.delete(contribution.id)

        logger.info(f"Contribution {contribution_id} deleted by {actor.name}.")

    async def record_meter_reading(
        self, data: MeterReadingInput, actor: User
    ) -> tuple[MeterReading, list[str]]:
        """
        Stores a standalone meter reading.

        Returns:
            The stored reading and any non-blocking warnings about it.
        """
        async with in_transaction():
            check = await self._validation.validate_meter_reading(
                data.reading, data.reading_date, actor.id
            )
            if not check.valid:
                raise ValidationFailed("; ".join(check.errors), check)

            reading = await self._meter_reading_repo.create(
                user=actor, **data.model_dump()
            )

        for warning in check.warnings:
            logger.warning(f"Reading {reading.id}: {warning}")
        return reading, check.warnings
