"""Input schemas validated before data reaches the ledger core."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from tokenshare.core.chronology import ReadingType


class _Input(BaseModel):
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)


class PurchaseInput(_Input):
    purchase_date: date
    total_tokens: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    total_payment: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    meter_reading: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    is_emergency: bool = False


class ContributionInput(_Input):
    purchase_id: UUID
    meter_reading: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    tokens_consumed: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    contribution_amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    # Only honoured for admins recording on someone else's behalf
    user_id: UUID | None = None


class ContributionUpdate(_Input):
    meter_reading: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    tokens_consumed: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    contribution_amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)


class MeterReadingInput(_Input):
    reading: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    reading_date: date
    notes: str | None = Field(default=None, max_length=500)


class ReadingCheckRequest(_Input):
    """Ad-hoc chronology check for a reading that is about to be entered."""

    meter_reading: Decimal = Field(ge=0)
    reading_date: date
    type: ReadingType
    exclude_id: UUID | None = None
    total_tokens: Decimal = Field(default=Decimal("0"), ge=0)


class SequentialPurchaseRequest(_Input):
    purchase_date: date
