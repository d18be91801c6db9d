"""Tests for input schemas."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError

from tokenshare.core.chronology import ReadingType
from tokenshare.schemas import (
    ContributionInput,
    MeterReadingInput,
    PurchaseInput,
    ReadingCheckRequest,
)


def test_purchase_input_parses_strings():
    data = PurchaseInput(
        purchase_date="2025-01-05",
        total_tokens="100",
        total_payment="50.25",
        meter_reading="1000",
    )

    assert data.purchase_date == date(2025, 1, 5)
    assert data.total_payment == Decimal("50.25")
    assert data.is_emergency is False


@pytest.mark.parametrize(
    "field, value",
    [
        ("total_tokens", "0"),
        ("total_payment", "-1"),
        ("meter_reading", "-0.01"),
        ("total_tokens", "1.234"),
    ],
)
def test_purchase_input_rejects_invalid_amounts(field, value):
    payload = {
        "purchase_date": date(2025, 1, 5),
        "total_tokens": "100",
        "total_payment": "50",
        "meter_reading": "1000",
        field: value,
    }

    with pytest.raises(ValidationError):
        PurchaseInput(**payload)


def test_inputs_are_frozen():
    data = MeterReadingInput(reading="1000", reading_date=date(2025, 1, 5))

    with pytest.raises(ValidationError):
        data.reading = Decimal("2000")


def test_meter_reading_notes_are_stripped_and_limited():
    data = MeterReadingInput(
        reading="1000", reading_date=date(2025, 1, 5), notes="  after trip  "
    )
    assert data.notes == "after trip"

    with pytest.raises(ValidationError):
        MeterReadingInput(reading="1000", reading_date=date(2025, 1, 5), notes="x" * 501)


def test_contribution_requires_positive_consumption():
    with pytest.raises(ValidationError):
        ContributionInput(
            purchase_id=uuid4(),
            meter_reading="1000",
            tokens_consumed="0",
            contribution_amount="10",
        )


def test_reading_check_request_defaults():
    request = ReadingCheckRequest(
        meter_reading="1000", reading_date="2025-01-05", type="purchase"
    )

    assert request.type == ReadingType.PURCHASE
    assert request.total_tokens == Decimal("0")
    assert request.exclude_id is None
