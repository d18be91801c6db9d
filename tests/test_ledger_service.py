"""Integration tests for the LedgerService."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from factories import make_purchase, make_reading, settle
from tokenshare.core.models import MeterReading, TokenPurchase, UserContribution
from tokenshare.core.repositories.contribution import ContributionRepository
from tokenshare.core.repositories.meter_reading import MeterReadingRepository
from tokenshare.core.repositories.purchase import PurchaseRepository
from tokenshare.core.repositories.user import UserRepository
from tokenshare.core.verdicts import Violation
from tokenshare.schemas import (
    ContributionInput,
    ContributionUpdate,
    MeterReadingInput,
    PurchaseInput,
)
from tokenshare.services.ledger import (
    LedgerService,
    PermissionDenied,
    RecordNotFound,
    ValidationFailed,
)
from tokenshare.services.integrity import IntegrityService
from tokenshare.services.sequencing import SequencingService
from tokenshare.services.validation import ReadingValidationService

pytestmark = pytest.mark.usefixtures("db_session")


@pytest.fixture
def ledger() -> LedgerService:
    """Provides a LedgerService wired to real repositories."""
    purchase_repo = PurchaseRepository()
    contribution_repo = ContributionRepository()
    meter_reading_repo = MeterReadingRepository()
    return LedgerService(
        purchase_repo=purchase_repo,
        contribution_repo=contribution_repo,
        meter_reading_repo=meter_reading_repo,
        user_repo=UserRepository(),
        validation_service=ReadingValidationService(purchase_repo, meter_reading_repo),
        sequencing_service=SequencingService(purchase_repo, contribution_repo),
    )


def purchase_input(on, reading, tokens="100", payment="50", emergency=False):
    return PurchaseInput(
        purchase_date=on,
        meter_reading=reading,
        total_tokens=tokens,
        total_payment=payment,
        is_emergency=emergency,
    )


def contribution_input(purchase, tokens="40", amount="20", reading=None, user=None):
    return ContributionInput(
        purchase_id=purchase.id,
        meter_reading=reading if reading is not None else purchase.meter_reading,
        tokens_consumed=tokens,
        contribution_amount=amount,
        user_id=user.id if user else None,
    )


@pytest.mark.asyncio
async def test_record_first_purchase(ledger, alice):
    purchase = await ledger.record_purchase(
        purchase_input(date(2025, 1, 1), "1000", emergency=True), alice
    )

    stored = await TokenPurchase.get(id=purchase.id)
    assert stored.creator_id == alice.id
    assert stored.meter_reading == Decimal("1000")
    assert stored.is_emergency is True


@pytest.mark.asyncio
async def test_purchase_after_unsettled_one_is_rejected(ledger, alice, admin):
    await ledger.record_purchase(purchase_input(date(2025, 1, 1), "1000"), alice)

    with pytest.raises(ValidationFailed) as exc_info:
        await ledger.record_purchase(purchase_input(date(2025, 1, 10), "1090"), alice)

    assert exc_info.value.violation == Violation.SEQUENCE
    assert "1 Jan 2025" in str(exc_info.value)
    assert await TokenPurchase.all().count() == 1

    # Admins may record out of order
    await ledger.record_purchase(purchase_input(date(2025, 1, 10), "1090"), admin)
    assert await TokenPurchase.all().count() == 2


@pytest.mark.asyncio
async def test_purchase_reading_cannot_decrease(ledger, alice):
    first = await ledger.record_purchase(
        purchase_input(date(2025, 1, 1), "1000"), alice
    )
    await settle(first, alice)

    with pytest.raises(ValidationFailed) as exc_info:
        await ledger.record_purchase(purchase_input(date(2025, 1, 10), "990"), alice)

    assert exc_info.value.violation == Violation.RANGE
    assert exc_info.value.verdict.suggested_minimum == Decimal("1000")


@pytest.mark.asyncio
async def test_record_contribution(ledger, alice):
    purchase = await make_purchase(alice, date(2025, 1, 1), "1000")

    contribution = await ledger.record_contribution(contribution_input(purchase), alice)

    stored = await UserContribution.get(id=contribution.id)
    assert stored.user_id == alice.id
    assert stored.purchase_id == purchase.id
    assert stored.tokens_consumed == Decimal("40")


@pytest.mark.asyncio
async def test_contribution_reading_must_match(ledger, alice):
    purchase = await make_purchase(alice, date(2025, 1, 1), "1000")

    with pytest.raises(ValidationFailed) as exc_info:
        await ledger.record_contribution(
            contribution_input(purchase, reading=Decimal("1001")), alice
        )

    assert exc_info.value.violation == Violation.READING_MISMATCH
    assert await UserContribution.all().count() == 0


@pytest.mark.asyncio
async def test_contributions_follow_purchase_order(ledger, alice):
    await make_purchase(alice, date(2025, 1, 1), "1000")
    newer = await make_purchase(alice, date(2025, 1, 10), "1090")

    with pytest.raises(ValidationFailed) as exc_info:
        await ledger.record_contribution(contribution_input(newer), alice)

    assert exc_info.value.violation == Violation.SEQUENCE


@pytest.mark.asyncio
async def test_contribution_on_behalf_of_another_user(ledger, alice, bob, admin):
    first = await make_purchase(alice, date(2025, 1, 1), "1000")
    second = await make_purchase(alice, date(2025, 1, 10), "1090")

    by_admin = await ledger.record_contribution(
        contribution_input(first, user=bob), admin
    )
    # A regular user's user_id is ignored
    by_alice = await ledger.record_contribution(
        contribution_input(second, user=bob), alice
    )

    assert by_admin.user_id == bob.id
    assert by_alice.user_id == alice.id


@pytest.mark.asyncio
async def test_contribution_limited_by_previous_purchase_tokens(ledger, alice):
    first = await make_purchase(alice, date(2025, 1, 1), "1000", total_tokens="100")
    second = await make_purchase(alice, date(2025, 1, 10), "1090")
    await settle(first, alice, tokens_consumed="30")

    with pytest.raises(ValidationFailed) as exc_info:
        await ledger.record_contribution(contribution_input(second, tokens="80"), alice)
    assert exc_info.value.violation == Violation.TOKEN_AVAILABILITY

    contribution = await ledger.record_contribution(
        contribution_input(second, tokens="70"), alice
    )
    assert contribution.purchase_id == second.id


@pytest.mark.asyncio
async def test_unknown_records_raise_not_found(ledger, alice):
    with pytest.raises(RecordNotFound):
        await ledger.record_contribution(
            ContributionInput(
                purchase_id=uuid4(),
                meter_reading="1000",
                tokens_consumed="10",
                contribution_amount="5",
            ),
            alice,
        )
    with pytest.raises(RecordNotFound):
        await ledger.delete_contribution(uuid4(), alice)


@pytest.mark.asyncio
async def test_update_purchase_permissions(ledger, alice, bob, admin):
    purchase = await make_purchase(alice, date(2025, 1, 1), "1000")
    edit = purchase_input(date(2025, 1, 1), "1000", payment="55")

    with pytest.raises(PermissionDenied):
        await ledger.update_purchase(purchase.id, edit, bob)

    updated = await ledger.update_purchase(purchase.id, edit, alice)
    assert updated.total_payment == Decimal("55")

    await settle(purchase, alice)
    with pytest.raises(PermissionDenied):
        await ledger.update_purchase(purchase.id, edit, alice)

    await ledger.update_purchase(
        purchase.id, purchase_input(date(2025, 1, 1), "1000", payment="60"), admin
    )
    assert (await TokenPurchase.get(id=purchase.id)).total_payment == Decimal("60")


@pytest.mark.asyncio
async def test_update_purchase_revalidates_reading(ledger, alice):
    first = await make_purchase(alice, date(2025, 1, 1), "1000")
    await settle(first, alice)
    second = await make_purchase(alice, date(2025, 1, 10), "1090")

    with pytest.raises(ValidationFailed) as exc_info:
        await ledger.update_purchase(
            second.id, purchase_input(date(2025, 1, 10), "999"), alice
        )

    assert exc_info.value.violation == Violation.RANGE
    assert (await TokenPurchase.get(id=second.id)).meter_reading == Decimal("1090")


@pytest.mark.asyncio
async def test_delete_purchase_removes_its_contribution(ledger, alice, admin):
    purchase = await make_purchase(alice, date(2025, 1, 1), "1000")
    await settle(purchase, alice)

    with pytest.raises(PermissionDenied):
        await ledger.delete_purchase(purchase.id, alice)

    await ledger.delete_purchase(purchase.id, admin)

    assert await TokenPurchase.all().count() == 0
    assert await UserContribution.all().count() == 0


@pytest.mark.asyncio
async def test_update_and_delete_contribution(ledger, alice, bob):
    first = await make_purchase(alice, date(2025, 1, 1), "1000")
    contribution = await settle(first, alice, tokens_consumed="40", amount="20")
    change = ContributionUpdate(
        meter_reading="1000", tokens_consumed="45", contribution_amount="22.50"
    )

    with pytest.raises(PermissionDenied):
        await ledger.update_contribution(contribution.id, change, bob)

    updated = await ledger.update_contribution(contribution.id, change, alice)
    assert updated.contribution_amount == Decimal("22.50")

    with pytest.raises(ValidationFailed) as exc_info:
        await ledger.update_contribution(
            contribution.id,
            ContributionUpdate(
                meter_reading="1005", tokens_consumed="45", contribution_amount="20"
            ),
            alice,
        )
    assert exc_info.value.violation == Violation.READING_MISMATCH

    with pytest.raises(PermissionDenied):
        await ledger.delete_contribution(contribution.id, bob)
    await ledger.delete_contribution(contribution.id, alice)
    assert await UserContribution.all().count() == 0


@pytest.mark.asyncio
async def test_record_meter_reading(ledger, alice):
    data = MeterReadingInput(reading="1050", reading_date=date(2025, 1, 5))

    with pytest.raises(ValidationFailed) as exc_info:
        await ledger.record_meter_reading(data, alice)
    assert exc_info.value.violation == Violation.NO_PURCHASES

    await make_purchase(alice, date(2025, 1, 1), "1000")
    reading, warnings = await ledger.record_meter_reading(data, alice)

    assert warnings == []
    stored = await MeterReading.get(id=reading.id)
    assert stored.user_id == alice.id
    assert stored.reading == Decimal("1050")


async def audit_is_healthy() -> bool:
    report = await IntegrityService(
        PurchaseRepository(), ContributionRepository()
    ).audit()
    return report.healthy


@pytest.mark.asyncio
async def test_same_date_purchase_waits_for_unsettled_one(ledger, alice):
    first = await make_purchase(alice, date(2025, 1, 1), "1000", total_tokens="100")
    await settle(first, alice)
    await make_purchase(alice, date(2025, 1, 10), "1090", total_tokens="100")

    with pytest.raises(ValidationFailed) as exc_info:
        await ledger.record_purchase(
            purchase_input(date(2025, 1, 10), "1000", tokens="100"), alice
        )

    assert exc_info.value.violation == Violation.SEQUENCE
    assert "10 Jan 2025" in str(exc_info.value)
    assert await TokenPurchase.all().count() == 2
    assert await audit_is_healthy()


@pytest.mark.asyncio
async def test_accepted_writes_keep_the_audit_healthy(ledger, alice):
    first = await ledger.record_purchase(
        purchase_input(date(2025, 1, 1), "1000"), alice
    )
    assert await audit_is_healthy()

    await ledger.record_contribution(contribution_input(first), alice)
    assert await audit_is_healthy()

    second = await ledger.record_purchase(
        purchase_input(date(2025, 1, 10), "1090"), alice
    )
    assert await audit_is_healthy()

    with pytest.raises(ValidationFailed):
        await ledger.record_purchase(purchase_input(date(2025, 1, 10), "1000"), alice)

    await ledger.record_contribution(contribution_input(second), alice)
    assert await audit_is_healthy()

    # Once settled, a same-day purchase goes after it and may not read lower
    with pytest.raises(ValidationFailed) as exc_info:
        await ledger.record_purchase(purchase_input(date(2025, 1, 10), "1050"), alice)
    assert exc_info.value.violation == Violation.RANGE
    assert exc_info.value.verdict.suggested_minimum == Decimal("1090")

    third = await ledger.record_purchase(
        purchase_input(date(2025, 1, 10), "1095"), alice
    )
    assert await audit_is_healthy()

    chain = await PurchaseRepository().chain()
    assert [p.id for p in chain] == [first.id, second.id, third.id]


@pytest.mark.asyncio
async def test_purchase_cannot_read_below_same_day_meter_reading(ledger, alice):
    first = await make_purchase(alice, date(2025, 1, 1), "1000", total_tokens="200")
    await settle(first, alice)
    await make_reading(alice, date(2025, 1, 10), "1150")

    with pytest.raises(ValidationFailed) as exc_info:
        await ledger.record_purchase(purchase_input(date(2025, 1, 10), "1120"), alice)

    assert exc_info.value.violation == Violation.RANGE
    assert exc_info.value.verdict.suggested_minimum == Decimal("1150")

    purchase = await ledger.record_purchase(
        purchase_input(date(2025, 1, 10), "1150"), alice
    )
    assert purchase.meter_reading == Decimal("1150")
