"""Invariant checks over a complete purchase/contribution chain."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Sequence
from uuid import UUID

from tokenshare.core.dates import format_date
from tokenshare.core.verdicts import Violation


@dataclass(frozen=True)
class IntegrityIssue:
    violation: Violation
    record_id: UUID
    purchase_date: date
    message: str


def find_chain_violations(
    chain: Sequence[tuple[Any, Any | None]],
) -> list[IntegrityIssue]:
    """
    Re-checks stored purchases against the rules enforced at entry time.

    Concurrent writes can each pass validation against stale data, so a
    committed chain may still break the rules. Checks, per purchase:

    - its reading does not drop below the previous purchase's reading;
    - its reading stays within the previous reading plus the previous
      purchase's tokens (plus its own tokens for the latest purchase);
    - a purchase is left unsettled only if it is the latest one;
    - its contribution carries the purchase's reading;
    - together with the previous purchase's own contribution, its
      contribution draws no more tokens than the previous purchase bought.

    Args:
        chain: ``(purchase, contribution or None)`` pairs in purchase order.
    """
    issues: list[IntegrityIssue] = []
    last_index = len(chain) - 1

    for index, (purchase, contribution) in enumerate(chain):
        when = format_date(purchase.purchase_date)
        previous = chain[index - 1][0] if index > 0 else None

        if previous is not None:
            if purchase.meter_reading < previous.meter_reading:
                issues.append(
                    IntegrityIssue(
                        Violation.RANGE,
                        purchase.id,
                        purchase.purchase_date,
                        f"Reading {purchase.meter_reading} on {when} is below the "
                        f"previous reading {previous.meter_reading}.",
                    )
                )
            ceiling = previous.meter_reading + previous.total_tokens
            if index == last_index:
                ceiling += purchase.total_tokens
            if purchase.meter_reading > ceiling:
                issues.append(
                    IntegrityIssue(
                        Violation.RANGE,
                        purchase.id,
                        purchase.purchase_date,
                        f"Reading {purchase.meter_reading} on {when} exceeds the "
                        f"available ceiling of {ceiling}.",
                    )
                )

        if contribution is None:
            if index != last_index:
                issues.append(
                    IntegrityIssue(
                        Violation.SEQUENCE,
                        purchase.id,
                        purchase.purchase_date,
                        f"Purchase on {when} has no contribution but newer "
                        "purchases were recorded after it.",
                    )
                )
            continue

        if contribution.meter_reading != purchase.meter_reading:
            issues.append(
                IntegrityIssue(
                    Violation.READING_MISMATCH,
                    contribution.id,
                    purchase.purchase_date,
                    f"Contribution reading {contribution.meter_reading} does not "
                    f"match the purchase reading {purchase.meter_reading} on {when}.",
                )
            )

        if previous is not None:
            claimed = chain[index - 1][1]
            drawn = contribution.tokens_consumed
            if claimed is not None:
                drawn += claimed.tokens_consumed
            if drawn > previous.total_tokens:
                issues.append(
                    IntegrityIssue(
                        Violation.TOKEN_AVAILABILITY,
                        contribution.id,
                        purchase.purchase_date,
                        f"Contribution on {when} and the one before it drew {drawn} kWh "
                        f"but the previous purchase only bought {previous.total_tokens}.",
                    )
                )

    return issues
