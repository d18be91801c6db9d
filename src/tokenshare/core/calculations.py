"""Core business logic for cost and efficiency calculations."""

from __future__ import annotations

import enum
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Sequence
from uuid import UUID

from tokenshare.core.dates import iter_months, month_start

ZERO = Decimal("0")
HUNDRED = Decimal("100")
TWO_PLACES = Decimal("0.01")

# (purchase, contribution); anything exposing the model attributes works
Entry = tuple[Any, Any]


def round2(value: Decimal) -> Decimal:
    """Rounds half-up to two decimal places."""
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def safe_divide(numerator: Decimal, denominator: Decimal) -> Decimal:
    """Divides, yielding zero instead of raising when the denominator is zero."""
    if not denominator:
        return ZERO
    return numerator / denominator


def calculate_proportional_cost(
    tokens_used: Decimal, total_tokens: Decimal, total_payment: Decimal
) -> Decimal:
    """
    Calculates the fair share of a purchase's price for the tokens drawn from it.

    Args:
        tokens_used: Tokens consumed by the contributor.
        total_tokens: Tokens bought in the purchase.
        total_payment: Amount paid for the purchase.

    Returns:
        ``tokens_used * total_payment / total_tokens``, or 0 for a zero-token
        purchase.
    """
    return safe_divide(tokens_used * total_payment, total_tokens)


def calculate_cost_per_kwh(purchase: Any) -> Decimal:
    """Price per token of a purchase (0 when it bought no tokens)."""
    return safe_divide(purchase.total_payment, purchase.total_tokens)


def calculate_efficiency(amount_paid: Decimal, true_cost: Decimal) -> Decimal:
    """
    How closely a payment matched the true cost, as a percentage.

    ``100 * min / max`` clamped to [0, 100]; 0 when nothing was paid or owed.
    """
    larger = max(amount_paid, true_cost)
    smaller = min(amount_paid, true_cost)
    efficiency = safe_divide(HUNDRED * smaller, larger)
    return min(max(efficiency, ZERO), HUNDRED)


@dataclass(frozen=True)
class CostBreakdown:
    """Aggregated cost figures for a set of contributions."""

    total_tokens_used: Decimal = ZERO
    total_amount_paid: Decimal = ZERO
    total_true_cost: Decimal = ZERO
    average_cost_per_kwh: Decimal = ZERO
    efficiency: Decimal = ZERO
    overpayment: Decimal = ZERO  # positive when paid more than the true cost
    emergency_premium: Decimal = ZERO
    regular_cost_per_kwh: Decimal = ZERO
    emergency_cost_per_kwh: Decimal = ZERO


def _in_range(purchase: Any, start: date | None, end: date | None) -> bool:
    if start is not None and purchase.purchase_date < start:
        return False
    if end is not None and purchase.purchase_date > end:
        return False
    return True


def filter_entries(
    entries: Iterable[Entry], start: date | None = None, end: date | None = None
) -> list[Entry]:
    """Keeps the pairs whose purchase date falls in the inclusive range."""
    return [entry for entry in entries if _in_range(entry[0], start, end)]


def calculate_cost_breakdown(
    entries: Iterable[Entry],
    start: date | None = None,
    end: date | None = None,
) -> CostBreakdown:
    """
    Derives true cost, efficiency and emergency premium from contributions.

    Each contribution's true cost is its share of the price-per-token of the
    purchase it drew from. The emergency premium is what emergency tokens
    cost above the token-weighted average regular rate.

    Args:
        entries: ``(purchase, contribution)`` pairs.
        start: Optional inclusive lower bound on purchase date.
        end: Optional inclusive upper bound on purchase date.

    Returns:
        A CostBreakdown with every figure rounded to two places.
    """
    selected = filter_entries(entries, start, end)
    if not selected:
        return CostBreakdown()

    tokens_used = ZERO
    amount_paid = ZERO
    true_cost = ZERO
    regular_tokens = ZERO
    regular_cost = ZERO
    emergency_tokens = ZERO
    emergency_cost = ZERO

    for purchase, contribution in selected:
        share = calculate_proportional_cost(
            contribution.tokens_consumed, purchase.total_tokens, purchase.total_payment
        )
        tokens_used += contribution.tokens_consumed
        amount_paid += contribution.contribution_amount
        true_cost += share

        if purchase.is_emergency:
            emergency_tokens += contribution.tokens_consumed
            emergency_cost += share
        else:
            regular_tokens += contribution.tokens_consumed
            regular_cost += share

    regular_rate = safe_divide(regular_cost, regular_tokens)
    emergency_rate = safe_divide(emergency_cost, emergency_tokens)

    # Without regular consumption there is no baseline to compare against.
    emergency_premium = ZERO
    if emergency_tokens and regular_rate:
        emergency_premium = emergency_cost - emergency_tokens * regular_rate

    return CostBreakdown(
        total_tokens_used=round2(tokens_used),
        total_amount_paid=round2(amount_paid),
        total_true_cost=round2(true_cost),
        average_cost_per_kwh=round2(safe_divide(true_cost, tokens_used)),
        efficiency=round2(calculate_efficiency(amount_paid, true_cost)),
        overpayment=round2(amount_paid - true_cost),
        emergency_premium=round2(emergency_premium),
        regular_cost_per_kwh=round2(regular_rate),
        emergency_cost_per_kwh=round2(emergency_rate),
    )


@dataclass(frozen=True)
class UserCostSummary:
    """Cost breakdown for a single contributor."""

    user_id: UUID
    breakdown: CostBreakdown
    purchase_ids: list[UUID] = field(default_factory=list)


@dataclass(frozen=True)
class EmergencyImpact:
    """How emergency purchases shifted the price paid in a period."""

    regular_purchases: int
    emergency_purchases: int
    additional_cost: Decimal
    percentage_increase: Decimal


@dataclass(frozen=True)
class PeriodCostAnalysis:
    """Per-user and overall cost figures over a date range."""

    start: date | None
    end: date | None
    users: list[UserCostSummary]
    total: CostBreakdown
    emergency_impact: EmergencyImpact


def _average_rate(purchases: Sequence[Any]) -> Decimal:
    if not purchases:
        return ZERO
    return sum((calculate_cost_per_kwh(p) for p in purchases), ZERO) / len(purchases)


def calculate_period_analysis(
    purchases: Iterable[Any],
    entries: Iterable[Entry],
    start: date | None = None,
    end: date | None = None,
) -> PeriodCostAnalysis:
    """
    Breaks costs down per contributor and measures the emergency impact.

    The emergency impact compares the mean price-per-token of emergency
    purchases with that of regular ones in the range, and charges the
    difference to every emergency token consumed.
    """
    selected_purchases = [p for p in purchases if _in_range(p, start, end)]
    selected = filter_entries(entries, start, end)

    by_user: dict[UUID, list[Entry]] = defaultdict(list)
    for purchase, contribution in selected:
        by_user[contribution.user_id].append((purchase, contribution))

    users = [
        UserCostSummary(
            user_id=user_id,
            breakdown=calculate_cost_breakdown(user_entries),
            purchase_ids=[purchase.id for purchase, _ in user_entries],
        )
        for user_id, user_entries in by_user.items()
    ]

    regular = [p for p in selected_purchases if not p.is_emergency]
    emergency = [p for p in selected_purchases if p.is_emergency]
    regular_rate = _average_rate(regular)
    emergency_rate = _average_rate(emergency)

    emergency_tokens = sum(
        (c.tokens_consumed for p, c in selected if p.is_emergency), ZERO
    )
    additional_cost = ZERO
    if emergency_tokens and regular_rate:
        additional_cost = emergency_tokens * (emergency_rate - regular_rate)
    percentage_increase = ZERO
    if regular_rate and emergency:
        percentage_increase = (emergency_rate - regular_rate) / regular_rate * HUNDRED

    return PeriodCostAnalysis(
        start=start,
        end=end,
        users=users,
        total=calculate_cost_breakdown(selected),
        emergency_impact=EmergencyImpact(
            regular_purchases=len(regular),
            emergency_purchases=len(emergency),
            additional_cost=round2(additional_cost),
            percentage_increase=round2(percentage_increase),
        ),
    )


@dataclass(frozen=True)
class OptimalContribution:
    """What a contributor should pay for the tokens they drew."""

    base_contribution: Decimal
    emergency_penalty: Decimal
    total: Decimal
    cost_per_kwh: Decimal


def calculate_optimal_contribution(
    tokens_consumed: Decimal,
    purchase: Any,
    penalty_rate: Decimal = Decimal("0.10"),
    include_emergency_penalty: bool = True,
) -> OptimalContribution:
    """Fair share of a purchase plus a surcharge when it was an emergency buy."""
    base = calculate_proportional_cost(
        tokens_consumed, purchase.total_tokens, purchase.total_payment
    )
    penalty = ZERO
    if purchase.is_emergency and include_emergency_penalty:
        penalty = base * penalty_rate

    return OptimalContribution(
        base_contribution=round2(base),
        emergency_penalty=round2(penalty),
        total=round2(base + penalty),
        cost_per_kwh=round2(calculate_cost_per_kwh(purchase)),
    )


class EfficiencyRating(str, enum.Enum):
    """Coarse grade of how well payments track true cost."""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


@dataclass(frozen=True)
class CostRecommendations:
    rating: EfficiencyRating
    recommendations: list[str]
    potential_savings: Decimal


def generate_cost_recommendations(breakdown: CostBreakdown) -> CostRecommendations:
    """Turns a cost breakdown into advice for the contributor."""
    recommendations: list[str] = []
    potential_savings = ZERO

    if breakdown.efficiency >= 95:
        rating = EfficiencyRating.EXCELLENT
        recommendations.append(
            "You are paying very close to your true usage cost. Great job!"
        )
    elif breakdown.efficiency >= 85:
        rating = EfficiencyRating.GOOD
        recommendations.append("Your payments are reasonably aligned with your usage.")
    elif breakdown.efficiency >= 70:
        rating = EfficiencyRating.FAIR
        recommendations.append(
            "Consider adjusting your contribution amounts to better match your usage."
        )
        potential_savings = abs(breakdown.overpayment) * Decimal("0.5")
    else:
        rating = EfficiencyRating.POOR
        recommendations.append(
            "Your payments are significantly misaligned with your actual usage."
        )
        potential_savings = abs(breakdown.overpayment) * Decimal("0.8")

    if breakdown.emergency_premium > 0 and breakdown.total_true_cost:
        impact = breakdown.emergency_premium / breakdown.total_true_cost * HUNDRED
        if impact > 20:
            recommendations.append(
                f"Emergency purchases increased your costs by {impact:.1f}%. "
                "Consider planning ahead to avoid emergency rates."
            )

    tolerance = breakdown.total_true_cost * Decimal("0.1")
    if breakdown.overpayment > tolerance:
        recommendations.append(
            f"You are overpaying by {breakdown.overpayment:.2f}. "
            "Consider reducing your contribution amounts."
        )
    elif breakdown.overpayment < -tolerance:
        recommendations.append(
            f"You are underpaying by {abs(breakdown.overpayment):.2f}. "
            "Consider increasing your contribution amounts."
        )

    return CostRecommendations(
        rating=rating,
        recommendations=recommendations,
        potential_savings=round2(potential_savings),
    )


def calculate_account_balance(
    entries: Iterable[Entry], first_purchase_date: date | None = None
) -> Decimal:
    """
    Running balance of payments against fair shares, in purchase order.

    Nothing was consumed before the very first purchase, so contributions
    against it are credited in full.

    Args:
        entries: ``(purchase, contribution)`` pairs.
        first_purchase_date: Date of the first purchase ever recorded.
            Defaults to the earliest purchase among ``entries``.
    """
    ordered = sorted(entries, key=lambda entry: entry[0].purchase_date)
    if not ordered:
        return ZERO
    if first_purchase_date is None:
        first_purchase_date = ordered[0][0].purchase_date

    balance = ZERO
    for purchase, contribution in ordered:
        consumed = contribution.tokens_consumed
        if purchase.purchase_date == first_purchase_date:
            consumed = ZERO
        fair_share = calculate_proportional_cost(
            consumed, purchase.total_tokens, purchase.total_payment
        )
        balance += contribution.contribution_amount - fair_share

    return round2(balance)


def calculate_monthly_costs(entries: Iterable[Entry]) -> dict[date, CostBreakdown]:
    """One breakdown per calendar month, keyed by the month's first day."""
    grouped: dict[date, list[Entry]] = defaultdict(list)
    for purchase, contribution in entries:
        grouped[month_start(purchase.purchase_date)].append((purchase, contribution))
    if not grouped:
        return {}

    return {
        month: calculate_cost_breakdown(grouped.get(month, []))
        for month in iter_months(min(grouped), max(grouped))
    }
