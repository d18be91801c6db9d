"""Ownership rules for editing ledger records."""

from __future__ import annotations

from typing import Any


def can_modify_purchase(actor: Any, purchase: Any, is_settled: bool) -> bool:
    """
    Whether ``actor`` may edit or delete ``purchase``.

    Admins always may. Otherwise only the creator, and only while no
    contribution references the purchase.
    """
    if actor.is_admin:
        return True
    return purchase.creator_id == actor.id and not is_settled


def can_modify_contribution(actor: Any, contribution: Any) -> bool:
    """Admins and the contributing user may edit or delete a contribution."""
    return actor.is_admin or contribution.user_id == actor.id
