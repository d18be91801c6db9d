"""Verdict kinds shared by the validators."""

from __future__ import annotations

import enum


class Violation(str, enum.Enum):
    """Why a validator rejected its input."""

    RANGE = "RangeViolation"
    SEQUENCE = "SequenceViolation"
    READING_MISMATCH = "ReadingMismatch"
    TOKEN_AVAILABILITY = "TokenAvailability"
    DUPLICATE_CONTRIBUTION = "DuplicateContribution"
    DUPLICATE_READING_DATE = "DuplicateReadingDate"
    NO_PURCHASES = "NoPurchases"
    CONSUMPTION_ANOMALY = "ConsumptionAnomaly"
    NOT_FOUND = "NotFound"
