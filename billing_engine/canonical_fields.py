"""
Canonical field definitions for the billing reconciliation engine.

This module is the single source of truth for all column names used by the
ledger pipeline, findings, metrics and the HTTP surface. Raw export column
names should NEVER be referenced outside of mappings.py.
"""
from enum import Enum
from typing import Tuple, FrozenSet


class CanonicalField(str, Enum):
    """
    Canonical field names used throughout the billing engine.

    Inheriting from str makes these usable as dictionary keys and
    compatible with pandas DataFrame column operations.
    """

    # ==================== Identifiers ====================
    PAYMENT_ID = "PAYMENT_ID"
    """Unique identifier for a payment attempt"""

    CHARGE_ID = "CHARGE_ID"
    """Recurring charge the payment was made against"""

    TENANT_ID = "TENANT_ID"
    """Tenant (ledger user) who made the payment"""

    REFERENCE = "REFERENCE"
    """Payment gateway reference"""

    # ==================== Outcome ====================
    OUTCOME = "OUTCOME"
    """Payment outcome: success, pending or failed"""

    # ==================== Period Metadata ====================
    PERIOD_YEAR = "PERIOD_YEAR"
    """Year the payment was recorded against"""

    PERIOD_MONTH = "PERIOD_MONTH"
    """Month (1-12) the payment was recorded against; null for annual payments"""

    PERIOD_MONTH_END = "PERIOD_MONTH_END"
    """Closing month of a legacy ranged payment"""

    PERIOD_LABEL = "PERIOD_LABEL"
    """Free-text period label written at checkout"""

    PERIOD_MONTH_INVALID = "PERIOD_MONTH_INVALID"
    """Period month was present in the export but not a whole number"""

    PERIOD_MONTH_END_INVALID = "PERIOD_MONTH_END_INVALID"
    """Closing month was present in the export but not a whole number"""

    CADENCE = "CADENCE"
    """Cadence a payment was classified under (monthly or yearly)"""

    # ==================== Time ====================
    CREATED_AT = "CREATED_AT"
    """When the payment attempt was created"""

    PAID_AT = "PAID_AT"
    """When the payment was confirmed"""

    # ==================== Amounts ====================
    AMOUNT = "AMOUNT"
    """Payment amount"""

    OUTSTANDING_AMOUNT = "OUTSTANDING_AMOUNT"
    """Sum owed across unpaid periods"""

    # ==================== Classification ====================
    CLASSIFIED_BY = "CLASSIFIED_BY"
    """Rule that produced the period key"""

    UNCLASSIFIED_REASON = "UNCLASSIFIED_REASON"
    """Why a payment could not be mapped to a period"""

    # ==================== Findings ====================
    FINDING_ID = "finding_id"
    KIND = "kind"
    SEVERITY = "severity"
    TITLE = "title"
    DESCRIPTION = "description"
    EVIDENCE = "evidence"


# ==================== Field Groups ====================

REQUIRED_LEDGER_FIELDS: FrozenSet[CanonicalField] = frozenset({
    CanonicalField.PAYMENT_ID,
    CanonicalField.CHARGE_ID,
    CanonicalField.OUTCOME,
    CanonicalField.AMOUNT,
    CanonicalField.PERIOD_YEAR,
    CanonicalField.PERIOD_MONTH,
    CanonicalField.CREATED_AT,
})
"""Fields every normalized ledger row must carry"""

OPTIONAL_LEDGER_FIELDS: FrozenSet[CanonicalField] = frozenset({
    CanonicalField.TENANT_ID,
    CanonicalField.PERIOD_MONTH_END,
    CanonicalField.PERIOD_LABEL,
    CanonicalField.PAID_AT,
    CanonicalField.REFERENCE,
})

REQUIRED_FINDING_FIELDS: FrozenSet[CanonicalField] = frozenset({
    CanonicalField.FINDING_ID,
    CanonicalField.TENANT_ID,
    CanonicalField.CHARGE_ID,
    CanonicalField.KIND,
    CanonicalField.SEVERITY,
    CanonicalField.TITLE,
    CanonicalField.DESCRIPTION,
    CanonicalField.OUTSTANDING_AMOUNT,
    CanonicalField.EVIDENCE,
})

PERIOD_FIELDS: FrozenSet[CanonicalField] = frozenset({
    CanonicalField.PERIOD_YEAR,
    CanonicalField.PERIOD_MONTH,
    CanonicalField.PERIOD_MONTH_END,
})
"""Nullable integer period metadata"""

DATE_FIELDS: FrozenSet[CanonicalField] = frozenset({
    CanonicalField.CREATED_AT,
    CanonicalField.PAID_AT,
})

AMOUNT_FIELDS: FrozenSet[CanonicalField] = frozenset({
    CanonicalField.AMOUNT,
    CanonicalField.OUTSTANDING_AMOUNT,
})


def get_field_names(fields: FrozenSet[CanonicalField]) -> Tuple[str, ...]:
    """
    Convert a set of CanonicalField enums to a sorted tuple of string names.

    Example:
        >>> names = get_field_names(REQUIRED_LEDGER_FIELDS)
        >>> df[list(names)]
    """
    return tuple(sorted(f.value for f in fields))
