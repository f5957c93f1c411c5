"""
Billing Engine - recurring charge reconciliation modules.
"""
from .models import (
    Cadence,
    PaymentOutcome,
    ChargeDefinition,
    ChargePreference,
    PaymentRecord,
    Period,
    PeriodKey,
    Unclassified,
    ChargePaymentStatus,
    InvalidChargeDefinition,
    LedgerSchemaError,
)
from .expand import generate_periods, period_label, next_payment_period
from .rules import (
    ClassificationRule,
    RuleRegistry,
    classify,
    classify_all,
    default_registry,
    explain_classifications,
)
from .reconcile import (
    reconcile,
    reconcile_charges,
    resolve_cadence,
    not_applicable_status,
    is_period_paid,
    find_pending_payment,
    CADENCE_POLICIES,
)
from .io import CsvSourceLoader, ExcelSourceLoader, load_ledger
from .normalize import normalize_payment_ledger, records_from_dicts
from .findings import Finding, generate_findings
from .metrics import calculate_kpis, calculate_tenant_summary, charge_badge
from .canonical_fields import CanonicalField

__all__ = [
    "Cadence",
    "PaymentOutcome",
    "ChargeDefinition",
    "ChargePreference",
    "PaymentRecord",
    "Period",
    "PeriodKey",
    "Unclassified",
    "ChargePaymentStatus",
    "InvalidChargeDefinition",
    "LedgerSchemaError",
    "generate_periods",
    "period_label",
    "next_payment_period",
    "ClassificationRule",
    "RuleRegistry",
    "classify",
    "classify_all",
    "default_registry",
    "explain_classifications",
    "reconcile",
    "reconcile_charges",
    "resolve_cadence",
    "not_applicable_status",
    "is_period_paid",
    "find_pending_payment",
    "CADENCE_POLICIES",
    "CsvSourceLoader",
    "ExcelSourceLoader",
    "load_ledger",
    "normalize_payment_ledger",
    "records_from_dicts",
    "Finding",
    "generate_findings",
    "calculate_kpis",
    "calculate_tenant_summary",
    "charge_badge",
    "CanonicalField",
]
