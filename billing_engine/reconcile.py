"""
Reconciliation logic - match classified payments to generated billing periods.

This module provides:
1. reconcile: status of one charge for one tenant (the evaluation entry point)
2. reconcile_charges: the same for every charge of a building
3. is_period_paid / find_pending_payment: pre-checkout ledger checks
"""
import logging
from collections import Counter
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from config import config, ReconciliationConfig
from .expand import generate_periods
from .models import (
    Cadence,
    ChargeDefinition,
    ChargePreference,
    ChargePaymentStatus,
    InvalidChargeDefinition,
    PaidPeriod,
    PaymentOutcome,
    PaymentRecord,
    PeriodKey,
    UnpaidPeriod,
    coerce_date,
)
from .rules import RuleRegistry, classify_all, default_registry

logger = logging.getLogger(__name__)

KeyedPayments = List[Tuple[PaymentRecord, PeriodKey]]


# ==================== Charge Validation ====================

def validate_charge(charge: ChargeDefinition) -> Cadence:
    """
    Check a charge definition and return its cadence.

    Raises:
        InvalidChargeDefinition: non-positive amount or unknown cadence
    """
    try:
        cadence = Cadence(charge.cadence)
    except ValueError:
        raise InvalidChargeDefinition(charge.charge_id, f"unrecognized cadence {charge.cadence!r}")

    try:
        amount = Decimal(str(charge.amount))
    except InvalidOperation:
        raise InvalidChargeDefinition(charge.charge_id, f"amount {charge.amount!r} is not a number")

    if not amount.is_finite() or amount <= 0:
        raise InvalidChargeDefinition(charge.charge_id, f"amount must be positive, got {charge.amount}")

    return cadence


def period_amount(charge: ChargeDefinition, cadence: Cadence,
                  recon_config: ReconciliationConfig = None) -> Decimal:
    """
    Amount owed for one period of `cadence`.

    A monthly charge paid yearly costs twelve months; a yearly charge paid
    monthly costs a twelfth, rounded half-up to a whole unit.
    """
    recon_config = recon_config or config.reconciliation
    charge_cadence = Cadence(charge.cadence)
    amount = Decimal(str(charge.amount))

    if cadence == charge_cadence:
        return amount
    if charge_cadence == Cadence.MONTHLY:
        return amount * recon_config.months_per_year
    return (amount / recon_config.months_per_year).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


# ==================== Cadence Policies ====================

def _configured_policy(configured: Cadence, keyed: KeyedPayments) -> Cadence:
    """Always use the charge's current cadence."""
    return configured


def _history_majority_policy(configured: Cadence, keyed: KeyedPayments) -> Cadence:
    """
    Follow payment history only when strictly more than half of the
    classified successful payments used a different cadence.
    """
    if not keyed:
        return configured
    counts = Counter(key.cadence for _, key in keyed)
    for cadence, count in counts.items():
        if cadence != configured and count * 2 > len(keyed):
            return cadence
    return configured


def _latest_payment_policy(configured: Cadence, keyed: KeyedPayments) -> Cadence:
    """Follow the cadence of the most recently created classified payment."""
    dated = [(record, key) for record, key in keyed if record.created_at is not None]
    if not dated:
        return configured
    _, latest_key = max(dated, key=lambda pair: _payment_order(pair[0]))
    return latest_key.cadence


CADENCE_POLICIES: Dict[str, Callable[[Cadence, KeyedPayments], Cadence]] = {
    "configured": _configured_policy,
    "history_majority": _history_majority_policy,
    "latest_payment": _latest_payment_policy,
}


def resolve_cadence(
    charge_cadence: Cadence,
    keyed: KeyedPayments,
    preferred_cadence: Optional[Cadence] = None,
    policy: Optional[str] = None
) -> Cadence:
    """
    Decide the cadence periods are generated with.

    A tenant's locked preference wins; otherwise the named policy decides.
    """
    if preferred_cadence is not None:
        return Cadence(preferred_cadence)

    policy_name = policy or config.reconciliation.cadence_policy
    try:
        policy_func = CADENCE_POLICIES[policy_name]
    except KeyError:
        raise ValueError(f"Unknown cadence policy '{policy_name}'. Available: {sorted(CADENCE_POLICIES)}")

    return policy_func(charge_cadence, keyed)


# ==================== Reconciliation ====================

def not_applicable_status(charge: ChargeDefinition,
                          preference: Optional[ChargePreference] = None) -> ChargePaymentStatus:
    """Result for a tenant without a tenancy anchor."""
    return ChargePaymentStatus(
        charge_id=charge.charge_id,
        charge_name=charge.name,
        charge_amount=Decimal(str(charge.amount)),
        charge_frequency=Cadence(charge.cadence),
        chosen_frequency=None,
        is_up_to_date=False,
        applicable=False,
        locked_at=preference.locked_at if preference else None,
    )


def _payment_order(record: PaymentRecord) -> Tuple[bool, str, str]:
    created = record.created_at.isoformat() if record.created_at is not None else ""
    return (record.created_at is None, created, record.payment_id)


def reconcile(
    charge: ChargeDefinition,
    tenancy_anchor: Optional[Union[date, datetime, str]],
    payment_records: Iterable[PaymentRecord],
    now: Union[date, datetime],
    preference: Optional[Union[ChargePreference, Cadence, str]] = None,
    policy: Optional[str] = None,
    registry: RuleRegistry = None
) -> ChargePaymentStatus:
    """
    Reconcile one charge's periods against a tenant's payment ledger.

    Steps:
    1. Validate the charge (configuration errors propagate)
    2. Return the not-applicable status when there is no tenancy anchor
    3. Classify successful payments for this charge
    4. Resolve the cadence and generate periods from anchor through now
    5. Partition periods into paid and unpaid, preserving order

    Args:
        charge: Charge definition
        tenancy_anchor: Tenancy start date, or None
        payment_records: Ledger slice for the tenant (may include other charges)
        now: Evaluation instant
        preference: Tenant's frequency choice (a ChargePreference or bare cadence)
        policy: Cadence policy name (defaults to config)

    Returns:
        ChargePaymentStatus

    Raises:
        InvalidChargeDefinition: non-positive amount or unknown cadence
    """
    charge_cadence = validate_charge(charge)
    preference = ChargePreference.coerce(preference)

    anchor = coerce_date(tenancy_anchor)
    if anchor is None:
        logger.debug(f"[RECONCILE] Charge {charge.charge_id}: no tenancy anchor, not applicable")
        return not_applicable_status(charge, preference)

    as_of = coerce_date(now)

    records = [r for r in payment_records if r.charge_id == charge.charge_id]
    keys, unclassified = classify_all(records, registry or default_registry)

    keyed: KeyedPayments = [
        (record, keys[record.payment_id])
        for record in sorted(records, key=_payment_order)
        if record.payment_id in keys
    ]

    chosen = resolve_cadence(charge_cadence, keyed, preference.cadence if preference else None, policy)
    periods = generate_periods(anchor, chosen, as_of)

    # Earliest satisfying payment per key
    satisfied: Dict[PeriodKey, PaymentRecord] = {}
    for record, key in keyed:
        satisfied.setdefault(key, record)

    owed = period_amount(charge, chosen)
    paid: List[PaidPeriod] = []
    unpaid: List[UnpaidPeriod] = []
    for period in periods:
        record = satisfied.get(period.key)
        if record is not None:
            paid.append(PaidPeriod(period=period, payment_id=record.payment_id, paid_at=record.paid_at))
        else:
            unpaid.append(UnpaidPeriod(period=period, amount=owed))

    is_up_to_date = bool(periods) and periods[-1].key in satisfied

    logger.info(
        f"[RECONCILE] Charge {charge.charge_id}: cadence={chosen.value}, "
        f"periods={len(periods)}, paid={len(paid)}, unpaid={len(unpaid)}, "
        f"unclassified={len(unclassified)}, up_to_date={is_up_to_date}"
    )

    return ChargePaymentStatus(
        charge_id=charge.charge_id,
        charge_name=charge.name,
        charge_amount=Decimal(str(charge.amount)),
        charge_frequency=charge_cadence,
        chosen_frequency=chosen,
        paid_periods=tuple(paid),
        unpaid_periods=tuple(unpaid),
        is_up_to_date=is_up_to_date,
        applicable=True,
        unclassified=tuple(unclassified),
        locked_at=preference.locked_at if preference else None,
    )


def reconcile_charges(
    charges: Sequence[ChargeDefinition],
    tenancy_anchor: Optional[Union[date, datetime, str]],
    payment_records: Sequence[PaymentRecord],
    now: Union[date, datetime],
    preferences: Optional[Dict[str, Union[ChargePreference, Cadence, str]]] = None,
    policy: Optional[str] = None
) -> Dict[str, ChargePaymentStatus]:
    """
    Reconcile every charge of a building for one tenant.

    Each charge is evaluated independently into a fresh result map.
    """
    preferences = preferences or {}
    return {
        charge.charge_id: reconcile(
            charge,
            tenancy_anchor,
            payment_records,
            now,
            preference=preferences.get(charge.charge_id),
            policy=policy
        )
        for charge in charges
    }


# ==================== Ledger Checks ====================

def is_period_paid(
    payment_records: Iterable[PaymentRecord],
    charge_id: str,
    cadence: Cadence,
    year: int,
    month: Optional[int] = None
) -> bool:
    """True if a successful payment for this charge classifies to the period."""
    cadence = Cadence(cadence)
    target = PeriodKey(cadence, year, month if cadence == Cadence.MONTHLY else None)
    records = [r for r in payment_records if r.charge_id == charge_id]
    keys, _ = classify_all(records)
    return target in keys.values()


def find_pending_payment(
    payment_records: Iterable[PaymentRecord],
    charge_id: str,
    year: int,
    month: Optional[int] = None
) -> Optional[PaymentRecord]:
    """
    Pending payment already in flight for the same period, if any.

    A null month matches any month of the year.
    """
    candidates = [
        r for r in payment_records
        if r.charge_id == charge_id
        and r.outcome == PaymentOutcome.PENDING
        and r.period_year == year
        and (month is None or r.period_month == month)
    ]
    if not candidates:
        return None
    return min(candidates, key=_payment_order)
