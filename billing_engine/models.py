"""
Value types for charges, payment records, periods and charge statuses.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, Tuple


class Cadence(str, Enum):
    """Billing frequency of a recurring charge."""
    MONTHLY = "monthly"
    YEARLY = "yearly"


class PaymentOutcome(str, Enum):
    """Outcome of a payment attempt."""
    SUCCESS = "success"
    PENDING = "pending"
    FAILED = "failed"


class InvalidChargeDefinition(ValueError):
    """A charge has a non-positive amount or an unrecognized cadence."""

    def __init__(self, charge_id: Any, message: str):
        self.charge_id = charge_id
        super().__init__(f"Charge {charge_id}: {message}")


class LedgerSchemaError(ValueError):
    """A raw ledger export is missing required columns."""


@dataclass(frozen=True)
class ChargeDefinition:
    """A recurring charge owned by a building."""
    charge_id: str
    name: str
    amount: Decimal
    cadence: Any
    building_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChargeDefinition":
        """Build from a charge registry row (`frequency` or `cadence` key)."""
        try:
            amount = Decimal(str(data.get("amount")))
        except InvalidOperation:
            raise InvalidChargeDefinition(data.get("id"), f"amount {data.get('amount')!r} is not a number")
        return cls(
            charge_id=str(data.get("id", data.get("charge_id"))),
            name=data.get("name", ""),
            amount=amount,
            cadence=data.get("frequency", data.get("cadence")),
            building_id=data.get("building_id"),
        )


class PeriodKey(NamedTuple):
    """Identity of a billing period: (cadence, year) or (cadence, year, month)."""
    cadence: Cadence
    year: int
    month: Optional[int] = None

    @property
    def sort_key(self) -> Tuple[int, int]:
        return (self.year, self.month or 0)


@dataclass(frozen=True)
class Period:
    """One billable cycle. Equality and hashing follow the period key."""
    cadence: Cadence
    year: int
    month: Optional[int] = None
    label: str = field(default="", compare=False)

    @property
    def key(self) -> PeriodKey:
        return PeriodKey(self.cadence, self.year, self.month)

    def __lt__(self, other: "Period") -> bool:
        return self.key.sort_key < other.key.sort_key

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cadence": self.cadence.value,
            "year": self.year,
            "month": self.month,
            "label": self.label,
        }


@dataclass(frozen=True)
class PaymentRecord:
    """An observed attempt to pay one period of a charge."""
    payment_id: str
    charge_id: str
    amount: Decimal
    outcome: PaymentOutcome
    created_at: Optional[datetime] = None
    period_year: Optional[int] = None
    period_month: Optional[int] = None
    period_month_end: Optional[int] = None
    period_label: Optional[str] = None
    user_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    reference: Optional[str] = None
    # Period metadata that was present in the export but not a whole number
    invalid_period_month: bool = False
    invalid_period_month_end: bool = False

    @property
    def is_successful(self) -> bool:
        return self.outcome == PaymentOutcome.SUCCESS


@dataclass(frozen=True)
class Unclassified:
    """A payment that could not be mapped onto a period."""
    payment_id: str
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {"payment_id": self.payment_id, "reason": self.reason}


@dataclass(frozen=True)
class PaidPeriod:
    period: Period
    payment_id: str
    paid_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        d = self.period.to_dict()
        d["payment_id"] = self.payment_id
        d["paid_at"] = self.paid_at.isoformat() if self.paid_at else None
        return d


@dataclass(frozen=True)
class UnpaidPeriod:
    period: Period
    amount: Decimal

    def to_dict(self) -> Dict[str, Any]:
        d = self.period.to_dict()
        d["amount"] = float(self.amount)
        return d


@dataclass(frozen=True)
class ChargePreference:
    """
    A tenant's frequency choice for one charge.

    Once `locked_at` is set the tenant can no longer switch frequency, and the
    choice outranks any cadence policy.
    """
    cadence: Cadence
    locked_at: Optional[datetime] = None

    @property
    def is_locked(self) -> bool:
        return self.locked_at is not None

    @classmethod
    def coerce(cls, value: Any) -> Optional["ChargePreference"]:
        """Accept a preference, a bare cadence, or a {frequency, locked_at} row."""
        if value is None or isinstance(value, ChargePreference):
            return value
        if isinstance(value, dict):
            return cls(
                cadence=Cadence(value.get("frequency", value.get("chosen_frequency"))),
                locked_at=coerce_datetime(value.get("locked_at")),
            )
        return cls(cadence=Cadence(value))


@dataclass(frozen=True)
class ChargePaymentStatus:
    """
    Reconciliation verdict for one charge and one tenant.

    `applicable` is False when the tenant has no tenancy anchor; in that case
    the period lists are empty and the tenant is NOT up to date. Callers must
    not read an empty `unpaid_periods` on its own as "nothing owed".
    """
    charge_id: str
    charge_name: str
    charge_amount: Decimal
    charge_frequency: Cadence
    chosen_frequency: Optional[Cadence]
    paid_periods: Tuple[PaidPeriod, ...] = ()
    unpaid_periods: Tuple[UnpaidPeriod, ...] = ()
    is_up_to_date: bool = False
    applicable: bool = True
    unclassified: Tuple[Unclassified, ...] = ()
    locked_at: Optional[datetime] = None

    @property
    def arrears_count(self) -> int:
        return len(self.unpaid_periods)

    @property
    def has_accumulated_arrears(self) -> bool:
        return self.arrears_count > 1

    @property
    def total_arrears(self) -> Decimal:
        return sum((p.amount for p in self.unpaid_periods), Decimal("0"))

    @property
    def next_payment_due(self) -> Optional[UnpaidPeriod]:
        return self.unpaid_periods[0] if self.unpaid_periods else None

    @property
    def current_period_paid(self) -> bool:
        return self.is_up_to_date

    @property
    def is_locked(self) -> bool:
        """True when the tenant's frequency choice was locked in."""
        return self.locked_at is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-ready dictionary."""
        next_due = self.next_payment_due
        return {
            "charge_id": self.charge_id,
            "charge_name": self.charge_name,
            "charge_amount": float(self.charge_amount),
            "charge_frequency": self.charge_frequency.value,
            "chosen_frequency": self.chosen_frequency.value if self.chosen_frequency else None,
            "applicable": self.applicable,
            "is_up_to_date": self.is_up_to_date,
            "current_period_paid": self.current_period_paid,
            "paid_periods": [p.to_dict() for p in self.paid_periods],
            "unpaid_periods": [p.to_dict() for p in self.unpaid_periods],
            "next_payment_due": next_due.to_dict() if next_due else None,
            "arrears_count": self.arrears_count,
            "total_arrears": float(self.total_arrears),
            "unclassified": [u.to_dict() for u in self.unclassified],
            "is_locked": self.is_locked,
            "locked_at": self.locked_at.isoformat() if self.locked_at else None,
        }


def coerce_date(value: Any) -> Optional[date]:
    """Accept a date, datetime or ISO string; None stays None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value)).date()


def coerce_datetime(value: Any) -> Optional[datetime]:
    """Accept a datetime or ISO string (a trailing Z means UTC); None stays None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)
