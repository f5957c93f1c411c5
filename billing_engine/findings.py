"""
Findings generation for operators: outstanding periods and unmapped payments.
"""
import pandas as pd
from typing import Any, Dict, Iterable, List, Optional
from dataclasses import dataclass, asdict
import uuid

from config import config
from .canonical_fields import CanonicalField, REQUIRED_FINDING_FIELDS, get_field_names
from .models import ChargePaymentStatus

OUTSTANDING_PERIOD = "OUTSTANDING_PERIOD"
ACCUMULATED_ARREARS = "ACCUMULATED_ARREARS"
UNCLASSIFIED_PAYMENT = "UNCLASSIFIED_PAYMENT"


@dataclass
class Finding:
    """Structured finding record."""
    finding_id: str
    tenant_id: Any
    charge_id: str
    kind: str
    severity: str
    title: str
    description: str
    outstanding_amount: float
    evidence: Dict[str, List]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary keyed by canonical field names."""
        d = asdict(self)
        return {
            CanonicalField.FINDING_ID.value: d["finding_id"],
            CanonicalField.TENANT_ID.value: d["tenant_id"],
            CanonicalField.CHARGE_ID.value: d["charge_id"],
            CanonicalField.KIND.value: d["kind"],
            CanonicalField.SEVERITY.value: d["severity"],
            CanonicalField.TITLE.value: d["title"],
            CanonicalField.DESCRIPTION.value: d["description"],
            CanonicalField.OUTSTANDING_AMOUNT.value: d["outstanding_amount"],
            CanonicalField.EVIDENCE.value: d["evidence"],
        }


def _arrears_finding(status: ChargePaymentStatus, tenant_id: Any) -> Optional[Finding]:
    if not status.applicable or not status.unpaid_periods:
        return None

    kind = ACCUMULATED_ARREARS if status.has_accumulated_arrears else OUTSTANDING_PERIOD
    labels = [p.period.label for p in status.unpaid_periods]
    count = status.arrears_count
    unit = "month" if status.chosen_frequency.value == "monthly" else "year"

    if kind == ACCUMULATED_ARREARS:
        title = f"{status.charge_name}: {count} {unit}s unpaid"
    else:
        title = f"{status.charge_name}: {labels[0]} unpaid"

    return Finding(
        finding_id=str(uuid.uuid4()),
        tenant_id=tenant_id,
        charge_id=status.charge_id,
        kind=kind,
        severity=config.severity.get_severity(kind),
        title=title,
        description=f"Outstanding {float(status.total_arrears):,.2f} across {', '.join(labels)}.",
        outstanding_amount=float(status.total_arrears),
        evidence={"unpaid_periods": labels}
    )


def _unclassified_findings(status: ChargePaymentStatus, tenant_id: Any) -> List[Finding]:
    return [
        Finding(
            finding_id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            charge_id=status.charge_id,
            kind=UNCLASSIFIED_PAYMENT,
            severity=config.severity.get_severity(UNCLASSIFIED_PAYMENT),
            title=f"{status.charge_name}: payment not matched to a period",
            description=f"Successful payment {u.payment_id} was not counted as paid ({u.reason}).",
            outstanding_amount=0.0,
            evidence={"payment_ids": [u.payment_id]}
        )
        for u in status.unclassified
    ]


def generate_findings(statuses: Iterable[ChargePaymentStatus], tenant_id: Any = None) -> pd.DataFrame:
    """
    Convert charge statuses into a findings DataFrame.

    Args:
        statuses: Reconciled charge statuses for one tenant
        tenant_id: Tenant the statuses belong to

    Returns:
        DataFrame with one row per finding
    """
    findings: List[Finding] = []
    for status in statuses:
        arrears = _arrears_finding(status, tenant_id)
        if arrears is not None:
            findings.append(arrears)
        findings.extend(_unclassified_findings(status, tenant_id))

    if not findings:
        return pd.DataFrame(columns=list(get_field_names(REQUIRED_FINDING_FIELDS)))

    return pd.DataFrame([f.to_dict() for f in findings])
