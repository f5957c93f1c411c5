"""
KPI and arrears metrics calculation.
"""
import pandas as pd
from decimal import Decimal
from typing import Any, Dict, Iterable, Mapping

from config import config
from .canonical_fields import CanonicalField
from .models import ChargePaymentStatus


def charge_badge(status: ChargePaymentStatus) -> str:
    """Dashboard badge for one charge: PAID, UNPAID or NOT_APPLICABLE."""
    recon = config.reconciliation
    if not status.applicable:
        return recon.status_not_applicable
    return recon.status_paid if status.is_up_to_date else recon.status_unpaid


def calculate_kpis(statuses: Iterable[ChargePaymentStatus]) -> Dict[str, Any]:
    """
    Calculate KPIs from reconciled charge statuses.

    Not-applicable statuses are counted separately and excluded from the
    up-to-date rate.

    Returns:
        Dictionary with KPI values
    """
    statuses = list(statuses)
    applicable = [s for s in statuses if s.applicable]

    if not applicable:
        return {
            "charges_evaluated": len(statuses),
            "not_applicable": len(statuses),
            "up_to_date": 0,
            "behind": 0,
            "up_to_date_rate": 0.0,
            "paid_periods": 0,
            "unpaid_periods": 0,
            "accumulated_arrears": 0,
            "unclassified_payments": 0,
            "total_outstanding": 0.0
        }

    up_to_date = sum(1 for s in applicable if s.is_up_to_date)
    paid_periods = sum(len(s.paid_periods) for s in applicable)
    unpaid_periods = sum(s.arrears_count for s in applicable)
    total_outstanding = sum((s.total_arrears for s in applicable), Decimal("0"))

    return {
        "charges_evaluated": len(statuses),
        "not_applicable": len(statuses) - len(applicable),
        "up_to_date": up_to_date,
        "behind": len(applicable) - up_to_date,
        "up_to_date_rate": up_to_date / len(applicable) * 100,
        "paid_periods": paid_periods,
        "unpaid_periods": unpaid_periods,
        "accumulated_arrears": sum(1 for s in applicable if s.has_accumulated_arrears),
        "unclassified_payments": sum(len(s.unclassified) for s in applicable),
        "total_outstanding": float(total_outstanding)
    }


def calculate_tenant_summary(
    statuses_by_tenant: Mapping[Any, Mapping[str, ChargePaymentStatus]]
) -> pd.DataFrame:
    """
    Summary by tenant for the landlord financial view.

    Args:
        statuses_by_tenant: tenant_id -> {charge_id: status}

    Returns:
        DataFrame with one row per tenant, most outstanding first
    """
    summaries = []
    for tenant_id, statuses in statuses_by_tenant.items():
        kpis = calculate_kpis(statuses.values())
        kpis[CanonicalField.TENANT_ID.value] = tenant_id
        kpis["charges_behind"] = sorted(
            s.charge_name for s in statuses.values()
            if charge_badge(s) == config.reconciliation.status_unpaid
        )
        summaries.append(kpis)

    if not summaries:
        return pd.DataFrame(columns=[CanonicalField.TENANT_ID.value, "total_outstanding"])

    df = pd.DataFrame(summaries)
    return df.sort_values(
        ["total_outstanding", CanonicalField.TENANT_ID.value],
        ascending=[False, True]
    ).reset_index(drop=True)
