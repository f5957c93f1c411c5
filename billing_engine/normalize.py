"""
Normalization logic for the payment ledger.
Converts raw ledger exports into PaymentRecord values.
"""
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional
import logging

import pandas as pd

from .canonical_fields import CanonicalField, REQUIRED_LEDGER_FIELDS
from .mappings import PAYMENT_LEDGER_MAPPING, LedgerSourceColumns, apply_source_mapping
from .models import PaymentOutcome, PaymentRecord
from .schemas import enforce_dtypes, validate_columns

logger = logging.getLogger(__name__)

# Required columns whose values may legitimately be null
NULLABLE_SOURCE_COLUMNS = (
    LedgerSourceColumns.PERIOD_YEAR,
    LedgerSourceColumns.PERIOD_MONTH,
    LedgerSourceColumns.CREATED_AT,
)


def _clean(value: Any) -> Any:
    """NaN / NaT / pd.NA become None."""
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    return value


def _as_int(value: Any) -> Optional[int]:
    value = _clean(value)
    return int(value) if value is not None else None


def _as_datetime(value: Any):
    value = _clean(value)
    if value is None:
        return None
    return pd.Timestamp(value).to_pydatetime()


def _as_str(value: Any) -> Optional[str]:
    value = _clean(value)
    return str(value) if value is not None else None


def normalize_ledger_frame(df: pd.DataFrame) -> pd.DataFrame:
    """
    Map a raw ledger export to canonical columns with enforced dtypes.

    Input: DataFrame with raw payments-table column names
    Output: DataFrame with CanonicalField columns only
    """
    canonical = apply_source_mapping(df, PAYMENT_LEDGER_MAPPING)
    canonical = enforce_dtypes(canonical)
    validate_columns(canonical, REQUIRED_LEDGER_FIELDS, PAYMENT_LEDGER_MAPPING.name)

    bad_created = canonical[CanonicalField.CREATED_AT.value].isna().sum()
    if bad_created:
        logger.warning(f"[LEDGER] {bad_created} rows have an unparseable created_at")

    return canonical


def record_from_row(row: Dict[str, Any]) -> PaymentRecord:
    """Build a PaymentRecord from one canonical ledger row."""
    amount = _clean(row.get(CanonicalField.AMOUNT.value))
    return PaymentRecord(
        payment_id=str(row[CanonicalField.PAYMENT_ID.value]),
        charge_id=str(row[CanonicalField.CHARGE_ID.value]),
        amount=Decimal(str(amount)) if amount is not None else Decimal("0"),
        outcome=PaymentOutcome(row[CanonicalField.OUTCOME.value]),
        created_at=_as_datetime(row.get(CanonicalField.CREATED_AT.value)),
        period_year=_as_int(row.get(CanonicalField.PERIOD_YEAR.value)),
        period_month=_as_int(row.get(CanonicalField.PERIOD_MONTH.value)),
        period_month_end=_as_int(row.get(CanonicalField.PERIOD_MONTH_END.value)),
        period_label=_as_str(row.get(CanonicalField.PERIOD_LABEL.value)),
        user_id=_as_str(row.get(CanonicalField.TENANT_ID.value)),
        paid_at=_as_datetime(row.get(CanonicalField.PAID_AT.value)),
        reference=_as_str(row.get(CanonicalField.REFERENCE.value)),
        invalid_period_month=bool(_clean(row.get(CanonicalField.PERIOD_MONTH_INVALID.value))),
        invalid_period_month_end=bool(_clean(row.get(CanonicalField.PERIOD_MONTH_END_INVALID.value))),
    )


def normalize_payment_ledger(df: pd.DataFrame) -> List[PaymentRecord]:
    """
    Convert a raw payments export into PaymentRecords.

    Unknown statuses are normalized to failed; missing period metadata is
    kept as None so the classifier can report it.
    """
    canonical = normalize_ledger_frame(df)
    records = [record_from_row(row) for row in canonical.to_dict('records')]
    logger.info(f"[LEDGER] Normalized {len(records)} payment records")
    return records


def records_from_dicts(rows: Iterable[Dict[str, Any]]) -> List[PaymentRecord]:
    """
    Normalize ledger rows received as JSON objects (raw column names).

    JSON rows may omit null keys entirely, so absent nullable columns are
    added as nulls. Identity columns must still be present.
    """
    rows = list(rows)
    if not rows:
        return []
    df = pd.DataFrame(rows)
    for col in NULLABLE_SOURCE_COLUMNS:
        if col not in df.columns:
            df[col] = None
    return normalize_payment_ledger(df)
