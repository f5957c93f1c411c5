"""
Source-to-canonical field mappings for the payment ledger.

This module is the ONLY place where raw ledger column names should appear.
All other modules use CanonicalField enums exclusively.

Mappings define how to transform a raw ledger export into canonical format:
1. Column name mapping (raw -> canonical)
2. Row filters
3. Derived fields (value normalization)
"""
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional
import logging

import pandas as pd

from .canonical_fields import CanonicalField
from .models import LedgerSchemaError, PaymentOutcome

logger = logging.getLogger(__name__)


# ==================== Raw Source Column Names ====================

class LedgerSourceColumns:
    """Raw column names from the payments table export."""
    ID = "id"
    CHARGE_ID = "charge_id"
    USER_ID = "user_id"
    STATUS = "status"
    AMOUNT = "amount"
    PERIOD_YEAR = "period_year"
    PERIOD_MONTH = "period_month"
    PERIOD_MONTH_END = "period_month_end"
    PERIOD_LABEL = "period_label"
    CREATED_AT = "created_at"
    PAID_AT = "paid_at"
    PAYSTACK_REFERENCE = "paystack_reference"


# ==================== Source Mapping Configuration ====================

@dataclass
class ColumnTransform:
    """Defines a transformation for a single column."""
    source_column: str
    canonical_field: CanonicalField
    transform_func: Optional[Callable[[pd.Series], pd.Series]] = None
    optional: bool = False

    def apply(self, df: pd.DataFrame) -> pd.Series:
        """Apply transformation to source data."""
        if self.source_column not in df.columns:
            if self.optional:
                return pd.Series([None] * len(df), index=df.index, dtype=object)
            raise ValueError(f"Source column '{self.source_column}' not found in DataFrame")

        series = df[self.source_column]

        if self.transform_func is not None:
            return self.transform_func(series)

        return series


@dataclass
class SourceMapping:
    """
    Complete mapping configuration for a data source.

    Example usage in normalize.py:
        >>> df_canonical = apply_source_mapping(df_raw, PAYMENT_LEDGER_MAPPING)
    """

    name: str
    """Source name (e.g., 'payments')"""

    required_source_columns: List[str]
    """List of required raw source columns"""

    column_transforms: List[ColumnTransform]
    """List of column transformations"""

    row_filter: Optional[Callable[[pd.DataFrame], pd.DataFrame]] = None
    """Optional function to filter rows"""

    derived_fields: Optional[Dict[CanonicalField, Callable[[pd.DataFrame], pd.Series]]] = None
    """Optional derived/calculated fields"""


# ==================== Payment Ledger Mapping ====================

def _ledger_row_filter(df: pd.DataFrame) -> pd.DataFrame:
    """Drop rows without a payment id or charge reference."""
    mask = df[LedgerSourceColumns.ID].notna() & df[LedgerSourceColumns.CHARGE_ID].notna()
    dropped = int((~mask).sum())
    if dropped:
        logger.warning(f"[LEDGER] Dropped {dropped} rows without id or charge_id")
    return df[mask]


def _as_id(series: pd.Series) -> pd.Series:
    """Render ids as strings; Excel often reads numeric ids as floats."""
    def _one(value):
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)
    return series.map(_one)


def _outcome_calc(df: pd.DataFrame) -> pd.Series:
    """
    Normalize gateway statuses to success / pending / failed.

    Anything unrecognized is treated as failed so it can never count as paid.
    """
    known = {o.value for o in PaymentOutcome}
    raw = df[LedgerSourceColumns.STATUS].astype("string").str.strip().str.lower()
    return raw.where(raw.isin(known), PaymentOutcome.FAILED.value).astype(object)


def _malformed_period(column: str) -> Callable[[pd.DataFrame], pd.Series]:
    """
    Flag period values that are present but not a whole number.

    enforce_dtypes turns these into NA, which would otherwise be
    indistinguishable from a month that was never recorded.
    """
    def _calc(df: pd.DataFrame) -> pd.Series:
        if column not in df.columns:
            return pd.Series(False, index=df.index)
        raw = df[column]
        present = raw.notna() & (raw.astype("string").str.strip() != "").fillna(False)
        numeric = pd.to_numeric(raw, errors="coerce")
        integral = numeric.notna() & (numeric % 1 == 0)
        malformed = (present & ~integral).astype(bool)
        if malformed.any():
            logger.warning(f"[LEDGER] {int(malformed.sum())} rows have a malformed {column}")
        return malformed
    return _calc


PAYMENT_LEDGER_MAPPING = SourceMapping(
    name="payments",
    required_source_columns=[
        LedgerSourceColumns.ID,
        LedgerSourceColumns.CHARGE_ID,
        LedgerSourceColumns.STATUS,
        LedgerSourceColumns.AMOUNT,
        LedgerSourceColumns.PERIOD_YEAR,
        LedgerSourceColumns.PERIOD_MONTH,
        LedgerSourceColumns.CREATED_AT,
    ],
    column_transforms=[
        ColumnTransform(LedgerSourceColumns.ID, CanonicalField.PAYMENT_ID, _as_id),
        ColumnTransform(LedgerSourceColumns.CHARGE_ID, CanonicalField.CHARGE_ID, _as_id),
        ColumnTransform(LedgerSourceColumns.USER_ID, CanonicalField.TENANT_ID, optional=True),
        ColumnTransform(LedgerSourceColumns.AMOUNT, CanonicalField.AMOUNT),
        ColumnTransform(LedgerSourceColumns.PERIOD_YEAR, CanonicalField.PERIOD_YEAR),
        ColumnTransform(LedgerSourceColumns.PERIOD_MONTH, CanonicalField.PERIOD_MONTH),
        ColumnTransform(LedgerSourceColumns.PERIOD_MONTH_END, CanonicalField.PERIOD_MONTH_END, optional=True),
        ColumnTransform(LedgerSourceColumns.PERIOD_LABEL, CanonicalField.PERIOD_LABEL, optional=True),
        ColumnTransform(LedgerSourceColumns.CREATED_AT, CanonicalField.CREATED_AT),
        ColumnTransform(LedgerSourceColumns.PAID_AT, CanonicalField.PAID_AT, optional=True),
        ColumnTransform(LedgerSourceColumns.PAYSTACK_REFERENCE, CanonicalField.REFERENCE, optional=True),
    ],
    row_filter=_ledger_row_filter,
    derived_fields={
        CanonicalField.OUTCOME: _outcome_calc,
        CanonicalField.PERIOD_MONTH_INVALID: _malformed_period(LedgerSourceColumns.PERIOD_MONTH),
        CanonicalField.PERIOD_MONTH_END_INVALID: _malformed_period(LedgerSourceColumns.PERIOD_MONTH_END),
    },
)


def apply_source_mapping(df: pd.DataFrame, mapping: SourceMapping) -> pd.DataFrame:
    """
    Apply a source mapping to transform raw data to canonical format.

    Process:
    1. Validate required source columns exist
    2. Apply row filter (if specified) - filters on SOURCE data
    3. Apply column transformations - SOURCE columns to CANONICAL columns
    4. Apply derived field calculations

    Args:
        df: Raw source DataFrame
        mapping: SourceMapping configuration

    Returns:
        DataFrame with canonical field names

    Raises:
        LedgerSchemaError: If required source columns are missing
    """
    logger.debug(f"[MAPPING] Processing source '{mapping.name}': {df.shape}")

    missing = [col for col in mapping.required_source_columns if col not in df.columns]
    if missing:
        raise LedgerSchemaError(
            f"Source '{mapping.name}' is missing required columns: {missing}. "
            f"Available columns: {df.columns.tolist()}"
        )

    df = df.copy()

    if mapping.row_filter is not None:
        original_count = len(df)
        df = mapping.row_filter(df)
        logger.debug(f"[MAPPING] Row filter applied: {original_count} -> {len(df)} rows")

    result_data = {}
    for transform in mapping.column_transforms:
        try:
            result_data[transform.canonical_field.value] = transform.apply(df)
        except Exception as e:
            raise LedgerSchemaError(
                f"Error transforming column '{transform.source_column}' -> "
                f"'{transform.canonical_field.value}': {e}"
            )

    result_df = pd.DataFrame(result_data, index=df.index)

    if mapping.derived_fields is not None:
        for canonical_field, calc_func in mapping.derived_fields.items():
            try:
                result_df[canonical_field.value] = calc_func(df)
            except Exception as e:
                raise LedgerSchemaError(
                    f"Error calculating derived field '{canonical_field.value}': {e}"
                )

    logger.debug(f"[MAPPING] Output for '{mapping.name}': {result_df.shape}")

    return result_df.reset_index(drop=True)
