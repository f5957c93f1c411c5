"""
Schema validation for canonical ledger DataFrames.

Provides utilities to validate DataFrame schemas against canonical field
definitions and enforce proper data types.
"""
from typing import Dict, Optional, Set
import pandas as pd

from .canonical_fields import (
    CanonicalField,
    AMOUNT_FIELDS,
    DATE_FIELDS,
    PERIOD_FIELDS,
)
from .models import LedgerSchemaError


def validate_columns(
    df: pd.DataFrame,
    required_fields: Set[CanonicalField],
    df_name: str = "DataFrame"
) -> None:
    """
    Validate that DataFrame contains all required canonical fields.

    Raises:
        LedgerSchemaError: If any required fields are missing

    Example:
        >>> validate_columns(ledger_df, REQUIRED_LEDGER_FIELDS, "payments")
    """
    required_names = {f.value for f in required_fields}
    available_names = set(df.columns)
    missing = required_names - available_names

    if missing:
        raise LedgerSchemaError(
            f"{df_name} is missing required canonical fields: {sorted(missing)}. "
            f"Available columns: {sorted(available_names)}"
        )


def enforce_dtypes(
    df: pd.DataFrame,
    dtype_map: Optional[Dict[CanonicalField, str]] = None,
    coerce_errors: bool = True
) -> pd.DataFrame:
    """
    Enforce canonical data types on DataFrame columns.

    Period fields become nullable Int64 so a missing month stays missing
    instead of turning into NaN floats.

    Args:
        df: DataFrame to process
        dtype_map: Optional mapping of fields to dtypes. If None, uses default map.
        coerce_errors: If True, coerce errors to NaT/NA instead of raising
    """
    df = df.copy()

    if dtype_map is None:
        dtype_map = get_default_dtype_map()

    errors = 'coerce' if coerce_errors else 'raise'

    for field, dtype in dtype_map.items():
        col_name = field.value

        if col_name not in df.columns:
            continue

        try:
            if dtype.startswith('datetime'):
                # Ledger exports mix naive and offset timestamps; normalize to UTC
                if pd.api.types.is_datetime64_any_dtype(df[col_name]):
                    df[col_name] = pd.to_datetime(df[col_name], utc=True)
                else:
                    df[col_name] = pd.to_datetime(
                        df[col_name].astype(object), errors=errors, utc=True, format='ISO8601'
                    )
            elif dtype in ('Int64', 'int64'):
                numeric = pd.to_numeric(df[col_name], errors=errors)
                # Fractional values are not valid periods
                numeric = numeric.where(numeric.isna() | (numeric % 1 == 0))
                df[col_name] = numeric.astype('Int64')
            elif dtype in ('float64', 'Float64'):
                df[col_name] = pd.to_numeric(df[col_name], errors=errors).astype('float64')
            elif dtype == 'string':
                df[col_name] = df[col_name].astype('string')
            else:
                df[col_name] = df[col_name].astype(dtype)

        except Exception as e:
            raise LedgerSchemaError(
                f"Failed to convert column '{col_name}' to dtype '{dtype}': {e}"
            )

    return df


def get_default_dtype_map() -> Dict[CanonicalField, str]:
    """Default canonical field dtype mappings for the payment ledger."""
    dtype_map: Dict[CanonicalField, str] = {}

    for field in PERIOD_FIELDS:
        dtype_map[field] = 'Int64'

    for field in DATE_FIELDS:
        dtype_map[field] = 'datetime64[ns, UTC]'

    for field in AMOUNT_FIELDS:
        dtype_map[field] = 'float64'

    dtype_map[CanonicalField.PERIOD_LABEL] = 'string'

    return dtype_map
