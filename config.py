"""
Centralized configuration for the charge billing reconciliation service.
All ledger mappings, cadence policies and status labels are defined here.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Tuple
import os


@dataclass
class ColumnMapping:
    """Maps required columns for a data source."""
    required_columns: List[str]
    optional_columns: List[str] = field(default_factory=list)

    def validate(self, columns: List[str]) -> Tuple[bool, List[str]]:
        """Check if all required columns are present."""
        missing = [col for col in self.required_columns if col not in columns]
        return len(missing) == 0, missing


@dataclass
class DataSourceConfig:
    """Configuration for a data source."""
    name: str
    column_mapping: ColumnMapping
    detection_keywords: List[str]  # For sheet name detection


@dataclass
class ReconciliationConfig:
    """Configuration for period matching and status labels."""
    # Name of a policy registered in billing_engine.reconcile.CADENCE_POLICIES
    cadence_policy: str = field(default_factory=lambda: os.getenv('BILLING_CADENCE_POLICY', 'history_majority'))

    # Legacy period labels that mark a payment as annual
    legacy_label_markers: Tuple[str, ...] = ("annual",)
    legacy_label_separators: Tuple[str, ...] = (" - ",)

    months_per_year: int = 12

    status_paid: str = "PAID"
    status_unpaid: str = "UNPAID"
    status_not_applicable: str = "NOT_APPLICABLE"


@dataclass
class SeverityMapping:
    """Map finding kind to severity level."""
    severity_by_kind: Dict[str, str] = field(default_factory=lambda: {
        "OUTSTANDING_PERIOD": "medium",
        "ACCUMULATED_ARREARS": "high",
        "UNCLASSIFIED_PAYMENT": "low"
    })

    def get_severity(self, kind: str) -> str:
        return self.severity_by_kind.get(kind, "medium")


@dataclass
class CacheConfig:
    """Flask-Caching settings for memoized charge statuses."""
    cache_type: str = field(default_factory=lambda: os.getenv('CACHE_TYPE', 'SimpleCache'))
    default_timeout: int = field(default_factory=lambda: int(os.getenv('CACHE_DEFAULT_TIMEOUT', '600')))
    key_prefix: str = "charge-status"


@dataclass
class BillingConfig:
    """Main billing configuration container."""
    # Payment ledger export
    ledger_source: DataSourceConfig = field(default_factory=lambda: DataSourceConfig(
        name="payments",
        column_mapping=ColumnMapping(
            required_columns=[
                "id", "charge_id", "status", "amount",
                "period_year", "period_month", "created_at"
            ],
            optional_columns=[
                "user_id", "period_month_end", "period_label",
                "paid_at", "paystack_reference"
            ]
        ),
        detection_keywords=["payment", "ledger"]
    ))

    # Reconciliation settings
    reconciliation: ReconciliationConfig = field(default_factory=ReconciliationConfig)

    # Severity mapping
    severity: SeverityMapping = field(default_factory=SeverityMapping)

    # Cache settings
    cache: CacheConfig = field(default_factory=CacheConfig)

    # Upload settings
    allowed_upload_extensions: Tuple[str, ...] = (".csv", ".xlsx")


# Global configuration instance
config = BillingConfig()
