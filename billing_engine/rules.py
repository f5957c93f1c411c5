"""
Payment classification rules.

Each rule inspects one successful payment record and, if it matches, decides
the cadence the record was paid under. Rules are evaluated in registration
order and the first match wins, so the precedence between legacy signals is
explicit and testable rule by rule.
"""
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Tuple, Union
import logging

from config import config
from .canonical_fields import CanonicalField
from .models import Cadence, PaymentRecord, PeriodKey, Unclassified

logger = logging.getLogger(__name__)

# Unclassified reasons
NOT_SUCCESSFUL = "not_successful"
MISSING_PERIOD_YEAR = "missing_period_year"
INVALID_PERIOD_MONTH = "invalid_period_month"
INVALID_PERIOD_MONTH_END = "invalid_period_month_end"
NO_RULE_MATCHED = "no_rule_matched"


class ClassificationRule(ABC):
    """
    Abstract base class for payment classification rules.

    Each rule has a unique ID, a name, the cadence it assigns, and a
    predicate deciding whether it applies to a record.
    """

    @property
    @abstractmethod
    def rule_id(self) -> str:
        """Unique identifier for this rule."""
        pass

    @property
    @abstractmethod
    def rule_name(self) -> str:
        """Human-readable name for this rule."""
        pass

    @property
    @abstractmethod
    def cadence(self) -> Cadence:
        """Cadence assigned to records this rule matches."""
        pass

    @abstractmethod
    def matches(self, record: PaymentRecord) -> bool:
        pass

    def key_for(self, record: PaymentRecord) -> Union[PeriodKey, Unclassified]:
        """Build the period key for a matched record."""
        if self.cadence == Cadence.YEARLY:
            return PeriodKey(Cadence.YEARLY, int(record.period_year))
        return PeriodKey(Cadence.MONTHLY, int(record.period_year), int(record.period_month))


class MissingMonthRule(ClassificationRule):
    """A null period month means the payment was not for a single month."""

    @property
    def rule_id(self) -> str:
        return "MISSING_MONTH"

    @property
    def rule_name(self) -> str:
        return "Null period month is annual"

    @property
    def cadence(self) -> Cadence:
        return Cadence.YEARLY

    def matches(self, record: PaymentRecord) -> bool:
        return record.period_month is None


class ClosedRangeRule(ClassificationRule):
    """A closing month marks a legacy ranged (annual) payment."""

    @property
    def rule_id(self) -> str:
        return "CLOSED_RANGE"

    @property
    def rule_name(self) -> str:
        return "Month range is annual"

    @property
    def cadence(self) -> Cadence:
        return Cadence.YEARLY

    def matches(self, record: PaymentRecord) -> bool:
        return record.period_month_end is not None


class LegacyLabelRule(ClassificationRule):
    """Labels like "2024 Annual" or "2023 - 2024" are annual."""

    def __init__(self, markers: Iterable[str] = None, separators: Iterable[str] = None):
        recon = config.reconciliation
        self.markers = tuple(m.lower() for m in (markers or recon.legacy_label_markers))
        self.separators = tuple(separators or recon.legacy_label_separators)

    @property
    def rule_id(self) -> str:
        return "LEGACY_LABEL"

    @property
    def rule_name(self) -> str:
        return "Annual label"

    @property
    def cadence(self) -> Cadence:
        return Cadence.YEARLY

    def matches(self, record: PaymentRecord) -> bool:
        label = record.period_label
        if not label:
            return False
        lowered = label.lower()
        if any(marker in lowered for marker in self.markers):
            return True
        return any(sep in label for sep in self.separators)


class MonthlyRule(ClassificationRule):
    """Fallback: a record with a month and no annual signal is monthly."""

    @property
    def rule_id(self) -> str:
        return "MONTHLY"

    @property
    def rule_name(self) -> str:
        return "Single month"

    @property
    def cadence(self) -> Cadence:
        return Cadence.MONTHLY

    def matches(self, record: PaymentRecord) -> bool:
        return True

    def key_for(self, record: PaymentRecord) -> Union[PeriodKey, Unclassified]:
        month = int(record.period_month)
        if not 1 <= month <= 12:
            return Unclassified(record.payment_id, INVALID_PERIOD_MONTH)
        return PeriodKey(Cadence.MONTHLY, int(record.period_year), month)


class RuleRegistry:
    """
    Ordered registry of classification rules.

    Adding a new legacy signal:
    1. Create a ClassificationRule subclass
    2. Register it before the rules it should outrank
    """

    def __init__(self):
        self._rules: List[ClassificationRule] = []

    def register(self, rule: ClassificationRule):
        """Register a rule at the end of the evaluation order."""
        self._rules.append(rule)

    def get_all_rules(self) -> List[ClassificationRule]:
        return self._rules.copy()

    def get_rule(self, rule_id: str) -> Optional[ClassificationRule]:
        for rule in self._rules:
            if rule.rule_id == rule_id:
                return rule
        return None

    def first_match(self, record: PaymentRecord) -> Optional[ClassificationRule]:
        for rule in self._rules:
            if rule.matches(record):
                return rule
        return None

    def classify(self, record: PaymentRecord) -> Union[PeriodKey, Unclassified]:
        """
        Map a payment record onto a period key.

        Only successful records with a period year are classified. Anything
        else is returned as Unclassified and must never count as paid.
        """
        if not record.is_successful:
            return Unclassified(record.payment_id, NOT_SUCCESSFUL)
        if record.period_year is None:
            return Unclassified(record.payment_id, MISSING_PERIOD_YEAR)
        # A garbled month must not read as a missing (annual) one
        if record.invalid_period_month:
            return Unclassified(record.payment_id, INVALID_PERIOD_MONTH)
        if record.invalid_period_month_end:
            return Unclassified(record.payment_id, INVALID_PERIOD_MONTH_END)

        rule = self.first_match(record)
        if rule is None:
            return Unclassified(record.payment_id, NO_RULE_MATCHED)
        return rule.key_for(record)

    def explain(self, record: PaymentRecord) -> Optional[str]:
        """ID of the rule that would classify this record, if any."""
        if not record.is_successful or record.period_year is None:
            return None
        if record.invalid_period_month or record.invalid_period_month_end:
            return None
        rule = self.first_match(record)
        return rule.rule_id if rule else None


# Create global registry and register rules in precedence order
default_registry = RuleRegistry()
default_registry.register(MissingMonthRule())
default_registry.register(ClosedRangeRule())
default_registry.register(LegacyLabelRule())
default_registry.register(MonthlyRule())


def classify(record: PaymentRecord, registry: RuleRegistry = None) -> Union[PeriodKey, Unclassified]:
    """Classify one payment record with the default rule order."""
    return (registry or default_registry).classify(record)


def classify_all(
    records: Iterable[PaymentRecord],
    registry: RuleRegistry = None
) -> Tuple[Dict[str, PeriodKey], List[Unclassified]]:
    """
    Classify every successful record.

    Non-successful records are skipped silently; successful records that
    cannot be mapped are returned in the unclassified list and logged.

    Returns:
        Tuple of:
        - Dict of payment_id -> PeriodKey
        - List of Unclassified results for successful records
    """
    registry = registry or default_registry
    keys: Dict[str, PeriodKey] = {}
    unclassified: List[Unclassified] = []

    for record in records:
        if not record.is_successful:
            continue
        result = registry.classify(record)
        if isinstance(result, Unclassified):
            logger.warning(
                f"[CLASSIFY] Payment {result.payment_id} (charge {record.charge_id}) "
                f"could not be mapped to a period: {result.reason}"
            )
            unclassified.append(result)
        else:
            keys[record.payment_id] = result

    return keys, unclassified


def explain_classifications(
    records: Iterable[PaymentRecord],
    registry: RuleRegistry = None
) -> List[Dict[str, object]]:
    """
    One row per record showing the period it maps to and the deciding rule.

    Rows are keyed by canonical field names. Unlike classify_all, records
    that are not successful are included with their unclassified reason.
    """
    registry = registry or default_registry
    rows = []
    for record in records:
        result = registry.classify(record)
        row = {
            CanonicalField.PAYMENT_ID.value: record.payment_id,
            CanonicalField.CHARGE_ID.value: record.charge_id,
            CanonicalField.OUTCOME.value: record.outcome.value,
            CanonicalField.CLASSIFIED_BY.value: registry.explain(record),
            CanonicalField.CADENCE.value: None,
            CanonicalField.PERIOD_YEAR.value: None,
            CanonicalField.PERIOD_MONTH.value: None,
            CanonicalField.UNCLASSIFIED_REASON.value: None,
        }
        if isinstance(result, Unclassified):
            row[CanonicalField.UNCLASSIFIED_REASON.value] = result.reason
        else:
            row[CanonicalField.CADENCE.value] = result.cadence.value
            row[CanonicalField.PERIOD_YEAR.value] = result.year
            row[CanonicalField.PERIOD_MONTH.value] = result.month
        rows.append(row)
    return rows
