"""Tests for payment classification rules."""

import pytest
from dataclasses import replace

from billing_engine.models import Cadence, PaymentOutcome, PeriodKey, Unclassified
from billing_engine.rules import (
    ClosedRangeRule,
    INVALID_PERIOD_MONTH,
    INVALID_PERIOD_MONTH_END,
    LegacyLabelRule,
    MISSING_PERIOD_YEAR,
    MissingMonthRule,
    MonthlyRule,
    NOT_SUCCESSFUL,
    RuleRegistry,
    classify,
    classify_all,
    default_registry,
    explain_classifications,
)


class TestIndividualRules:

    def test_missing_month_rule(self, make_payment):
        rule = MissingMonthRule()
        assert rule.matches(make_payment(month=None))
        assert not rule.matches(make_payment(month=4))
        assert rule.key_for(make_payment(year=2023, month=None)) == PeriodKey(Cadence.YEARLY, 2023)

    def test_closed_range_rule(self, make_payment):
        rule = ClosedRangeRule()
        assert rule.matches(make_payment(month=1, month_end=12))
        assert not rule.matches(make_payment(month=1))

    @pytest.mark.parametrize("label", ["2024 Annual", "ANNUAL 2024", "2023 - 2024"])
    def test_legacy_label_rule_matches(self, make_payment, label):
        assert LegacyLabelRule().matches(make_payment(label=label))

    @pytest.mark.parametrize("label", [None, "", "January 2024", "2023-2024"])
    def test_legacy_label_rule_ignores(self, make_payment, label):
        assert not LegacyLabelRule().matches(make_payment(label=label))

    def test_legacy_label_rule_custom_markers(self, make_payment):
        rule = LegacyLabelRule(markers=["yearly"], separators=[" to "])
        assert rule.matches(make_payment(label="Yearly dues"))
        assert rule.matches(make_payment(label="2023 to 2024"))
        assert not rule.matches(make_payment(label="2024 Annual"))

    def test_monthly_rule_rejects_out_of_range_month(self, make_payment):
        result = MonthlyRule().key_for(make_payment(month=13, payment_id="p13"))
        assert result == Unclassified("p13", INVALID_PERIOD_MONTH)


class TestClassify:

    def test_plain_month_is_monthly(self, make_payment):
        assert classify(make_payment(year=2024, month=2)) == PeriodKey(Cadence.MONTHLY, 2024, 2)

    def test_null_month_is_yearly(self, make_payment):
        assert classify(make_payment(year=2024, month=None)) == PeriodKey(Cadence.YEARLY, 2024)

    def test_closing_month_is_yearly_even_with_month(self, make_payment):
        record = make_payment(year=2023, month=6, month_end=5)
        assert classify(record) == PeriodKey(Cadence.YEARLY, 2023)

    def test_annual_label_is_yearly_even_with_month(self, make_payment):
        record = make_payment(year=2024, month=1, label="2024 Annual")
        assert classify(record) == PeriodKey(Cadence.YEARLY, 2024)

    def test_missing_year_is_unclassified(self, make_payment):
        result = classify(make_payment(year=None, month=3, payment_id="p1"))
        assert result == Unclassified("p1", MISSING_PERIOD_YEAR)

    @pytest.mark.parametrize("outcome", [PaymentOutcome.PENDING, PaymentOutcome.FAILED])
    def test_non_successful_is_unclassified(self, make_payment, outcome):
        result = classify(make_payment(outcome=outcome, payment_id="p1"))
        assert result == Unclassified("p1", NOT_SUCCESSFUL)

    @pytest.mark.parametrize("month", [0, 13, -1])
    def test_invalid_month_is_unclassified(self, make_payment, month):
        result = classify(make_payment(month=month, payment_id="p1"))
        assert isinstance(result, Unclassified)
        assert result.reason == INVALID_PERIOD_MONTH

    @pytest.mark.parametrize("flag,reason", [
        ("invalid_period_month", INVALID_PERIOD_MONTH),
        ("invalid_period_month_end", INVALID_PERIOD_MONTH_END),
    ])
    def test_malformed_period_is_unclassified(self, make_payment, flag, reason):
        # The month itself normalized to None, which alone would read as annual
        record = replace(make_payment(month=None, payment_id="p1"), **{flag: True})
        assert classify(record) == Unclassified("p1", reason)
        assert default_registry.explain(record) is None


class TestRegistry:

    def test_default_precedence(self):
        ids = [rule.rule_id for rule in default_registry.get_all_rules()]
        assert ids == ["MISSING_MONTH", "CLOSED_RANGE", "LEGACY_LABEL", "MONTHLY"]

    def test_get_rule(self):
        assert isinstance(default_registry.get_rule("CLOSED_RANGE"), ClosedRangeRule)
        assert default_registry.get_rule("NOPE") is None

    def test_explain(self, make_payment):
        assert default_registry.explain(make_payment(month=None, month_end=12)) == "MISSING_MONTH"
        assert default_registry.explain(make_payment(month=1, month_end=12)) == "CLOSED_RANGE"
        assert default_registry.explain(make_payment(month=1, label="2023 - 2024")) == "LEGACY_LABEL"
        assert default_registry.explain(make_payment(month=1)) == "MONTHLY"
        assert default_registry.explain(make_payment(outcome=PaymentOutcome.PENDING)) is None

    def test_custom_registry_without_label_rule(self, make_payment):
        registry = RuleRegistry()
        registry.register(MissingMonthRule())
        registry.register(MonthlyRule())
        record = make_payment(year=2024, month=1, label="2024 Annual")
        assert classify(record, registry) == PeriodKey(Cadence.MONTHLY, 2024, 1)


class TestClassifyAll:

    def test_skips_non_successful_and_reports_unmapped(self, make_payment, caplog):
        records = [
            make_payment(year=2024, month=1, payment_id="ok"),
            make_payment(outcome=PaymentOutcome.PENDING, payment_id="pending"),
            make_payment(year=None, payment_id="no-year"),
        ]

        keys, unclassified = classify_all(records)

        assert keys == {"ok": PeriodKey(Cadence.MONTHLY, 2024, 1)}
        assert unclassified == [Unclassified("no-year", MISSING_PERIOD_YEAR)]
        assert "no-year" in caplog.text

    def test_explain_classifications_includes_every_record(self, make_payment):
        records = [
            make_payment(year=2023, month=None, payment_id="annual"),
            make_payment(outcome=PaymentOutcome.FAILED, payment_id="failed"),
        ]

        rows = {row["PAYMENT_ID"]: row for row in explain_classifications(records)}

        assert rows["annual"]["CLASSIFIED_BY"] == "MISSING_MONTH"
        assert rows["annual"]["CADENCE"] == "yearly"
        assert rows["annual"]["PERIOD_YEAR"] == 2023
        assert rows["failed"]["OUTCOME"] == "failed"
        assert rows["failed"]["UNCLASSIFIED_REASON"] == NOT_SUCCESSFUL
        assert rows["failed"]["CADENCE"] is None
