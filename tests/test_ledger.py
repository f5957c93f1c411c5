"""Tests for ledger loading and normalization."""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

import pandas as pd

from billing_engine.canonical_fields import CanonicalField, OPTIONAL_LEDGER_FIELDS, REQUIRED_LEDGER_FIELDS, get_field_names
from billing_engine.io import CsvSourceLoader, ExcelSourceLoader, load_ledger
from billing_engine.mappings import PAYMENT_LEDGER_MAPPING, apply_source_mapping
from billing_engine.models import LedgerSchemaError, PaymentOutcome
from billing_engine.normalize import normalize_ledger_frame, normalize_payment_ledger, records_from_dicts
from billing_engine.reconcile import reconcile
from billing_engine.rules import INVALID_PERIOD_MONTH, INVALID_PERIOD_MONTH_END
from billing_engine.schemas import enforce_dtypes
from config import config


@pytest.fixture
def ledger_df(ledger_rows):
    return pd.DataFrame(ledger_rows)


class TestMapping:

    def test_renames_to_canonical_fields(self, ledger_df):
        df = apply_source_mapping(ledger_df, PAYMENT_LEDGER_MAPPING)
        assert CanonicalField.PAYMENT_ID.value in df.columns
        assert CanonicalField.TENANT_ID.value in df.columns
        assert CanonicalField.OUTCOME.value in df.columns
        assert "status" not in df.columns

    def test_missing_required_column_raises(self, ledger_df):
        with pytest.raises(LedgerSchemaError, match="period_year"):
            apply_source_mapping(ledger_df.drop(columns=["period_year"]), PAYMENT_LEDGER_MAPPING)

    def test_optional_columns_may_be_absent(self, ledger_df):
        df = apply_source_mapping(
            ledger_df.drop(columns=["period_label", "period_month_end", "paystack_reference"]),
            PAYMENT_LEDGER_MAPPING
        )
        assert df[CanonicalField.PERIOD_LABEL.value].isna().all()

    def test_rows_without_ids_are_dropped(self, ledger_df):
        ledger_df.loc[0, "charge_id"] = None
        df = apply_source_mapping(ledger_df, PAYMENT_LEDGER_MAPPING)
        assert len(df) == 3

    @pytest.mark.parametrize("raw,expected", [
        ("success", "success"),
        (" SUCCESS ", "success"),
        ("Pending", "pending"),
        ("abandoned", "failed"),
        (None, "failed"),
    ])
    def test_status_normalization(self, ledger_df, raw, expected):
        ledger_df.loc[0, "status"] = raw
        df = apply_source_mapping(ledger_df, PAYMENT_LEDGER_MAPPING)
        assert df.loc[0, CanonicalField.OUTCOME.value] == expected


class TestDtypes:

    def test_period_fields_are_nullable_ints(self, ledger_df):
        df = enforce_dtypes(apply_source_mapping(ledger_df, PAYMENT_LEDGER_MAPPING))
        assert str(df[CanonicalField.PERIOD_MONTH.value].dtype) == "Int64"
        assert df[CanonicalField.PERIOD_MONTH.value].isna().sum() == 1

    def test_fractional_month_is_flagged_not_missing(self, ledger_df):
        ledger_df["period_month"] = ledger_df["period_month"].astype(object)
        ledger_df.loc[0, "period_month"] = 1.5
        df = enforce_dtypes(apply_source_mapping(ledger_df, PAYMENT_LEDGER_MAPPING))

        assert pd.isna(df.loc[0, CanonicalField.PERIOD_MONTH.value])
        flags = df[CanonicalField.PERIOD_MONTH_INVALID.value].tolist()
        # p4 has a genuinely null month and must not be flagged
        assert flags == [True, False, False, False]

    def test_month_end_flag_defaults_when_column_absent(self, ledger_df):
        df = apply_source_mapping(ledger_df.drop(columns=["period_month_end"]), PAYMENT_LEDGER_MAPPING)
        assert not df[CanonicalField.PERIOD_MONTH_END_INVALID.value].any()

    def test_dates_are_utc(self, ledger_df):
        df = enforce_dtypes(apply_source_mapping(ledger_df, PAYMENT_LEDGER_MAPPING))
        created = df[CanonicalField.CREATED_AT.value]
        assert str(created.dt.tz) == "UTC"


class TestNormalize:

    def test_records(self, ledger_df):
        records = normalize_payment_ledger(ledger_df)
        by_id = {r.payment_id: r for r in records}

        assert by_id["p1"].outcome == PaymentOutcome.SUCCESS
        assert by_id["p1"].period_month == 1
        assert by_id["p1"].amount == Decimal("50000")
        assert by_id["p1"].user_id == "tenant-1"
        assert by_id["p1"].created_at == datetime(2024, 1, 5, 10, 0, tzinfo=timezone.utc)
        assert by_id["p3"].outcome == PaymentOutcome.PENDING
        assert by_id["p3"].paid_at is None
        assert by_id["p4"].period_month is None
        assert by_id["p4"].period_label == "2023 - 2024"

    def test_canonical_frame_has_required_fields(self, ledger_df):
        df = normalize_ledger_frame(ledger_df)
        assert set(get_field_names(REQUIRED_LEDGER_FIELDS)) <= set(df.columns)
        assert set(get_field_names(OPTIONAL_LEDGER_FIELDS)) <= set(df.columns)

    def test_records_from_dicts_tolerates_omitted_keys(self):
        rows = [
            {"id": 1, "charge_id": 9, "status": "success", "amount": 100, "period_year": 2024},
            {"id": 2, "charge_id": 9, "status": "success", "amount": 100, "period_year": 2024,
             "period_month": 2, "created_at": "2024-02-01T00:00:00Z"},
        ]
        records = records_from_dicts(rows)
        assert [r.payment_id for r in records] == ["1", "2"]
        assert records[0].charge_id == "9"
        assert records[0].period_month is None
        assert records[0].created_at is None
        assert records[1].period_month == 2

    def test_records_from_empty_list(self):
        assert records_from_dicts([]) == []

    def test_blank_month_is_absent_not_malformed(self):
        rows = [{"id": 1, "charge_id": 9, "status": "success", "amount": 100,
                 "period_year": 2024, "period_month": "  "}]
        record = records_from_dicts(rows)[0]
        assert record.period_month is None
        assert not record.invalid_period_month


class TestMalformedPeriods:

    @staticmethod
    def _row(**overrides):
        row = {"id": "bad", "charge_id": "service", "status": "success", "amount": 120000,
               "period_year": 2024, "created_at": "2024-01-10T00:00:00Z"}
        row.update(overrides)
        return row

    @pytest.mark.parametrize("bad", ["garbage", 2.5, "13.5"])
    def test_garbled_month_does_not_settle_the_year(self, yearly_charge, bad):
        records = records_from_dicts([self._row(period_month=bad)])
        assert records[0].period_month is None
        assert records[0].invalid_period_month

        status = reconcile(yearly_charge, date(2024, 1, 1), records, date(2024, 6, 1))

        assert not status.is_up_to_date
        assert status.paid_periods == ()
        assert [u.reason for u in status.unclassified] == [INVALID_PERIOD_MONTH]

    def test_garbled_closing_month(self, yearly_charge):
        records = records_from_dicts([self._row(period_month=1, period_month_end="twelve")])
        assert records[0].invalid_period_month_end

        status = reconcile(yearly_charge, date(2024, 1, 1), records, date(2024, 6, 1))

        assert not status.is_up_to_date
        assert [u.reason for u in status.unclassified] == [INVALID_PERIOD_MONTH_END]

    def test_whole_number_strings_are_accepted(self, yearly_charge):
        records = records_from_dicts([self._row(period_month=None, period_month_end="12")])
        assert not records[0].invalid_period_month
        assert not records[0].invalid_period_month_end

        status = reconcile(yearly_charge, date(2024, 1, 1), records, date(2024, 6, 1))
        assert status.is_up_to_date


class TestLoaders:

    def test_csv(self, tmp_path, ledger_df):
        path = tmp_path / "payments.csv"
        ledger_df.to_csv(path, index=False)

        raw = load_ledger(path, config.ledger_source)
        records = normalize_payment_ledger(raw)

        assert len(records) == 4
        assert {r.payment_id for r in records} == {"p1", "p2", "p3", "p4"}

    def test_csv_missing_columns(self, tmp_path, ledger_df):
        path = tmp_path / "payments.csv"
        ledger_df.drop(columns=["created_at"]).to_csv(path, index=False)
        with pytest.raises(LedgerSchemaError):
            CsvSourceLoader().load(path, config.ledger_source)

    def test_excel_detects_ledger_sheet(self, tmp_path, ledger_df):
        path = tmp_path / "export.xlsx"
        with pd.ExcelWriter(path) as writer:
            pd.DataFrame({"notes": ["ignore me"]}).to_excel(writer, sheet_name="Notes", index=False)
            ledger_df.to_excel(writer, sheet_name="Payment Ledger", index=False)

        loader = ExcelSourceLoader()
        assert loader.detect_sheet(loader.load_all_sheets(path), config.ledger_source) == "Payment Ledger"

        records = normalize_payment_ledger(load_ledger(path, config.ledger_source))
        assert len(records) == 4

    def test_excel_without_ledger_sheet(self, tmp_path):
        path = tmp_path / "export.xlsx"
        pd.DataFrame({"notes": ["nothing"]}).to_excel(path, index=False)
        with pytest.raises(LedgerSchemaError):
            load_ledger(path, config.ledger_source)

    def test_unsupported_suffix(self, tmp_path):
        with pytest.raises(ValueError, match="Unsupported"):
            load_ledger(tmp_path / "payments.json", config.ledger_source)
