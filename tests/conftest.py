"""Pytest configuration and fixtures for the billing engine."""

import pytest
from datetime import datetime
from decimal import Decimal

from billing_engine.models import Cadence, ChargeDefinition, PaymentOutcome, PaymentRecord


# =============================================================================
# Charge fixtures
# =============================================================================

@pytest.fixture
def monthly_charge():
    """Monthly rent charge."""
    return ChargeDefinition(
        charge_id="rent",
        name="Rent",
        amount=Decimal("50000"),
        cadence=Cadence.MONTHLY,
        building_id="bldg-1",
    )


@pytest.fixture
def yearly_charge():
    """Yearly service charge."""
    return ChargeDefinition(
        charge_id="service",
        name="Service Charge",
        amount=Decimal("120000"),
        cadence=Cadence.YEARLY,
        building_id="bldg-1",
    )


# =============================================================================
# Payment fixtures
# =============================================================================

@pytest.fixture
def make_payment():
    """Factory for payment records; defaults to a successful monthly rent payment."""
    counter = {"n": 0}

    def _make(
        year=2024,
        month=1,
        charge_id="rent",
        outcome=PaymentOutcome.SUCCESS,
        month_end=None,
        label=None,
        created_at=None,
        payment_id=None,
        amount="50000",
        paid_at=None,
    ):
        counter["n"] += 1
        return PaymentRecord(
            payment_id=payment_id or f"pay-{counter['n']:03d}",
            charge_id=charge_id,
            amount=Decimal(amount),
            outcome=PaymentOutcome(outcome),
            created_at=created_at or datetime(2024, 1, 1, 9, 0),
            period_year=year,
            period_month=month,
            period_month_end=month_end,
            period_label=label,
            paid_at=paid_at,
        )

    return _make


# =============================================================================
# Raw ledger rows (payments table export shape)
# =============================================================================

@pytest.fixture
def ledger_rows():
    """Raw ledger rows as exported from the payments table."""
    return [
        {
            "id": "p1", "charge_id": "rent", "user_id": "tenant-1", "status": "success",
            "amount": 50000, "period_year": 2024, "period_month": 1, "period_month_end": None,
            "period_label": "January 2024", "created_at": "2024-01-05T10:00:00Z",
            "paid_at": "2024-01-05T10:02:00Z", "paystack_reference": "CHARGE_1",
        },
        {
            "id": "p2", "charge_id": "rent", "user_id": "tenant-1", "status": "success",
            "amount": 50000, "period_year": 2024, "period_month": 2, "period_month_end": None,
            "period_label": "February 2024", "created_at": "2024-02-03T08:30:00Z",
            "paid_at": "2024-02-03T08:31:00Z", "paystack_reference": "CHARGE_2",
        },
        {
            "id": "p3", "charge_id": "rent", "user_id": "tenant-1", "status": "pending",
            "amount": 50000, "period_year": 2024, "period_month": 3, "period_month_end": None,
            "period_label": "March 2024", "created_at": "2024-03-02T12:00:00Z",
            "paid_at": None, "paystack_reference": "CHARGE_3",
        },
        {
            "id": "p4", "charge_id": "service", "user_id": "tenant-1", "status": "success",
            "amount": 120000, "period_year": 2023, "period_month": None, "period_month_end": None,
            "period_label": "2023 - 2024", "created_at": "2023-06-10T09:00:00Z",
            "paid_at": "2023-06-10T09:05:00Z", "paystack_reference": "CHARGE_4",
        },
    ]
