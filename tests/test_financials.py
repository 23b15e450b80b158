"""
Test cases for derived case and portfolio figures.
"""
from decimal import Decimal

from recovery_portal.services.financials import (
    case_financials,
    case_recovery_rate,
    is_closed,
    outstanding_amount,
    recovery_band,
    recovery_rate,
    summarise_cases,
    total_debt,
    total_payments,
)


def test_recovery_rate_is_zero_when_nothing_owed():
    """Test that a zero original debt gives a 0% rate rather than NaN or infinity."""
    assert recovery_rate(Decimal("500"), Decimal("0")) == 0.0
    assert recovery_rate(0, 0) == 0.0
    assert recovery_rate(None, None) == 0.0


def test_recovery_rate_capped_at_100():
    assert recovery_rate(150, 100) == 100.0
    assert recovery_rate(25, 100) == 25.0


def test_outstanding_uses_stored_value_verbatim():
    """Test that a stored outstanding amount wins over the derived one."""
    case = {"original_amount": "1000", "outstanding_amount": "750.00",
            "payments": [{"amount": "100"}]}
    assert outstanding_amount(case) == Decimal("750.00")


def test_outstanding_derived_from_payments_when_not_stored():
    case = {"original_amount": "1000", "payments": [{"amount": "100"}, {"amount": "150.50"}]}
    assert outstanding_amount(case) == Decimal("749.50")


def test_derived_outstanding_goes_negative_on_overpayment():
    case = {"original_amount": "100", "payments": [{"amount": "120"}]}
    assert outstanding_amount(case) == Decimal("-20")


def test_missing_numbers_count_as_zero():
    case = {"original_amount": None, "costs_added": "", "payments": [{"amount": None}]}
    assert total_payments(case) == Decimal("0")
    assert total_debt(case) == Decimal("0")
    assert outstanding_amount(case) == Decimal("0")
    assert case_recovery_rate(case) == 0.0


def test_precomputed_total_payments_preferred():
    case = {"original_amount": "200", "total_payments": "50", "payments": [{"amount": "10"}]}
    assert total_payments(case) == Decimal("50")


def test_total_debt_adds_charges():
    case = {"original_amount": "1000", "costs_added": "100", "interest_added": "25.5", "fees_added": "10"}
    assert total_debt(case) == Decimal("1135.5")


def test_recovery_bands():
    assert recovery_band(95) == "high"
    assert recovery_band(90) == "high"
    assert recovery_band(50) == "medium"
    assert recovery_band(0.5) == "low"
    assert recovery_band(0) == "none"


def test_is_closed_is_case_insensitive():
    assert is_closed("Closed")
    assert is_closed(" RESOLVED ")
    assert not is_closed("active")
    assert not is_closed(None)


def test_summarise_cases_buckets_and_totals():
    cases = [
        {"status": "active", "original_amount": "1000", "payments": [{"amount": "1000"}]},
        {"status": "closed", "original_amount": "500", "payments": [{"amount": "100"}]},
        {"status": "New Matter", "original_amount": "0", "payments": []},
    ]
    summary = summarise_cases(cases)

    assert summary.case_count == 3
    assert summary.total_original == Decimal("1500.00")
    assert summary.total_recovered == Decimal("1100.00")
    assert summary.total_outstanding == Decimal("400.00")
    assert summary.by_status["active"].count == 1
    assert summary.by_status["closed"].recovered == Decimal("100")
    assert summary.by_status["new matter"].count == 1
    assert summary.by_band == {"high": 1, "medium": 0, "low": 1, "none": 1}
    assert summary.recovery_rate == 73.33


def test_summarise_empty_portfolio():
    summary = summarise_cases([])
    assert summary.case_count == 0
    assert summary.recovery_rate == 0.0
    assert summary.total_outstanding == Decimal("0.00")


def test_case_financials_quantised():
    figures = case_financials({"original_amount": "300", "payments": [{"amount": "100"}]})
    assert figures["total_payments"] == Decimal("100.00")
    assert figures["outstanding_amount"] == Decimal("200.00")
    assert figures["recovery_rate"] == 33.33
    assert figures["recovery_band"] == "low"
