"""Unit tests for payment-capacity viability"""

import pytest
from authorization_gateway.domain.exceptions import ValidationError
from authorization_gateway.domain.models import MonthlyFinancialEntry, ViabilityClass
from authorization_gateway.domain.viability import classify_ratio, compute_aggregates, evaluate_viability


def _months(income: float, expense: float) -> list[MonthlyFinancialEntry]:
    return [MonthlyFinancialEntry(payroll=income, committed_debt=expense) for _ in range(3)]


def test_acceptable_at_lower_band_edge():
    """Average income 12,000, expenses 0, payment 4,000 -> ratio 1.2"""
    result = evaluate_viability(_months(12000, 0), 4000)

    # capacity = 0.4 * 12000 = 4800; 4800 / 4000 = 1.2
    assert result.payment_capacity == pytest.approx(4800)
    assert result.ratio == pytest.approx(1.2)
    assert result.classification == ViabilityClass.ACCEPTABLE
    assert result.surplus == pytest.approx(12000 - 4800)


def test_income_components_and_expenses_are_averaged(steady_months):
    """Each month sums its income parts and subtracts its expenses"""
    result = evaluate_viability(steady_months, 10000)

    # income 40,000, expenses 10,000 -> available 30,000, capacity 12,000
    assert result.average_income == pytest.approx(40000)
    assert result.average_expense == pytest.approx(10000)
    assert result.available_income == pytest.approx(30000)
    assert result.ratio == pytest.approx(1.2)


def test_missing_components_count_as_zero():
    months = [
        MonthlyFinancialEntry(payroll=9000),
        MonthlyFinancialEntry(payroll=9000, cash=3000),
        MonthlyFinancialEntry(),
    ]
    result = evaluate_viability(months, 1000)

    assert result.average_income == pytest.approx(7000)
    assert result.average_expense == 0


@pytest.mark.parametrize(
    "ratio, expected",
    [
        (0.99, ViabilityClass.NOT_VIABLE),
        (1.0, ViabilityClass.RISKY),
        (1.19, ViabilityClass.RISKY),
        (1.2, ViabilityClass.ACCEPTABLE),
        (1.4, ViabilityClass.OPTIMAL),
        (1.79, ViabilityClass.OPTIMAL),
        (1.8, ViabilityClass.EXCELLENT),
        (4.0, ViabilityClass.EXCELLENT),
        (-2.0, ViabilityClass.NOT_VIABLE),
    ],
)
def test_classification_bands(ratio, expected):
    """Bands are closed on the left"""
    assert classify_ratio(ratio) == expected


def test_ratio_at_excellent_edge():
    """Capacity 1.8x the payment is excellent, not optimal"""
    # capacity = 0.4 * 9000 = 3600; 3600 / 2000 = 1.8
    result = evaluate_viability(_months(9000, 0), 2000)
    assert result.classification == ViabilityClass.EXCELLENT


def test_all_zero_months_are_not_viable():
    result = evaluate_viability(_months(0, 0), 5000)

    assert result.ratio == 0
    assert result.classification == ViabilityClass.NOT_VIABLE
    assert result.surplus == 0


def test_expenses_above_income_give_negative_capacity():
    result = evaluate_viability(_months(5000, 8000), 1000)

    assert result.available_income == pytest.approx(-3000)
    assert result.ratio < 0
    assert result.classification == ViabilityClass.NOT_VIABLE


@pytest.mark.parametrize("payment", [0, -100, None])
def test_non_positive_payment_is_not_computable(payment):
    result = evaluate_viability(_months(12000, 0), payment)

    assert result.ratio is None
    assert result.classification == ViabilityClass.NOT_COMPUTABLE
    assert not result.computable


def test_declared_capacity_drives_surplus():
    """The reviewer's declared capacity replaces the computed one in the surplus"""
    result = evaluate_viability(_months(12000, 2000), 3000, declared_capacity=2500)

    # available 10,000; ratio still uses the computed capacity (4,000)
    assert result.surplus == pytest.approx(7500)
    assert result.ratio == pytest.approx(4000 / 3000, rel=1e-6)


def test_requires_exactly_three_months():
    with pytest.raises(ValidationError):
        evaluate_viability(_months(1000, 0)[:2], 100)


def test_aggregates_match_viability(steady_months):
    aggregates = compute_aggregates(steady_months, 10000)

    assert aggregates.total_income == pytest.approx(120000)
    assert aggregates.total_expenses == pytest.approx(30000)
    assert aggregates.payment_capacity == pytest.approx(12000)
    assert aggregates.viability_ratio == pytest.approx(1.2)
