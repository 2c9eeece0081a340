"""Financial viability engine - payment capacity versus the monthly obligation"""

from functools import lru_cache
from typing import List, Optional, Sequence, Tuple
from authorization_gateway.domain.models import FinancialAggregates, MonthlyFinancialEntry, ViabilityClass, ViabilityResult
from authorization_gateway.domain.exceptions import ValidationError

REVIEWED_MONTHS = 3

# Share of available income that may go to debt service
PAYMENT_CAPACITY_RATIO = 0.4

# Lower bounds, evaluated top-down; anything below the last band is not viable
CLASSIFICATION_BANDS: List[Tuple[float, ViabilityClass]] = [
    (1.8, ViabilityClass.EXCELLENT),
    (1.4, ViabilityClass.OPTIMAL),
    (1.2, ViabilityClass.ACCEPTABLE),
    (1.0, ViabilityClass.RISKY),
]


def classify_ratio(ratio: Optional[float]) -> ViabilityClass:
    """
    Map a viability ratio to its band.

    Bands are closed on the left, open on the right:
    - < 1.0:       not viable
    - 1.0 - 1.2:   risky
    - 1.2 - 1.4:   acceptable
    - 1.4 - 1.8:   optimal
    - 1.8+:        excellent
    """
    if ratio is None:
        return ViabilityClass.NOT_COMPUTABLE
    for lower_bound, classification in CLASSIFICATION_BANDS:
        if ratio >= lower_bound:
            return classification
    return ViabilityClass.NOT_VIABLE


def evaluate_viability(
    entries: Sequence[MonthlyFinancialEntry],
    monthly_payment: Optional[float],
    declared_capacity: Optional[float] = None,
) -> ViabilityResult:
    """
    Compute the debtor's payment capacity and classify it against the monthly payment.

    Steps:
    - Monthly income = payroll + commissions + business + cash (missing parts count as 0)
    - Monthly expenses = committed debt + personal + business expenses
    - Available income = mean income - mean expenses (may be negative)
    - Payment capacity = 40% of available income
    - Ratio = capacity / monthly payment; not computable when the payment is not positive

    The surplus compares available income with the reviewer's declared capacity
    when one was captured, otherwise with the computed capacity.
    """
    if len(entries) != REVIEWED_MONTHS:
        raise ValidationError(f"Expected {REVIEWED_MONTHS} monthly entries, got {len(entries)}")
    return _evaluate(tuple(entries), monthly_payment, declared_capacity)


@lru_cache(maxsize=256)
def _evaluate(
    entries: Tuple[MonthlyFinancialEntry, ...],
    monthly_payment: Optional[float],
    declared_capacity: Optional[float],
) -> ViabilityResult:
    average_income = sum(entry.income_total for entry in entries) / len(entries)
    average_expense = sum(entry.expense_total for entry in entries) / len(entries)
    available_income = average_income - average_expense
    payment_capacity = PAYMENT_CAPACITY_RATIO * available_income

    ratio = None
    if monthly_payment is not None and monthly_payment > 0:
        ratio = round(payment_capacity / monthly_payment, 6)

    reference = declared_capacity if declared_capacity is not None else payment_capacity

    return ViabilityResult(
        average_income=average_income,
        average_expense=average_expense,
        available_income=available_income,
        payment_capacity=payment_capacity,
        ratio=ratio,
        classification=classify_ratio(ratio),
        surplus=available_income - reference,
        declared_capacity=declared_capacity,
    )


def compute_aggregates(
    entries: Sequence[MonthlyFinancialEntry],
    monthly_payment: Optional[float],
) -> FinancialAggregates:
    """Totals and averages stored with the form snapshot"""
    result = evaluate_viability(entries, monthly_payment)
    return FinancialAggregates(
        total_income=sum(entry.income_total for entry in entries),
        average_income=result.average_income,
        total_expenses=sum(entry.expense_total for entry in entries),
        average_expenses=result.average_expense,
        available_income=result.available_income,
        payment_capacity=result.payment_capacity,
        viability_ratio=result.ratio,
    )
