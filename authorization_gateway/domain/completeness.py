"""Review-form completeness scoring"""

from typing import Any, Iterable, List, Tuple
from authorization_gateway.domain.models import AuthorizationData, CompletionScore, SectionScore

APPLICANT_FIELDS: List[Tuple[str, str]] = [
    ("company", "Company"),
    ("applicant_name", "Applicant name"),
    ("position", "Position"),
    ("age", "Age"),
    ("marital_status", "Marital status"),
    ("seniority", "Seniority"),
    ("monthly_salary", "Monthly salary"),
]

FINANCING_FIELDS: List[Tuple[str, str]] = [
    ("requested_amount", "Requested amount"),
    ("term_months", "Term in months"),
    ("interest_rate", "Interest rate"),
    ("opening_fee", "Opening fee"),
    ("monthly_capacity", "Declared monthly capacity"),
    ("monthly_discount", "Declared monthly discount"),
]

VEHICLE_FIELDS: List[Tuple[str, str]] = [
    ("dealership", "Agency"),
    ("vehicle_brand", "Vehicle brand"),
    ("vehicle_model", "Vehicle model"),
    ("vehicle_year", "Vehicle year"),
    ("sale_value", "Sale value"),
    ("book_value", "Book value"),
]

INCOME_BONUS_POINTS = 2
INCOME_MIN_CELLS = 6
EXPENSE_BONUS_POINTS = 1
EXPENSE_MIN_CELLS = 4
FINANCIAL_SECTION_CAP = 9

TOTAL_POINTS = len(APPLICANT_FIELDS) + FINANCIAL_SECTION_CAP + len(VEHICLE_FIELDS)  # 22
COMPLETE_THRESHOLD_PERCENT = 85
MAX_MISSING_FIELDS = 5


def is_filled(value: Any) -> bool:
    """
    A value counts as answered when present and not its type's zero value.

    Note: a genuine zero (e.g. zero seniority) cannot be told apart from an
    unanswered field here; it is scored as missing.
    """
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return True


def _score_fields(section: Any, fields: List[Tuple[str, str]], missing: List[str]) -> int:
    completed = 0
    for key, label in fields:
        if is_filled(getattr(section, key)):
            completed += 1
        else:
            missing.append(label)
    return completed


def _count_filled(values: Iterable[Any]) -> int:
    return sum(1 for value in values if is_filled(value))


def score_completeness(snapshot: AuthorizationData | None) -> CompletionScore:
    """
    Score how complete a review form is, per section and overall.

    Points:
    - Applicant: 1 per answered field (7)
    - Financial: 1 per answered basic field (6), +2 when at least 6 of the 12
      income cells are filled, +1 when at least 4 of the 9 expense cells are
      filled, capped at 9
    - Vehicle: 1 per answered field (6)

    The form is complete at 85% of the 22 points. Only the first five missing
    items are reported.
    """
    if snapshot is None:
        snapshot = AuthorizationData()

    missing: List[str] = []

    applicant_points = _score_fields(snapshot.applicant, APPLICANT_FIELDS, missing)

    financial_points = _score_fields(snapshot.financing, FINANCING_FIELDS, missing)
    income_cells = _count_filled(cell for month in snapshot.months for cell in month.income_cells())
    expense_cells = _count_filled(cell for month in snapshot.months for cell in month.expense_cells())
    if income_cells >= INCOME_MIN_CELLS:
        financial_points += INCOME_BONUS_POINTS
    else:
        missing.append(f"Income data (at least {INCOME_MIN_CELLS} cells)")
    if expense_cells >= EXPENSE_MIN_CELLS:
        financial_points += EXPENSE_BONUS_POINTS
    else:
        missing.append(f"Expense data (at least {EXPENSE_MIN_CELLS} cells)")
    financial_points = min(financial_points, FINANCIAL_SECTION_CAP)

    vehicle_points = _score_fields(snapshot.vehicle, VEHICLE_FIELDS, missing)

    completed = applicant_points + financial_points + vehicle_points
    percent = int(completed * 100 / TOTAL_POINTS + 0.5)

    return CompletionScore(
        percent=percent,
        completed_points=completed,
        total_points=TOTAL_POINTS,
        is_complete=percent >= COMPLETE_THRESHOLD_PERCENT,
        sections={
            "applicant": SectionScore(applicant_points, len(APPLICANT_FIELDS)),
            "financial": SectionScore(financial_points, FINANCIAL_SECTION_CAP),
            "vehicle": SectionScore(vehicle_points, len(VEHICLE_FIELDS)),
        },
        missing_fields=missing[:MAX_MISSING_FIELDS],
    )
