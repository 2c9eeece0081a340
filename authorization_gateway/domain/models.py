"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional


class RequestStatus(str, Enum):
    """Review lifecycle of an authorization request"""

    PENDING = "pending"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (RequestStatus.APPROVED, RequestStatus.REJECTED)


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ReviewStage(str, Enum):
    """Review stages recorded while a request is in review, in order"""

    ADVISOR = "advisor"
    INTERNAL_COMMITTEE = "internal_committee"
    PARTNERS_COMMITTEE = "partners_committee"


class ViabilityClass(str, Enum):
    NOT_VIABLE = "not_viable"
    RISKY = "risky"
    ACCEPTABLE = "acceptable"
    OPTIMAL = "optimal"
    EXCELLENT = "excellent"
    NOT_COMPUTABLE = "not_computable"


@dataclass(frozen=True)
class MonthlyFinancialEntry:
    """Income and expense components declared for one reviewed month"""

    payroll: Optional[float] = None
    commissions: Optional[float] = None
    business: Optional[float] = None
    cash: Optional[float] = None
    committed_debt: Optional[float] = None
    personal_expenses: Optional[float] = None
    business_expenses: Optional[float] = None

    def income_cells(self) -> List[Optional[float]]:
        return [self.payroll, self.commissions, self.business, self.cash]

    def expense_cells(self) -> List[Optional[float]]:
        return [self.committed_debt, self.personal_expenses, self.business_expenses]

    @property
    def income_total(self) -> float:
        return sum(value or 0 for value in self.income_cells())

    @property
    def expense_total(self) -> float:
        return sum(value or 0 for value in self.expense_cells())


@dataclass
class Competitor:
    name: str
    price: float = 0


@dataclass
class ApplicantProfile:
    company: Optional[str] = None
    applicant_name: Optional[str] = None
    position: Optional[str] = None
    age: Optional[int] = None
    marital_status: Optional[str] = None
    seniority: Optional[float] = None
    monthly_salary: Optional[float] = None


@dataclass
class FinancingTerms:
    requested_amount: Optional[float] = None
    term_months: Optional[int] = None
    interest_rate: Optional[float] = None
    opening_fee: Optional[float] = None
    monthly_capacity: Optional[float] = None  # declared by the reviewer, not computed
    monthly_discount: Optional[float] = None


@dataclass
class VehicleDetails:
    dealership: Optional[str] = None
    vehicle_brand: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_year: Optional[int] = None
    sale_value: Optional[float] = None
    book_value: Optional[float] = None


@dataclass
class FinancialAggregates:
    """Derived figures stored alongside the form for audit"""

    total_income: float = 0
    average_income: float = 0
    total_expenses: float = 0
    average_expenses: float = 0
    available_income: float = 0
    payment_capacity: float = 0
    viability_ratio: Optional[float] = None


def _empty_months() -> List[MonthlyFinancialEntry]:
    return [MonthlyFinancialEntry() for _ in range(3)]


@dataclass
class AuthorizationData:
    """Review-form working copy, schema version 2"""

    schema_version: int = 2
    applicant: ApplicantProfile = field(default_factory=ApplicantProfile)
    financing: FinancingTerms = field(default_factory=FinancingTerms)
    vehicle: VehicleDetails = field(default_factory=VehicleDetails)
    months: List[MonthlyFinancialEntry] = field(default_factory=_empty_months)
    month_labels: List[str] = field(default_factory=list)
    month_labels_frozen: bool = False
    competitors: List[Competitor] = field(default_factory=list)
    comments: Optional[str] = None
    aggregates: FinancialAggregates = field(default_factory=FinancialAggregates)
    auto_saved_at: Optional[datetime] = None


@dataclass
class AuthorizationRequest:
    """The reviewable unit tracked through the authorization workflow"""

    id: Optional[str] = None
    simulation_id: Optional[str] = None
    quote_id: Optional[str] = None

    status: RequestStatus = RequestStatus.PENDING
    priority: Priority = Priority.MEDIUM
    risk_level: str = "medium"

    # Snapshot copied from simulation/quote at creation, editable afterwards
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    vehicle_brand: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_year: Optional[int] = None
    vehicle_value: Optional[float] = None
    requested_amount: Optional[float] = None
    monthly_payment: Optional[float] = None
    term_months: Optional[int] = None
    agency_name: Optional[str] = None
    dealer_name: Optional[str] = None
    promoter_code: Optional[str] = None

    created_by_user_id: Optional[str] = None
    assigned_to_user_id: Optional[str] = None
    advisor_reviewed_by: Optional[str] = None
    advisor_reviewed_at: Optional[datetime] = None
    internal_committee_reviewed_by: Optional[str] = None
    internal_committee_reviewed_at: Optional[datetime] = None
    partners_committee_reviewed_by: Optional[str] = None
    partners_committee_reviewed_at: Optional[datetime] = None
    decided_by_user_id: Optional[str] = None
    decided_at: Optional[datetime] = None

    client_comments: Optional[str] = None
    internal_notes: Optional[str] = None
    approval_notes: Optional[str] = None

    authorization_data: AuthorizationData = field(default_factory=AuthorizationData)
    competitors_data: List[Competitor] = field(default_factory=list)

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 0


@dataclass(frozen=True)
class SimulationSnapshot:
    """Financing simulation produced by the external quoting service"""

    id: str
    quote_id: Optional[str] = None
    tier_code: Optional[str] = None
    term_months: Optional[int] = None
    monthly_payment: Optional[float] = None
    pmt_total_month2: Optional[float] = None
    financed_amount: Optional[float] = None
    total_to_finance: Optional[float] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class QuoteSnapshot:
    """Client and vehicle quote produced by the external quoting service"""

    id: str
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    vehicle_brand: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_year: Optional[int] = None
    vehicle_value: Optional[float] = None
    agency_name: Optional[str] = None
    promoter_code: Optional[str] = None


@dataclass
class CreateSource:
    """Input for creating a request: a simulation/quote pair and/or raw client and vehicle data"""

    simulation: Optional[SimulationSnapshot] = None
    quote: Optional[QuoteSnapshot] = None
    simulation_id: Optional[str] = None
    quote_id: Optional[str] = None
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    vehicle_brand: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_year: Optional[int] = None
    vehicle_value: Optional[float] = None
    requested_amount: Optional[float] = None
    monthly_payment: Optional[float] = None
    term_months: Optional[int] = None
    agency_name: Optional[str] = None
    dealer_name: Optional[str] = None
    promoter_code: Optional[str] = None
    created_by_user_id: Optional[str] = None
    assigned_to_user_id: Optional[str] = None
    priority: Optional[Priority] = None
    risk_level: Optional[str] = None
    client_comments: Optional[str] = None
    internal_notes: Optional[str] = None
    authorization_data: Optional[dict] = None
    competitors: List[Competitor] = field(default_factory=list)


@dataclass(frozen=True)
class SessionContext:
    """Acting user for workflow and autosave calls"""

    user_id: str
    display_name: Optional[str] = None


@dataclass(frozen=True)
class ViabilityResult:
    """Output of the payment-capacity analysis"""

    average_income: float
    average_expense: float
    available_income: float
    payment_capacity: float
    ratio: Optional[float]
    classification: ViabilityClass
    surplus: float
    declared_capacity: Optional[float] = None

    @property
    def computable(self) -> bool:
        return self.classification is not ViabilityClass.NOT_COMPUTABLE


@dataclass
class SectionScore:
    completed: int
    total: int

    @property
    def percentage(self) -> int:
        return int(self.completed * 100 / self.total + 0.5) if self.total else 0


@dataclass
class CompletionScore:
    percent: int
    completed_points: int
    total_points: int
    is_complete: bool
    sections: Dict[str, SectionScore]
    missing_fields: List[str]


@dataclass
class RequestStats:
    total: int
    per_status: Dict[str, int]
    per_priority: Dict[str, int]
    per_risk_level: Dict[str, int]
    decided_count: int
    avg_decision_time_seconds: Optional[float]

    @property
    def avg_decision_time_hours(self) -> Optional[float]:
        if self.avg_decision_time_seconds is None:
            return None
        return self.avg_decision_time_seconds / 3600


@dataclass
class RequestFilters:
    assignee: Optional[str] = None
    status: Optional[RequestStatus] = None
    priority: Optional[Priority] = None
    search_term: Optional[str] = None


@dataclass
class Page:
    number: int = 1
    size: int = 50

    @property
    def offset(self) -> int:
        return (self.number - 1) * self.size
