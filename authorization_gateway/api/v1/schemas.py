"""Pydantic schemas for API request/response validation"""

from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from authorization_gateway.domain.authorization_data import authorization_data_to_dict
from authorization_gateway.domain.models import (
    AuthorizationRequest,
    CompletionScore,
    Priority,
    RequestStats,
    RequestStatus,
    ReviewStage,
    ViabilityClass,
    ViabilityResult,
)


class CompetitorSchema(BaseModel):
    name: str
    price: float = 0


class SimulationSchema(BaseModel):
    """Simulation reference resolved by the quoting service"""

    id: str = Field(..., min_length=1)
    quote_id: Optional[str] = None
    tier_code: Optional[str] = None
    term_months: Optional[int] = Field(None, gt=0)
    monthly_payment: Optional[float] = Field(None, ge=0)
    pmt_total_month2: Optional[float] = Field(None, ge=0)
    financed_amount: Optional[float] = Field(None, ge=0)
    total_to_finance: Optional[float] = Field(None, ge=0)
    created_at: Optional[datetime] = None


class QuoteSchema(BaseModel):
    id: str = Field(..., min_length=1)
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    vehicle_brand: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_year: Optional[int] = None
    vehicle_value: Optional[float] = None
    agency_name: Optional[str] = None
    promoter_code: Optional[str] = None


class CreateRequest(BaseModel):
    """Request body for POST /v1/authorization-requests"""

    simulation: Optional[SimulationSchema] = None
    quote: Optional[QuoteSchema] = None
    simulation_id: Optional[str] = None
    quote_id: Optional[str] = None
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    vehicle_brand: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_year: Optional[int] = None
    vehicle_value: Optional[float] = Field(None, ge=0)
    requested_amount: Optional[float] = Field(None, ge=0)
    monthly_payment: Optional[float] = Field(None, ge=0)
    term_months: Optional[int] = Field(None, gt=0)
    agency_name: Optional[str] = None
    dealer_name: Optional[str] = None
    promoter_code: Optional[str] = None
    assigned_to_user_id: Optional[str] = None
    priority: Optional[Priority] = None
    risk_level: Optional[str] = None
    client_comments: Optional[str] = None
    internal_notes: Optional[str] = None
    authorization_data: Optional[Dict[str, Any]] = None
    competitors: List[CompetitorSchema] = Field(default_factory=list)


class UpdateRequest(BaseModel):
    """Request body for PATCH /v1/authorization-requests/{id}"""

    authorization_data: Optional[Dict[str, Any]] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    promoter_code: Optional[str] = None
    risk_level: Optional[str] = None
    expected_version: Optional[int] = Field(None, ge=1, description="Reject the write if the stored version moved")


class AssignRequest(BaseModel):
    user_id: str = Field(..., min_length=1)


class DecisionRequest(BaseModel):
    """Request body for POST /v1/authorization-requests/{id}/decision"""

    outcome: RequestStatus
    notes: str = Field(..., description="Mandatory justification for the decision")


class PriorityRequest(BaseModel):
    priority: Priority


class NoteRequest(BaseModel):
    text: str


class StageReviewRequest(BaseModel):
    stage: ReviewStage
    notes: Optional[str] = None


class SimulationCandidate(BaseModel):
    simulation: SimulationSchema
    quote: Optional[QuoteSchema] = None


class ConnectSimulationRequest(BaseModel):
    """Explicit simulation to link, or candidates to match against the request"""

    simulation: Optional[SimulationSchema] = None
    quote: Optional[QuoteSchema] = None
    tier_code: Optional[str] = None
    candidates: List[SimulationCandidate] = Field(default_factory=list)


class AuthorizationRequestResponse(BaseModel):
    """Full authorization request"""

    id: str
    simulation_id: Optional[str] = None
    quote_id: Optional[str] = None
    status: RequestStatus
    priority: Priority
    risk_level: str
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
    authorization_data: Dict[str, Any]
    competitors_data: List[CompetitorSchema]
    created_at: datetime
    updated_at: datetime
    version: int

    @classmethod
    def from_domain(cls, request: AuthorizationRequest) -> "AuthorizationRequestResponse":
        values = asdict(request)
        values["authorization_data"] = authorization_data_to_dict(request.authorization_data)
        return cls(**values)


class AuthorizationRequestList(BaseModel):
    items: List[AuthorizationRequestResponse]
    page: int
    page_size: int


class ViabilityResponse(BaseModel):
    average_income: float
    average_expense: float
    available_income: float
    payment_capacity: float
    ratio: Optional[float] = None
    classification: ViabilityClass
    surplus: float
    declared_capacity: Optional[float] = None

    @classmethod
    def from_domain(cls, result: ViabilityResult) -> "ViabilityResponse":
        return cls(**asdict(result))


class SectionScoreSchema(BaseModel):
    completed: int
    total: int
    percentage: int


class CompletenessResponse(BaseModel):
    percent: int
    completed_points: int
    total_points: int
    is_complete: bool
    sections: Dict[str, SectionScoreSchema]
    missing_fields: List[str]

    @classmethod
    def from_domain(cls, score: CompletionScore) -> "CompletenessResponse":
        return cls(
            percent=score.percent,
            completed_points=score.completed_points,
            total_points=score.total_points,
            is_complete=score.is_complete,
            sections={
                name: SectionScoreSchema(completed=s.completed, total=s.total, percentage=s.percentage)
                for name, s in score.sections.items()
            },
            missing_fields=score.missing_fields,
        )


class StatsResponse(BaseModel):
    """Response for GET /v1/authorization-requests/stats"""

    total: int
    per_status: Dict[str, int]
    per_priority: Dict[str, int]
    per_risk_level: Dict[str, int]
    decided_count: int
    avg_decision_time_seconds: Optional[float] = None
    avg_decision_time_hours: Optional[float] = None

    @classmethod
    def from_domain(cls, stats: RequestStats) -> "StatsResponse":
        return cls(**asdict(stats), avg_decision_time_hours=stats.avg_decision_time_hours)
