"""/v1/authorization-requests - authorization request workflow endpoints"""

import time
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from authorization_gateway.api.dependencies import (
    get_engine,
    get_request_id,
    get_session_context,
    require_session_context,
)
from authorization_gateway.api.v1.schemas import (
    AssignRequest,
    AuthorizationRequestList,
    AuthorizationRequestResponse,
    CompletenessResponse,
    ConnectSimulationRequest,
    CreateRequest,
    DecisionRequest,
    NoteRequest,
    PriorityRequest,
    QuoteSchema,
    SimulationSchema,
    StageReviewRequest,
    StatsResponse,
    UpdateRequest,
    ViabilityResponse,
)
from authorization_gateway.config import settings
from authorization_gateway.domain.completeness import score_completeness
from authorization_gateway.domain.exceptions import (
    ConflictError,
    DomainException,
    InvalidTransition,
    NotFoundError,
    ValidationError,
)
from authorization_gateway.domain.models import (
    Competitor,
    CreateSource,
    Page,
    Priority,
    QuoteSnapshot,
    RequestFilters,
    RequestStatus,
    SessionContext,
    SimulationSnapshot,
)
from authorization_gateway.domain.viability import evaluate_viability
from authorization_gateway.domain.workflow import WorkflowEngine, find_matching_simulation
from authorization_gateway.infrastructure.database.repositories import AuthorizationRequestRepository
from authorization_gateway.infrastructure.database.session import get_db
from authorization_gateway.infrastructure.observability.logging import log_decision
from authorization_gateway.infrastructure.observability.metrics import record_transition, request_created_counter

router = APIRouter(prefix="/authorization-requests")

logger = logging.getLogger(__name__)


def _http_error(e: DomainException, request_id: str) -> HTTPException:
    """Map the domain taxonomy onto HTTP status codes"""
    if isinstance(e, ValidationError):
        logger.warning(f"Validation failed: {e}", extra={"request_id": request_id})
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, InvalidTransition):
        logger.warning(f"Invalid transition: {e}", extra={"request_id": request_id})
        return HTTPException(status_code=409, detail=str(e), headers={"X-Error-Kind": "invalid_transition"})
    if isinstance(e, ConflictError):
        logger.warning(f"Version conflict: {e}", extra={"request_id": request_id})
        return HTTPException(status_code=409, detail=str(e), headers={"X-Error-Kind": "version_conflict"})
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    logger.error(f"Persistence error: {e}", extra={"request_id": request_id})
    return HTTPException(status_code=500, detail="Internal server error")


def _simulation(schema: Optional[SimulationSchema]) -> Optional[SimulationSnapshot]:
    return SimulationSnapshot(**schema.model_dump()) if schema else None


def _quote(schema: Optional[QuoteSchema]) -> Optional[QuoteSnapshot]:
    return QuoteSnapshot(**schema.model_dump()) if schema else None


def _respond(request) -> AuthorizationRequestResponse:
    return AuthorizationRequestResponse.from_domain(request)


@router.post("", response_model=AuthorizationRequestResponse, status_code=201)
def create_authorization_request(
    body: CreateRequest,
    request: Request,
    db: Session = Depends(get_db),
    engine: WorkflowEngine = Depends(get_engine),
    context: Optional[SessionContext] = Depends(get_session_context),
):
    """
    Create a request from a simulation/quote pair or raw client data.

    The acting user (X-User-ID) becomes the creator and, unless another
    assignee is given, the reviewer; such requests start in review.
    """
    request_id = get_request_id(request)
    fields = body.model_dump(exclude={"simulation", "quote", "competitors"})
    source = CreateSource(
        **fields,
        simulation=_simulation(body.simulation),
        quote=_quote(body.quote),
        competitors=[Competitor(name=c.name, price=c.price) for c in body.competitors],
        created_by_user_id=context.user_id if context else None,
    )

    try:
        created = AuthorizationRequestRepository(db).create(engine.create(source))
        db.commit()
    except DomainException as e:
        db.rollback()
        raise _http_error(e, request_id)
    except Exception as e:
        db.rollback()
        logger.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    request_created_counter.labels(priority=created.priority.value).inc()
    return _respond(created)


@router.get("", response_model=AuthorizationRequestList)
def list_authorization_requests(
    assignee: Optional[str] = Query(None, description="Assigned reviewer user id"),
    status: Optional[RequestStatus] = Query(None),
    priority: Optional[Priority] = Query(None),
    search: Optional[str] = Query(None, description="Matches client, email, vehicle or agency"),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    db: Session = Depends(get_db),
):
    """Newest-first listing for the review dashboard"""
    filters = RequestFilters(assignee=assignee, status=status, priority=priority, search_term=search)
    items = AuthorizationRequestRepository(db).list(filters, Page(number=page, size=page_size))
    return AuthorizationRequestList(items=[_respond(item) for item in items], page=page, page_size=page_size)


@router.get("/stats", response_model=StatsResponse)
def get_stats(db: Session = Depends(get_db)):
    """Dashboard counters and average decision time"""
    return StatsResponse.from_domain(AuthorizationRequestRepository(db).aggregate())


@router.get("/{request_id}", response_model=AuthorizationRequestResponse)
def get_authorization_request(request_id: str, request: Request, db: Session = Depends(get_db)):
    try:
        return _respond(AuthorizationRequestRepository(db).get(request_id))
    except DomainException as e:
        raise _http_error(e, get_request_id(request))


@router.patch("/{request_id}", response_model=AuthorizationRequestResponse)
def update_authorization_request(
    request_id: str,
    body: UpdateRequest,
    request: Request,
    db: Session = Depends(get_db),
    engine: WorkflowEngine = Depends(get_engine),
):
    """
    Autosave target: merge review-form data and contact fields.

    Returns 409 when `expected_version` no longer matches the stored row.
    """
    trace_id = get_request_id(request)
    repo = AuthorizationRequestRepository(db)
    try:
        current = repo.get(request_id)
        if body.expected_version is not None and body.expected_version != current.version:
            raise ConflictError(
                f"Authorization request {request_id} changed since version {body.expected_version}",
                expected_version=body.expected_version,
                actual_version=current.version,
            )

        if body.authorization_data is not None:
            partial = {**body.authorization_data, "auto_saved_at": engine.clock().isoformat()}
            engine.update_financial_snapshot(current, partial)
        for key, value in body.model_dump(exclude={"authorization_data", "expected_version"}, exclude_unset=True).items():
            setattr(current, key, value)
        engine.touch(current)

        saved = repo.save(current)
        db.commit()
    except DomainException as e:
        db.rollback()
        raise _http_error(e, trace_id)
    except Exception as e:
        db.rollback()
        logger.error(f"Unexpected error: {e}", extra={"request_id": trace_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    return _respond(saved)


@router.post("/{request_id}/assign", response_model=AuthorizationRequestResponse)
def assign_authorization_request(
    request_id: str,
    body: AssignRequest,
    request: Request,
    db: Session = Depends(get_db),
    engine: WorkflowEngine = Depends(get_engine),
):
    """Assign a reviewer; moves the request into review"""
    trace_id = get_request_id(request)
    repo = AuthorizationRequestRepository(db)
    try:
        current = repo.get(request_id)
        previous = current.status
        saved = repo.save(engine.assign(current, body.user_id))
        db.commit()
    except DomainException as e:
        db.rollback()
        raise _http_error(e, trace_id)
    except Exception as e:
        db.rollback()
        logger.error(f"Unexpected error: {e}", extra={"request_id": trace_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    if saved.status != previous:
        record_transition(previous.value, saved.status.value)
    return _respond(saved)


@router.post("/{request_id}/decision", response_model=AuthorizationRequestResponse)
def decide_authorization_request(
    request_id: str,
    body: DecisionRequest,
    request: Request,
    db: Session = Depends(get_db),
    engine: WorkflowEngine = Depends(get_engine),
    context: SessionContext = Depends(require_session_context),
):
    """
    Approve or reject a request in review.

    Requirements:
    - Request status is in_review
    - Non-empty decision notes
    - Acting reviewer identified by X-User-ID

    Returns:
        The decided request (status approved or rejected)
    """
    start_time = time.time()
    trace_id = get_request_id(request)
    repo = AuthorizationRequestRepository(db)
    try:
        current = repo.get(request_id)
        previous = current.status
        saved = repo.save(engine.decide(current, body.outcome, body.notes, context.user_id))
        db.commit()
    except DomainException as e:
        db.rollback()
        raise _http_error(e, trace_id)
    except Exception as e:
        db.rollback()
        logger.error(f"Unexpected error: {e}", extra={"request_id": trace_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    duration_ms = (time.time() - start_time) * 1000
    record_transition(previous.value, saved.status.value)
    log_decision(trace_id, context.user_id, saved.status.value, saved.priority.value, duration_ms)
    return _respond(saved)


@router.post("/{request_id}/priority", response_model=AuthorizationRequestResponse)
def set_authorization_request_priority(
    request_id: str,
    body: PriorityRequest,
    request: Request,
    db: Session = Depends(get_db),
    engine: WorkflowEngine = Depends(get_engine),
):
    """Override the priority; decided requests are returned unchanged"""
    trace_id = get_request_id(request)
    repo = AuthorizationRequestRepository(db)
    try:
        current = repo.get(request_id)
        if not engine.set_priority(current, body.priority):
            return _respond(current)
        saved = repo.save(current)
        db.commit()
    except DomainException as e:
        db.rollback()
        raise _http_error(e, trace_id)
    except Exception as e:
        db.rollback()
        logger.error(f"Unexpected error: {e}", extra={"request_id": trace_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    return _respond(saved)


@router.post("/{request_id}/notes", response_model=AuthorizationRequestResponse)
def append_authorization_request_note(
    request_id: str,
    body: NoteRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """Append a timestamped internal note"""
    trace_id = get_request_id(request)
    try:
        saved = AuthorizationRequestRepository(db).append_note(request_id, body.text)
        db.commit()
    except DomainException as e:
        db.rollback()
        raise _http_error(e, trace_id)
    except Exception as e:
        db.rollback()
        logger.error(f"Unexpected error: {e}", extra={"request_id": trace_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    return _respond(saved)


@router.post("/{request_id}/stage-reviews", response_model=AuthorizationRequestResponse)
def record_stage_review(
    request_id: str,
    body: StageReviewRequest,
    request: Request,
    db: Session = Depends(get_db),
    engine: WorkflowEngine = Depends(get_engine),
    context: SessionContext = Depends(require_session_context),
):
    """Sign off the advisor, internal committee or partners committee stage"""
    trace_id = get_request_id(request)
    repo = AuthorizationRequestRepository(db)
    try:
        current = repo.get(request_id)
        saved = repo.save(engine.record_stage_review(current, body.stage, context.user_id, body.notes))
        db.commit()
    except DomainException as e:
        db.rollback()
        raise _http_error(e, trace_id)
    except Exception as e:
        db.rollback()
        logger.error(f"Unexpected error: {e}", extra={"request_id": trace_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    return _respond(saved)


@router.post("/{request_id}/connect-simulation", response_model=AuthorizationRequestResponse)
def connect_simulation(
    request_id: str,
    body: ConnectSimulationRequest,
    request: Request,
    db: Session = Depends(get_db),
    engine: WorkflowEngine = Depends(get_engine),
):
    """
    Link a request to a simulation.

    Either the simulation is given explicitly, or the newest candidate with
    the requested tier, the request's term and a matching client name is used.
    """
    trace_id = get_request_id(request)
    repo = AuthorizationRequestRepository(db)
    try:
        current = repo.get(request_id)
        if body.simulation is not None:
            simulation, quote = _simulation(body.simulation), _quote(body.quote)
        else:
            if not body.tier_code:
                raise ValidationError("Either a simulation or a tier code with candidates is required")
            match = find_matching_simulation(
                [(_simulation(c.simulation), _quote(c.quote)) for c in body.candidates],
                current.client_name,
                body.tier_code,
                current.term_months,
            )
            if match is None:
                raise NotFoundError(f"No simulation matches authorization request {request_id}")
            simulation, quote = match

        saved = repo.save(engine.connect_simulation(current, simulation, quote))
        db.commit()
    except DomainException as e:
        db.rollback()
        raise _http_error(e, trace_id)
    except Exception as e:
        db.rollback()
        logger.error(f"Unexpected error: {e}", extra={"request_id": trace_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    return _respond(saved)


@router.get("/{request_id}/viability", response_model=ViabilityResponse)
def get_viability(request_id: str, request: Request, db: Session = Depends(get_db)):
    """Payment-capacity analysis of the stored review form"""
    try:
        current = AuthorizationRequestRepository(db).get(request_id)
        data = current.authorization_data
        result = evaluate_viability(data.months, current.monthly_payment, data.financing.monthly_capacity)
    except DomainException as e:
        raise _http_error(e, get_request_id(request))
    return ViabilityResponse.from_domain(result)


@router.get("/{request_id}/completeness", response_model=CompletenessResponse)
def get_completeness(request_id: str, request: Request, db: Session = Depends(get_db)):
    try:
        current = AuthorizationRequestRepository(db).get(request_id)
    except DomainException as e:
        raise _http_error(e, get_request_id(request))
    return CompletenessResponse.from_domain(score_completeness(current.authorization_data))
