"""Authorization request workflow - lifecycle, assignment, priority and review history"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Optional, Set, Tuple
from authorization_gateway.domain.models import (
    AuthorizationRequest,
    CreateSource,
    Priority,
    QuoteSnapshot,
    RequestStatus,
    ReviewStage,
    SimulationSnapshot,
)
from authorization_gateway.domain.exceptions import InvalidTransition, ValidationError
from authorization_gateway.domain.authorization_data import (
    ensure_month_labels,
    merge_authorization_data,
    parse_authorization_data,
    snapshot_fields,
)
from authorization_gateway.utils.date_utils import utcnow

logger = logging.getLogger(__name__)

# Priority thresholds on the financed (or requested) amount
HIGH_PRIORITY_AMOUNT = 500_000
MEDIUM_PRIORITY_AMOUNT = 300_000

UNSPECIFIED_CLIENT = "Unspecified client"

ALLOWED_TRANSITIONS: Dict[RequestStatus, Set[RequestStatus]] = {
    RequestStatus.PENDING: {RequestStatus.IN_REVIEW},
    RequestStatus.IN_REVIEW: {RequestStatus.IN_REVIEW, RequestStatus.APPROVED, RequestStatus.REJECTED},
    RequestStatus.APPROVED: set(),
    RequestStatus.REJECTED: set(),
}

STAGE_ORDER = [ReviewStage.ADVISOR, ReviewStage.INTERNAL_COMMITTEE, ReviewStage.PARTNERS_COMMITTEE]

STAGE_LABELS = {
    ReviewStage.ADVISOR: "Advisor",
    ReviewStage.INTERNAL_COMMITTEE: "Internal committee",
    ReviewStage.PARTNERS_COMMITTEE: "Partners committee",
}


def derive_priority(amount: Optional[float]) -> Priority:
    """
    Map the financed amount to a review priority.

    - 500,000+:          high
    - 300,000 - 500,000: medium
    - below 300,000:     low

    Without any amount the request keeps the default medium priority.
    """
    if amount is None:
        return Priority.MEDIUM
    if amount >= HIGH_PRIORITY_AMOUNT:
        return Priority.HIGH
    elif amount >= MEDIUM_PRIORITY_AMOUNT:
        return Priority.MEDIUM
    else:
        return Priority.LOW


def format_note(text: str, at: datetime) -> str:
    return f"{at.isoformat(timespec='seconds')}: {text}"


def append_note_text(existing: Optional[str], text: str, at: datetime) -> str:
    """Append a timestamped entry, separated from prior notes by a blank line"""
    entry = format_note(text, at)
    return f"{existing}\n\n{entry}" if existing else entry


def _names_match(left: Optional[str], right: Optional[str]) -> bool:
    if not left or not right:
        return False
    a, b = left.strip().lower(), right.strip().lower()
    return a in b or b in a


def find_matching_simulation(
    candidates: Iterable[Tuple[SimulationSnapshot, Optional[QuoteSnapshot]]],
    client_name: str,
    tier_code: str,
    term_months: int,
) -> Optional[Tuple[SimulationSnapshot, Optional[QuoteSnapshot]]]:
    """
    Pick the newest simulation with the given tier and term whose quote's client
    name contains, or is contained in, `client_name` (case-insensitive).
    """
    oldest = datetime.min.replace(tzinfo=timezone.utc)
    matching = [
        (simulation, quote)
        for simulation, quote in candidates
        if simulation.tier_code == tier_code
        and simulation.term_months == term_months
        and quote is not None
        and _names_match(quote.client_name, client_name)
    ]
    if not matching:
        return None
    return max(matching, key=lambda pair: pair[0].created_at or oldest)


def _first(*values: Any) -> Any:
    for value in values:
        if value is not None and value != "":
            return value
    return None


class WorkflowEngine:
    """Owns the legal lifecycle of an authorization request.

    Every operation mutates the given request in memory and returns; persisting
    the result is the caller's job.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock

    def create(self, source: CreateSource) -> AuthorizationRequest:
        """
        Build a new request from a simulation/quote pair or raw client data.

        A creator without an explicit assignee becomes the assignee and the
        request starts in review; an explicit assignee also starts it in
        review; otherwise it waits as pending.
        """
        simulation, quote = source.simulation, source.quote
        if not any([simulation, quote, source.simulation_id, source.quote_id, source.client_name, source.vehicle_brand]):
            raise ValidationError("A simulation/quote reference or basic client/vehicle data is required")

        now = self.clock()
        request = AuthorizationRequest(
            simulation_id=_first(source.simulation_id, simulation.id if simulation else None),
            quote_id=_first(
                source.quote_id,
                quote.id if quote else None,
                simulation.quote_id if simulation else None,
            ),
            risk_level=source.risk_level or "medium",
            client_name=_first(source.client_name, quote.client_name if quote else None) or UNSPECIFIED_CLIENT,
            client_email=_first(source.client_email, quote.client_email if quote else None),
            client_phone=_first(source.client_phone, quote.client_phone if quote else None),
            vehicle_brand=_first(source.vehicle_brand, quote.vehicle_brand if quote else None),
            vehicle_model=_first(source.vehicle_model, quote.vehicle_model if quote else None),
            vehicle_year=_first(source.vehicle_year, quote.vehicle_year if quote else None),
            vehicle_value=_first(source.vehicle_value, quote.vehicle_value if quote else None),
            requested_amount=_first(
                source.requested_amount,
                simulation.total_to_finance if simulation else None,
                simulation.financed_amount if simulation else None,
            ),
            monthly_payment=_first(
                source.monthly_payment,
                simulation.pmt_total_month2 if simulation else None,
                simulation.monthly_payment if simulation else None,
            ),
            term_months=_first(source.term_months, simulation.term_months if simulation else None),
            agency_name=_first(source.agency_name, quote.agency_name if quote else None),
            dealer_name=_first(source.dealer_name, source.agency_name, quote.agency_name if quote else None),
            promoter_code=_first(source.promoter_code, quote.promoter_code if quote else None),
            created_by_user_id=source.created_by_user_id,
            client_comments=source.client_comments,
            created_at=now,
            updated_at=now,
        )

        priority_amount = _first(simulation.financed_amount if simulation else None, request.requested_amount)
        request.priority = source.priority or derive_priority(priority_amount)

        assignee = source.assigned_to_user_id or source.created_by_user_id
        if assignee:
            request.assigned_to_user_id = assignee
            request.status = RequestStatus.IN_REVIEW

        data = parse_authorization_data(source.authorization_data)
        data = ensure_month_labels(data, now.date())
        request.authorization_data = merge_authorization_data(data, {}, request.monthly_payment)
        request.competitors_data = list(source.competitors or data.competitors)

        if source.internal_notes:
            request.internal_notes = append_note_text(None, source.internal_notes, now)

        logger.info(
            "Authorization request created",
            extra={
                "step": "request_created",
                "user_id": source.created_by_user_id,
                "status": request.status.value,
                "priority": request.priority.value,
            },
        )
        return request

    def assign(self, request: AuthorizationRequest, user_id: str) -> AuthorizationRequest:
        """Assign a reviewer; always moves the request into review"""
        if not user_id:
            raise ValidationError("An assignee user id is required")
        self._check_transition(request, RequestStatus.IN_REVIEW)
        request.assigned_to_user_id = user_id
        self._transition(request, RequestStatus.IN_REVIEW)
        return request

    def decide(
        self,
        request: AuthorizationRequest,
        outcome: RequestStatus,
        notes: str,
        reviewer_id: str,
    ) -> AuthorizationRequest:
        """Record a terminal decision; notes are mandatory"""
        try:
            outcome = RequestStatus(outcome)
        except ValueError as e:
            raise ValidationError(f"Unknown decision outcome: {outcome!r}") from e
        if not outcome.is_terminal:
            raise ValidationError(f"Decision outcome must be approved or rejected, got '{outcome.value}'")
        if not notes or not notes.strip():
            raise ValidationError("Decision notes are required")
        if not reviewer_id:
            raise ValidationError("A reviewer id is required to record a decision")
        if request.status is not RequestStatus.IN_REVIEW:
            raise InvalidTransition(
                f"Cannot decide a request that is '{request.status.value}'; it must be in review",
                from_status=request.status.value,
                to_status=outcome.value,
            )

        request.approval_notes = notes.strip()
        request.decided_by_user_id = reviewer_id
        request.decided_at = self.clock()
        self._transition(request, outcome)
        return request

    def set_priority(self, request: AuthorizationRequest, priority: Priority) -> bool:
        """
        Override the priority. Returns False (and changes nothing) once the
        request is decided; priority is metadata, so this never raises for state.
        """
        try:
            priority = Priority(priority)
        except ValueError as e:
            raise ValidationError(f"Unknown priority: {priority!r}") from e
        if request.status.is_terminal:
            logger.warning(
                "Priority change ignored on decided request",
                extra={"request_id": request.id, "status": request.status.value, "step": "priority_noop"},
            )
            return False
        request.priority = priority
        self.touch(request)
        return True

    def append_note(self, request: AuthorizationRequest, text: str) -> AuthorizationRequest:
        """Append to the internal notes log; prior content is never replaced"""
        if not text or not text.strip():
            raise ValidationError("Note text is required")
        request.internal_notes = append_note_text(request.internal_notes, text.strip(), self.clock())
        self.touch(request)
        return request

    def update_financial_snapshot(self, request: AuthorizationRequest, partial: Dict[str, Any]) -> AuthorizationRequest:
        """
        Merge review-form data into the request. Allowed in every status so
        audit corrections remain possible after a decision.

        Answered form fields are mirrored onto the request snapshot. A request
        still open after the partners committee signed off goes back to plain
        review: that sign-off is cleared and noted.
        """
        request.authorization_data = merge_authorization_data(
            request.authorization_data, partial, request.monthly_payment
        )
        for key, value in snapshot_fields(request.authorization_data).items():
            setattr(request, key, value)

        if not request.status.is_terminal and request.partners_committee_reviewed_by:
            request.partners_committee_reviewed_by = None
            request.partners_committee_reviewed_at = None
            request.internal_notes = append_note_text(
                request.internal_notes,
                "Edited after partners committee review; returned to review",
                self.clock(),
            )
        self.touch(request)
        return request

    def record_stage_review(
        self,
        request: AuthorizationRequest,
        stage: ReviewStage,
        reviewer_id: str,
        notes: Optional[str] = None,
    ) -> AuthorizationRequest:
        """Sign off one review stage; stages follow advisor -> internal -> partners"""
        stage = ReviewStage(stage)
        if not reviewer_id:
            raise ValidationError("A reviewer id is required")
        if request.status is not RequestStatus.IN_REVIEW:
            raise InvalidTransition(
                f"Stage reviews require a request in review, not '{request.status.value}'",
                from_status=request.status.value,
            )
        position = STAGE_ORDER.index(stage)
        if position > 0:
            previous = STAGE_ORDER[position - 1]
            if not getattr(request, f"{previous.value}_reviewed_by"):
                raise InvalidTransition(
                    f"{STAGE_LABELS[stage]} review requires the {STAGE_LABELS[previous].lower()} review first"
                )

        now = self.clock()
        setattr(request, f"{stage.value}_reviewed_by", reviewer_id)
        setattr(request, f"{stage.value}_reviewed_at", now)
        entry = f"{STAGE_LABELS[stage]} review by {reviewer_id}"
        if notes and notes.strip():
            entry = f"{entry}: {notes.strip()}"
        request.internal_notes = append_note_text(request.internal_notes, entry, now)
        self.touch(request)
        return request

    def connect_simulation(
        self,
        request: AuthorizationRequest,
        simulation: SimulationSnapshot,
        quote: Optional[QuoteSnapshot] = None,
    ) -> AuthorizationRequest:
        """Re-link an open request to a simulation and refresh its snapshot"""
        if request.status.is_terminal:
            raise InvalidTransition(
                f"Cannot relink a request that is '{request.status.value}'",
                from_status=request.status.value,
            )
        request.simulation_id = simulation.id
        request.quote_id = simulation.quote_id or (quote.id if quote else request.quote_id)
        request.monthly_payment = _first(simulation.pmt_total_month2, simulation.monthly_payment, request.monthly_payment)
        request.requested_amount = _first(simulation.total_to_finance, simulation.financed_amount, request.requested_amount)
        request.term_months = _first(simulation.term_months, request.term_months)
        if quote is not None:
            for key in ("client_email", "client_phone", "vehicle_brand", "vehicle_model", "vehicle_year", "vehicle_value"):
                setattr(request, key, _first(getattr(quote, key), getattr(request, key)))

        request.authorization_data = merge_authorization_data(request.authorization_data, {}, request.monthly_payment)
        request.internal_notes = append_note_text(
            request.internal_notes, f"Connected to simulation {simulation.id}", self.clock()
        )
        self.touch(request)
        return request

    def _check_transition(self, request: AuthorizationRequest, target: RequestStatus) -> None:
        if target not in ALLOWED_TRANSITIONS[request.status]:
            raise InvalidTransition(
                f"Cannot move request from '{request.status.value}' to '{target.value}'",
                from_status=request.status.value,
                to_status=target.value,
            )

    def _transition(self, request: AuthorizationRequest, target: RequestStatus) -> None:
        self._check_transition(request, target)
        previous = request.status
        request.status = target
        self.touch(request)
        if previous == target:
            return
        logger.info(
            "Request status changed",
            extra={
                "request_id": request.id,
                "step": "status_transition",
                "from_status": previous.value,
                "to_status": target.value,
            },
        )

    def touch(self, request: AuthorizationRequest) -> None:
        """Bump updated_at; it never moves backwards"""
        now = self.clock()
        if request.updated_at is None or now > request.updated_at:
            request.updated_at = now
