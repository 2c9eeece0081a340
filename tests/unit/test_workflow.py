"""Unit tests for the authorization request workflow"""

import pytest
from datetime import datetime, timezone
from authorization_gateway.domain.exceptions import InvalidTransition, ValidationError
from authorization_gateway.domain.models import (
    CreateSource,
    Priority,
    QuoteSnapshot,
    RequestStatus,
    ReviewStage,
    SimulationSnapshot,
)
from authorization_gateway.domain.workflow import (
    UNSPECIFIED_CLIENT,
    append_note_text,
    derive_priority,
    find_matching_simulation,
)


@pytest.fixture
def simulation() -> SimulationSnapshot:
    return SimulationSnapshot(
        id="sim-1",
        quote_id="quote-1",
        tier_code="A",
        term_months=48,
        monthly_payment=13500,
        pmt_total_month2=14200,
        financed_amount=520000,
        total_to_finance=540000,
    )


@pytest.fixture
def quote() -> QuoteSnapshot:
    return QuoteSnapshot(
        id="quote-1",
        client_name="Laura Méndez",
        client_email="laura@example.com",
        vehicle_brand="Toyota",
        vehicle_model="Hilux",
        vehicle_year=2024,
        vehicle_value=650000,
        agency_name="Agencia Centro",
    )


def _in_review(workflow, **overrides):
    fields = {"client_name": "Ana", "requested_amount": 200000, "monthly_payment": 8000, "assigned_to_user_id": "rev-1"}
    fields.update(overrides)
    return workflow.create(CreateSource(**fields))


@pytest.mark.parametrize(
    "amount, expected",
    [
        (600000, Priority.HIGH),
        (500000, Priority.HIGH),
        (350000, Priority.MEDIUM),
        (300000, Priority.MEDIUM),
        (100000, Priority.LOW),
        (None, Priority.MEDIUM),
    ],
)
def test_derive_priority(amount, expected):
    assert derive_priority(amount) == expected


def test_create_from_simulation_without_assignee(workflow, simulation, quote, clock):
    """A 520,000 financed simulation is high priority and waits as pending"""
    request = workflow.create(CreateSource(simulation=simulation, quote=quote))

    assert request.priority == Priority.HIGH
    assert request.status == RequestStatus.PENDING
    assert request.assigned_to_user_id is None
    assert request.simulation_id == "sim-1"
    assert request.quote_id == "quote-1"
    assert request.client_name == "Laura Méndez"
    # Second-month total payment wins over the base payment
    assert request.monthly_payment == 14200
    assert request.requested_amount == 540000
    assert request.term_months == 48
    assert request.dealer_name == "Agencia Centro"
    assert request.created_at == clock.now
    assert request.authorization_data.month_labels == ["FEB 25", "MAR 25", "ABR 25"]


def test_creator_becomes_assignee_and_review_starts(workflow):
    request = workflow.create(CreateSource(client_name="Ana", created_by_user_id="advisor-7"))

    assert request.assigned_to_user_id == "advisor-7"
    assert request.status == RequestStatus.IN_REVIEW
    assert request.created_by_user_id == "advisor-7"


def test_explicit_priority_overrides_derived(workflow):
    request = workflow.create(CreateSource(client_name="Ana", requested_amount=600000, priority=Priority.LOW))
    assert request.priority == Priority.LOW


def test_create_requires_some_reference(workflow):
    with pytest.raises(ValidationError):
        workflow.create(CreateSource(client_email="nobody@example.com"))


def test_missing_client_name_defaults(workflow):
    request = workflow.create(CreateSource(vehicle_brand="Mazda"))

    assert request.client_name == UNSPECIFIED_CLIENT
    assert request.risk_level == "medium"


def test_create_records_initial_note(workflow, clock):
    request = workflow.create(CreateSource(client_name="Ana", internal_notes="Referred by dealer"))
    assert request.internal_notes == "2025-06-10T09:00:00+00:00: Referred by dealer"


def test_assign_moves_pending_into_review(workflow):
    request = workflow.create(CreateSource(client_name="Ana"))
    assert request.status == RequestStatus.PENDING

    workflow.assign(request, "rev-2")

    assert request.status == RequestStatus.IN_REVIEW
    assert request.assigned_to_user_id == "rev-2"


def test_reassign_in_review(workflow):
    request = _in_review(workflow)
    workflow.assign(request, "rev-3")

    assert request.status == RequestStatus.IN_REVIEW
    assert request.assigned_to_user_id == "rev-3"


def test_reassign_logs_no_status_change(workflow, caplog):
    request = workflow.create(CreateSource(client_name="Ana"))

    with caplog.at_level("INFO", logger="authorization_gateway.domain.workflow"):
        workflow.assign(request, "rev-2")
        workflow.assign(request, "rev-3")

    changes = [record for record in caplog.records if record.getMessage() == "Request status changed"]
    assert len(changes) == 1
    assert changes[0].from_status == "pending"


def test_assign_requires_user(workflow):
    request = _in_review(workflow)
    with pytest.raises(ValidationError):
        workflow.assign(request, "")


def test_assign_after_decision_is_rejected(workflow):
    request = _in_review(workflow)
    workflow.decide(request, RequestStatus.APPROVED, "Solid income", "rev-1")

    with pytest.raises(InvalidTransition):
        workflow.assign(request, "rev-2")
    assert request.status == RequestStatus.APPROVED
    assert request.assigned_to_user_id == "rev-1"


def test_decide_approves_and_records_reviewer(workflow, clock):
    request = _in_review(workflow)
    decided_at = clock.advance(hours=5)

    workflow.decide(request, RequestStatus.APPROVED, "  Solid income  ", "rev-1")

    assert request.status == RequestStatus.APPROVED
    assert request.approval_notes == "Solid income"
    assert request.decided_by_user_id == "rev-1"
    assert request.decided_at == decided_at
    assert request.updated_at == decided_at


def test_decide_with_empty_notes_changes_nothing(workflow):
    request = _in_review(workflow)

    with pytest.raises(ValidationError):
        workflow.decide(request, RequestStatus.REJECTED, "   ", "rev-1")
    assert request.status == RequestStatus.IN_REVIEW
    assert request.approval_notes is None
    assert request.decided_at is None


def test_decide_requires_terminal_outcome(workflow):
    request = _in_review(workflow)
    with pytest.raises(ValidationError):
        workflow.decide(request, RequestStatus.IN_REVIEW, "notes", "rev-1")
    with pytest.raises(ValidationError):
        workflow.decide(request, "cancelled", "notes", "rev-1")


def test_pending_request_cannot_be_decided(workflow):
    request = workflow.create(CreateSource(client_name="Ana"))
    with pytest.raises(InvalidTransition):
        workflow.decide(request, RequestStatus.APPROVED, "ok", "rev-1")


def test_decided_request_cannot_be_decided_again(workflow):
    request = _in_review(workflow)
    workflow.decide(request, RequestStatus.REJECTED, "Insufficient income", "rev-1")

    with pytest.raises(InvalidTransition):
        workflow.decide(request, RequestStatus.APPROVED, "Changed my mind", "rev-1")
    assert request.status == RequestStatus.REJECTED


def test_set_priority_is_noop_after_decision(workflow):
    request = _in_review(workflow)
    assert workflow.set_priority(request, Priority.URGENT)
    assert request.priority == Priority.URGENT

    workflow.decide(request, RequestStatus.APPROVED, "ok", "rev-1")
    assert not workflow.set_priority(request, Priority.LOW)
    assert request.priority == Priority.URGENT


def test_notes_are_appended_never_replaced(workflow, clock):
    request = _in_review(workflow)
    workflow.append_note(request, "Called the applicant")
    clock.advance(minutes=30)
    workflow.append_note(request, "Documents received")

    assert request.internal_notes == (
        "2025-06-10T09:00:00+00:00: Called the applicant\n\n"
        "2025-06-10T09:30:00+00:00: Documents received"
    )
    with pytest.raises(ValidationError):
        workflow.append_note(request, "")


def test_append_note_text_starts_fresh_log():
    at = datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert append_note_text(None, "first", at) == "2025-01-02T03:04:05+00:00: first"


def test_stage_reviews_follow_order(workflow):
    request = _in_review(workflow)

    with pytest.raises(InvalidTransition):
        workflow.record_stage_review(request, ReviewStage.INTERNAL_COMMITTEE, "committee-1")

    workflow.record_stage_review(request, ReviewStage.ADVISOR, "advisor-1", "Documents verified")
    workflow.record_stage_review(request, ReviewStage.INTERNAL_COMMITTEE, "committee-1")
    workflow.record_stage_review(request, ReviewStage.PARTNERS_COMMITTEE, "partner-1")

    assert request.advisor_reviewed_by == "advisor-1"
    assert request.partners_committee_reviewed_by == "partner-1"
    assert "Advisor review by advisor-1: Documents verified" in request.internal_notes
    assert request.status == RequestStatus.IN_REVIEW


def test_stage_review_requires_review_status(workflow):
    request = workflow.create(CreateSource(client_name="Ana"))
    with pytest.raises(InvalidTransition):
        workflow.record_stage_review(request, ReviewStage.ADVISOR, "advisor-1")


def test_edit_after_partners_review_returns_to_review(workflow):
    request = _in_review(workflow)
    for stage, reviewer in [
        (ReviewStage.ADVISOR, "advisor-1"),
        (ReviewStage.INTERNAL_COMMITTEE, "committee-1"),
        (ReviewStage.PARTNERS_COMMITTEE, "partner-1"),
    ]:
        workflow.record_stage_review(request, stage, reviewer)

    workflow.update_financial_snapshot(request, {"months": [{"payroll": 20000}]})

    assert request.partners_committee_reviewed_by is None
    assert request.partners_committee_reviewed_at is None
    assert request.internal_committee_reviewed_by == "committee-1"
    assert "returned to review" in request.internal_notes


def test_snapshot_edit_mirrors_answered_fields(workflow):
    request = _in_review(workflow)

    workflow.update_financial_snapshot(
        request,
        {
            "applicant": {"applicant_name": "Ana Torres"},
            "vehicle": {"vehicle_brand": "Kia", "sale_value": "310000", "dealership": ""},
            "months": [{"payroll": 30000}, {"payroll": 30000}, {"payroll": 30000}],
        },
    )

    assert request.client_name == "Ana Torres"
    assert request.vehicle_brand == "Kia"
    assert request.vehicle_value == 310000
    # Blank answers never overwrite the snapshot
    assert request.agency_name is None
    # 0.4 * 30000 / 8000
    assert request.authorization_data.aggregates.viability_ratio == pytest.approx(1.5)


def test_snapshot_edit_allowed_after_decision(workflow):
    request = _in_review(workflow)
    workflow.decide(request, RequestStatus.APPROVED, "ok", "rev-1")

    workflow.update_financial_snapshot(request, {"comments": "Audit correction"})

    assert request.authorization_data.comments == "Audit correction"
    assert request.status == RequestStatus.APPROVED


def test_connect_simulation_refreshes_snapshot(workflow, simulation, quote):
    request = _in_review(workflow)
    workflow.connect_simulation(request, simulation, quote)

    assert request.simulation_id == "sim-1"
    assert request.monthly_payment == 14200
    assert request.vehicle_brand == "Toyota"
    assert "Connected to simulation sim-1" in request.internal_notes


def test_connect_simulation_refused_after_decision(workflow, simulation):
    request = _in_review(workflow)
    workflow.decide(request, RequestStatus.REJECTED, "no", "rev-1")
    with pytest.raises(InvalidTransition):
        workflow.connect_simulation(request, simulation)


def test_find_matching_simulation_prefers_newest(simulation, quote):
    older = SimulationSnapshot(id="sim-0", tier_code="A", term_months=48, created_at=datetime(2025, 1, 1, tzinfo=timezone.utc))
    newer = SimulationSnapshot(id="sim-2", tier_code="A", term_months=48, created_at=datetime(2025, 3, 1, tzinfo=timezone.utc))
    other_term = SimulationSnapshot(id="sim-3", tier_code="A", term_months=36, created_at=datetime(2025, 4, 1, tzinfo=timezone.utc))
    candidates = [(older, quote), (newer, quote), (other_term, quote)]

    match = find_matching_simulation(candidates, "LAURA", "A", 48)

    assert match[0].id == "sim-2"


def test_find_matching_simulation_name_is_bidirectional(simulation):
    short_name = QuoteSnapshot(id="q", client_name="Méndez")
    assert find_matching_simulation([(simulation, short_name)], "Laura Méndez", "A", 48) is not None
    assert find_matching_simulation([(simulation, short_name)], "Pedro", "A", 48) is None
