"""Unit tests for debounced autosave"""

import asyncio
import pytest
from authorization_gateway.domain.exceptions import ConflictError, PersistenceError
from authorization_gateway.domain.models import AuthorizationRequest, SessionContext
from authorization_gateway.services.autosave import AutoSaveCoordinator, FormKind, SaveStatus, debounce_delay

DELAY = 0.05


class RecordingTarget:
    """In-memory save target that records every call"""

    def __init__(self, latency: float = 0, failures: list | None = None):
        self.latency = latency
        self.failures = list(failures or [])
        self.calls = []
        self.version = 0

    async def create(self, fields):
        self.calls.append(("create", fields))
        return await self._respond("req-1")

    async def update(self, request_id, fields, expected_version=None):
        self.calls.append(("update", request_id, fields, expected_version))
        return await self._respond(request_id)

    async def _respond(self, request_id):
        await asyncio.sleep(self.latency)
        if self.failures:
            raise self.failures.pop(0)
        self.version += 1
        return AuthorizationRequest(id=request_id, version=self.version)


def _coordinator(target, **kwargs) -> AutoSaveCoordinator:
    kwargs.setdefault("request_id", "req-1")
    kwargs.setdefault("version", 1)
    return AutoSaveCoordinator(target, SessionContext(user_id="rev-1"), delay_seconds=DELAY, **kwargs)


def _form(payroll: float) -> dict:
    return {"months": [{"payroll": payroll}, {}, {}]}


@pytest.mark.asyncio
async def test_edits_within_window_issue_one_call():
    target = RecordingTarget()
    target.version = 1
    coordinator = _coordinator(target)

    for payroll in (1000, 2000, 3000, 4000):
        coordinator.apply_edit(_form(payroll))
        await asyncio.sleep(DELAY / 5)
    await asyncio.sleep(DELAY * 3)

    assert len(target.calls) == 1
    _, request_id, fields, expected_version = target.calls[0]
    assert request_id == "req-1"
    assert fields == {"authorization_data": _form(4000)}
    assert expected_version == 1
    assert coordinator.status == SaveStatus.SAVED
    assert coordinator.version == 2
    assert coordinator.last_saved_at is not None


@pytest.mark.asyncio
async def test_second_window_issues_second_call_with_new_version():
    target = RecordingTarget()
    target.version = 1
    coordinator = _coordinator(target)

    coordinator.apply_edit(_form(1000))
    await asyncio.sleep(DELAY * 3)
    coordinator.apply_edit(_form(2000))
    await asyncio.sleep(DELAY * 3)

    assert [call[3] for call in target.calls] == [1, 2]


@pytest.mark.asyncio
async def test_unchanged_snapshot_is_not_saved():
    target = RecordingTarget()
    coordinator = _coordinator(target)

    assert coordinator.apply_edit(_form(1000))
    await asyncio.sleep(DELAY * 3)
    # Same content rebuilt as a new dict
    assert not coordinator.apply_edit({"months": [{"payroll": 1000}, {}, {}]})
    await asyncio.sleep(DELAY * 3)

    assert len(target.calls) == 1


@pytest.mark.asyncio
async def test_first_save_creates_once_while_in_flight():
    target = RecordingTarget(latency=DELAY * 2)
    coordinator = AutoSaveCoordinator(
        target,
        SessionContext(user_id="rev-1"),
        delay_seconds=DELAY,
        create_defaults={"client_name": "Ana"},
    )

    coordinator.apply_edit(_form(1000))
    first = asyncio.ensure_future(coordinator.save_now())
    await asyncio.sleep(0)
    coordinator.apply_edit(_form(2000))
    assert await coordinator.save_now() is None  # create still in flight
    await first
    await asyncio.sleep(DELAY * 6)

    kinds = [call[0] for call in target.calls]
    assert kinds == ["create", "update"]
    assert target.calls[0][1] == {"client_name": "Ana", "authorization_data": _form(1000)}
    assert target.calls[1][2] == {"authorization_data": _form(2000)}
    assert coordinator.request_id == "req-1"


@pytest.mark.asyncio
async def test_failure_sets_error_and_does_not_retry():
    target = RecordingTarget(failures=[PersistenceError("gateway down")])
    coordinator = _coordinator(target)

    coordinator.apply_edit(_form(1000))
    await asyncio.sleep(DELAY * 5)

    assert coordinator.status == SaveStatus.ERROR
    assert coordinator.last_error == "gateway down"
    assert len(target.calls) == 1
    assert coordinator.has_pending_changes

    # Manual save sends the same snapshot again
    await coordinator.save_now()
    assert len(target.calls) == 2
    assert coordinator.status == SaveStatus.SAVED
    assert coordinator.last_error is None


@pytest.mark.asyncio
async def test_conflict_is_surfaced_by_flush():
    target = RecordingTarget(failures=[ConflictError("stale version")])
    coordinator = _coordinator(target)

    coordinator.apply_edit(_form(1000))
    with pytest.raises(ConflictError):
        await coordinator.flush()
    assert coordinator.status == SaveStatus.ERROR


@pytest.mark.asyncio
async def test_flush_skips_the_debounce():
    target = RecordingTarget()
    coordinator = AutoSaveCoordinator(target, SessionContext(user_id="rev-1"), delay_seconds=60, request_id="req-1")

    coordinator.apply_edit(_form(1000))
    await coordinator.flush()

    assert len(target.calls) == 1
    assert not coordinator.has_pending_changes


@pytest.mark.asyncio
async def test_close_leaves_no_timer_behind():
    target = RecordingTarget()
    coordinator = _coordinator(target)

    coordinator.apply_edit(_form(1000))
    await coordinator.close()
    await asyncio.sleep(DELAY * 3)

    assert len(target.calls) == 1


@pytest.mark.asyncio
async def test_flush_with_nothing_pending_makes_no_call():
    target = RecordingTarget()
    coordinator = _coordinator(target)

    assert await coordinator.flush() is None
    assert target.calls == []
    assert coordinator.status == SaveStatus.IDLE


def test_default_delays_per_form():
    assert debounce_delay(FormKind.REVIEW) == 3.0
    assert debounce_delay(FormKind.APPLICATION) == 5.0

    coordinator = AutoSaveCoordinator(RecordingTarget(), SessionContext(user_id="rev-1"), form=FormKind.APPLICATION)
    assert coordinator.delay_seconds == 5.0


@pytest.mark.asyncio
async def test_flush_waits_for_in_flight_create():
    target = RecordingTarget(latency=DELAY * 2)
    coordinator = AutoSaveCoordinator(target, SessionContext(user_id="rev-1"), delay_seconds=DELAY)

    coordinator.apply_edit(_form(1000))
    first = asyncio.ensure_future(coordinator.save_now())
    await asyncio.sleep(0)
    coordinator.apply_edit(_form(2000))

    saved = await coordinator.flush()

    assert [call[0] for call in target.calls] == ["create", "update"]
    assert target.calls[1][1:] == ("req-1", {"authorization_data": _form(2000)}, 1)
    assert saved.version == 2
    assert not coordinator.has_pending_changes
    await first


@pytest.mark.asyncio
async def test_close_during_in_flight_create_saves_once_and_stops():
    target = RecordingTarget(latency=DELAY * 2)
    coordinator = AutoSaveCoordinator(target, SessionContext(user_id="rev-1"), delay_seconds=DELAY)

    coordinator.apply_edit(_form(1000))
    first = asyncio.ensure_future(coordinator.save_now())
    await asyncio.sleep(0)
    coordinator.apply_edit(_form(2000))

    await coordinator.close()
    calls_at_close = list(target.calls)
    await asyncio.sleep(DELAY * 4)

    assert [call[0] for call in calls_at_close] == ["create", "update"]
    assert target.calls == calls_at_close
    await first

    # Edits after close stay pending; no timer is armed for them
    coordinator.apply_edit(_form(3000))
    await asyncio.sleep(DELAY * 3)
    assert target.calls == calls_at_close
    assert coordinator.has_pending_changes
