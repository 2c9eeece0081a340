"""Debounced autosave of the review-form working copy"""

import asyncio
import json
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional
from authorization_gateway.config import settings
from authorization_gateway.domain.exceptions import ConflictError, DomainException
from authorization_gateway.domain.models import AuthorizationRequest, SessionContext
from authorization_gateway.domain.ports import SaveTarget
from authorization_gateway.infrastructure.observability.logging import log_autosave
from authorization_gateway.infrastructure.observability.metrics import autosave_counter, autosave_latency_histogram
from authorization_gateway.utils.date_utils import utcnow


class SaveStatus(str, Enum):
    IDLE = "idle"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


class FormKind(str, Enum):
    REVIEW = "review"
    APPLICATION = "application"


def debounce_delay(form: FormKind) -> float:
    """Configured debounce; the broader application form waits longer"""
    if FormKind(form) is FormKind.APPLICATION:
        return settings.application_autosave_delay_seconds
    return settings.review_autosave_delay_seconds


def _serialize(data: Dict[str, Any]) -> str:
    return json.dumps(data, sort_keys=True, default=str)


class AutoSaveCoordinator:
    """
    Turns a stream of form edits into as few persistence calls as possible.

    - An edit equal to the last saved (or already pending) snapshot is ignored
    - A changed snapshot (re)starts the debounce timer; one timer is live at a time
    - One save runs at a time, so saves reach the target in edit order
    - Without a persisted id the first save creates the request; edits arriving
      while that create is in flight never issue a second create; flush() waits
      for it and then saves what is still pending
    - Failures set status ERROR and are not retried; the next edit or save_now()
      sends the latest snapshot again
    """

    def __init__(
        self,
        target: SaveTarget,
        context: SessionContext,
        delay_seconds: float | None = None,
        request_id: Optional[str] = None,
        version: Optional[int] = None,
        create_defaults: Optional[Dict[str, Any]] = None,
        form: FormKind = FormKind.REVIEW,
        on_saved: Optional[Callable[[AuthorizationRequest], None]] = None,
    ):
        self.target = target
        self.context = context
        self.delay_seconds = debounce_delay(form) if delay_seconds is None else delay_seconds
        self.request_id = request_id
        self.version = version
        self.create_defaults = dict(create_defaults or {})
        self.on_saved = on_saved

        self.status = SaveStatus.IDLE
        self.last_error: Optional[str] = None
        self.last_saved_at = None
        self.request: Optional[AuthorizationRequest] = None

        self._pending: Optional[Dict[str, Any]] = None
        self._pending_key: Optional[str] = None
        self._saved_key: Optional[str] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()
        self._create_in_flight = False
        self._closed = False

    @property
    def has_pending_changes(self) -> bool:
        return self._pending is not None

    def apply_edit(self, data: Dict[str, Any]) -> bool:
        """Register the latest snapshot; returns True when a save was scheduled"""
        key = _serialize(data)
        if key == (self._pending_key if self._pending is not None else self._saved_key):
            autosave_counter.labels(outcome="skipped").inc()
            return False

        self._pending = data
        self._pending_key = key
        self._schedule()
        return True

    async def save_now(self) -> Optional[AuthorizationRequest]:
        """Manual save: skip the debounce and persist the pending snapshot"""
        self._cancel_timer()
        return await self._save_pending(raise_errors=False)

    async def flush(self) -> Optional[AuthorizationRequest]:
        """
        Persist anything pending and wait for it.

        Unlike the timer-driven save this raises the DomainException when
        the save fails, so callers do not proceed on unsaved data.
        """
        self._cancel_timer()
        if self._task is not None and not self._task.done():
            await self._task
        return await self._save_pending(raise_errors=True, wait_for_create=True)

    async def close(self) -> None:
        """Flush and stop; no timer survives the session"""
        self._closed = True
        try:
            await self.flush()
        finally:
            self._cancel_timer()

    def _schedule(self) -> None:
        self._cancel_timer()
        if self._closed:
            return
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.delay_seconds, self._fire)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        self._timer = None
        self._task = asyncio.ensure_future(self._save_pending(raise_errors=False))

    async def _save_pending(self, raise_errors: bool, wait_for_create: bool = False) -> Optional[AuthorizationRequest]:
        if self._create_in_flight and not wait_for_create:
            # The create completes and re-arms the timer for newer edits
            return None

        # The lock is held for the whole create, so waiting on it sees the new id
        async with self._lock:
            if self._pending is None:
                return self.request
            data, key = self._pending, self._pending_key
            if key == self._saved_key:
                self._pending = None
                return self.request

            self.status = SaveStatus.SAVING
            start_time = time.time()
            creating = self.request_id is None
            try:
                with autosave_latency_histogram.time():
                    if creating:
                        self._create_in_flight = True
                        try:
                            result = await self.target.create({**self.create_defaults, "authorization_data": data})
                        finally:
                            self._create_in_flight = False
                    else:
                        result = await self.target.update(
                            self.request_id,
                            {"authorization_data": data},
                            expected_version=self.version,
                        )
            except DomainException as e:
                outcome = "conflict" if isinstance(e, ConflictError) else "error"
                self.status = SaveStatus.ERROR
                self.last_error = str(e)
                autosave_counter.labels(outcome=outcome).inc()
                log_autosave(self.request_id, self.context.user_id, outcome, (time.time() - start_time) * 1000, str(e))
                if raise_errors:
                    raise
                return None

            self.request = result
            self.request_id = result.id
            self.version = result.version
            self._saved_key = key
            # Edits made while the call was in flight stay pending
            if self._pending_key == key:
                self._pending = None
            self.status = SaveStatus.SAVED
            self.last_error = None
            self.last_saved_at = utcnow()
            autosave_counter.labels(outcome="saved").inc()
            log_autosave(self.request_id, self.context.user_id, "saved", (time.time() - start_time) * 1000)
            if self.on_saved is not None:
                self.on_saved(result)

        if creating and self._pending is not None and self._timer is None:
            self._schedule()
        return result
