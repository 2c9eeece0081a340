"""Review session: one reviewer editing and deciding one authorization request"""

import copy
import logging
from typing import Any, Dict, Optional, Tuple
from authorization_gateway.domain.authorization_data import authorization_data_to_dict
from authorization_gateway.domain.completeness import score_completeness
from authorization_gateway.domain.exceptions import ValidationError
from authorization_gateway.domain.models import (
    AuthorizationRequest,
    CompletionScore,
    RequestStatus,
    SessionContext,
    ViabilityResult,
)
from authorization_gateway.domain.ports import SaveTarget
from authorization_gateway.domain.viability import evaluate_viability
from authorization_gateway.domain.workflow import WorkflowEngine
from authorization_gateway.services.autosave import AutoSaveCoordinator

logger = logging.getLogger(__name__)

# Owned by the server; an autosave result refreshes them on the working copy
SERVER_FIELDS = (
    "id",
    "version",
    "status",
    "priority",
    "created_by_user_id",
    "assigned_to_user_id",
    "decided_by_user_id",
    "decided_at",
    "created_at",
    "updated_at",
)


class ReviewSession:
    """
    Binds a working copy of a request to the acting reviewer.

    Edits are applied locally (merge, score, viability) and handed to the
    autosave coordinator, whose results refresh the server-owned fields of
    the working copy. Decisions and assignments are validated locally first
    (a request never saved is created before that), then flush pending edits
    and go to the gateway; their failures propagate.
    """

    def __init__(
        self,
        request: AuthorizationRequest,
        target: SaveTarget,
        context: SessionContext,
        engine: Optional[WorkflowEngine] = None,
        coordinator: Optional[AutoSaveCoordinator] = None,
    ):
        self.request = request
        self.target = target
        self.context = context
        self.engine = engine or WorkflowEngine()
        self.coordinator = coordinator or AutoSaveCoordinator(
            target,
            context,
            request_id=request.id,
            version=request.version or None,
        )
        self.coordinator.on_saved = self._sync_saved

    @property
    def request_id(self) -> Optional[str]:
        return self.coordinator.request_id or self.request.id

    def apply_edit(self, partial: Dict[str, Any]) -> Tuple[CompletionScore, ViabilityResult]:
        """Merge a form edit into the working copy and schedule an autosave"""
        self.engine.update_financial_snapshot(self.request, partial)
        self.coordinator.apply_edit(authorization_data_to_dict(self.request.authorization_data))
        return self.score_completeness(), self.evaluate_viability()

    def evaluate_viability(self) -> ViabilityResult:
        data = self.request.authorization_data
        return evaluate_viability(data.months, self.request.monthly_payment, data.financing.monthly_capacity)

    def score_completeness(self) -> CompletionScore:
        return score_completeness(self.request.authorization_data)

    async def decide(self, outcome: RequestStatus, notes: str) -> AuthorizationRequest:
        """Approve or reject; rejected locally before the decision call when invalid"""
        await self._ensure_created()
        self.engine.decide(copy.deepcopy(self.request), outcome, notes, self.context.user_id)
        await self.coordinator.flush()

        decided = await self.target.decide(self._persisted_id(), outcome, notes)
        self._adopt(decided)
        logger.info(
            "Review session decision recorded",
            extra={"request_id": decided.id, "user_id": self.context.user_id, "outcome": decided.status.value},
        )
        return decided

    async def assign(self, user_id: str) -> AuthorizationRequest:
        await self._ensure_created()
        self.engine.assign(copy.deepcopy(self.request), user_id)
        await self.coordinator.flush()

        assigned = await self.target.assign(self._persisted_id(), user_id)
        self._adopt(assigned)
        return assigned

    async def close(self) -> None:
        await self.coordinator.close()

    async def _ensure_created(self) -> None:
        """A request never saved is created first, so checks run against the server state"""
        if self.coordinator.request_id is None:
            await self.coordinator.flush()

    def _persisted_id(self) -> str:
        if not self.request_id:
            raise ValidationError("The request has not been saved yet")
        return self.request_id

    def _sync_saved(self, stored: AuthorizationRequest) -> None:
        for name in SERVER_FIELDS:
            setattr(self.request, name, getattr(stored, name))

    def _adopt(self, stored: AuthorizationRequest) -> None:
        """Take the server copy as the new working copy"""
        self.request = stored
        self.coordinator.request_id = stored.id
        self.coordinator.version = stored.version
