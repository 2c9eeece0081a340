"""Contracts the core expects from its persistence collaborators"""

from typing import Any, Dict, List, Optional, Protocol
from authorization_gateway.domain.models import AuthorizationRequest, Page, RequestFilters, RequestStats, RequestStatus


class PersistenceStore(Protocol):
    """Synchronous store for authorization requests (database side)"""

    def create(self, request: AuthorizationRequest) -> AuthorizationRequest: ...

    def update(
        self,
        request_id: str,
        fields: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> AuthorizationRequest: ...

    def get(self, request_id: str) -> AuthorizationRequest: ...

    def list(self, filters: RequestFilters, page: Page) -> List[AuthorizationRequest]: ...

    def append_note(self, request_id: str, text: str) -> AuthorizationRequest: ...

    def aggregate(self) -> RequestStats: ...


class SaveTarget(Protocol):
    """Asynchronous persistence used by review sessions and autosave (client side)"""

    async def create(self, fields: Dict[str, Any]) -> AuthorizationRequest: ...

    async def update(
        self,
        request_id: str,
        fields: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> AuthorizationRequest: ...

    async def get(self, request_id: str) -> AuthorizationRequest: ...

    async def assign(self, request_id: str, user_id: str) -> AuthorizationRequest: ...

    async def decide(self, request_id: str, outcome: RequestStatus, notes: str) -> AuthorizationRequest: ...
