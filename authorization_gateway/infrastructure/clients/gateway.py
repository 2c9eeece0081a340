"""Authorization gateway HTTP client used by review sessions and autosave"""

import httpx
from datetime import datetime
from typing import Any, Dict, Optional
from authorization_gateway.config import settings
from authorization_gateway.domain.authorization_data import parse_authorization_data
from authorization_gateway.domain.exceptions import (
    ConflictError,
    DomainException,
    InvalidTransition,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from authorization_gateway.domain.models import (
    AuthorizationRequest,
    Competitor,
    Priority,
    RequestStatus,
    SessionContext,
)
from authorization_gateway.utils.date_utils import as_utc

RESOURCE_PATH = "/v1/authorization-requests"

DATETIME_FIELDS = (
    "advisor_reviewed_at",
    "internal_committee_reviewed_at",
    "partners_committee_reviewed_at",
    "decided_at",
    "created_at",
    "updated_at",
)


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    # Pydantic renders UTC as a trailing Z
    return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def request_from_payload(payload: Dict[str, Any]) -> AuthorizationRequest:
    """Build a domain request from the gateway's JSON representation"""
    values = dict(payload)
    for key in DATETIME_FIELDS:
        values[key] = _parse_datetime(values.get(key))
    values["status"] = RequestStatus(values["status"])
    values["priority"] = Priority(values["priority"])
    values["authorization_data"] = parse_authorization_data(values.get("authorization_data"))
    values["competitors_data"] = [
        Competitor(name=item["name"], price=item.get("price") or 0) for item in values.get("competitors_data") or []
    ]
    return AuthorizationRequest(**values)


def _error_detail(response: httpx.Response) -> str:
    try:
        detail = response.json().get("detail")
    except (ValueError, AttributeError):
        detail = None
    return str(detail or response.reason_phrase or response.status_code)


class AuthorizationGatewayClient:
    """Client for the authorization request endpoints"""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        context: SessionContext | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or settings.gateway_base_url
        self.timeout = timeout or settings.http_timeout_seconds
        self.context = context
        self.transport = transport

    async def create(self, fields: Dict[str, Any]) -> AuthorizationRequest:
        return await self._send("POST", RESOURCE_PATH, json=fields)

    async def update(
        self,
        request_id: str,
        fields: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> AuthorizationRequest:
        body = dict(fields)
        if expected_version is not None:
            body["expected_version"] = expected_version
        return await self._send("PATCH", f"{RESOURCE_PATH}/{request_id}", json=body)

    async def get(self, request_id: str) -> AuthorizationRequest:
        return await self._send("GET", f"{RESOURCE_PATH}/{request_id}")

    async def assign(self, request_id: str, user_id: str) -> AuthorizationRequest:
        return await self._send("POST", f"{RESOURCE_PATH}/{request_id}/assign", json={"user_id": user_id})

    async def decide(self, request_id: str, outcome: RequestStatus, notes: str) -> AuthorizationRequest:
        return await self._send(
            "POST",
            f"{RESOURCE_PATH}/{request_id}/decision",
            json={"outcome": RequestStatus(outcome).value, "notes": notes},
        )

    async def _send(self, method: str, path: str, json: Dict[str, Any] | None = None) -> AuthorizationRequest:
        """
        Issue one call and map the outcome to the domain.

        Raises:
            NotFoundError: 404
            ConflictError: 409 with a version conflict
            InvalidTransition: 409 for an illegal status change
            ValidationError: 422
            PersistenceError: timeouts, network failures, other HTTP errors, bad payloads
        """
        headers = {}
        if self.context is not None:
            headers["X-User-ID"] = self.context.user_id

        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=headers,
            transport=self.transport,
        ) as client:
            try:
                response = await client.request(method, path, json=json)
            except httpx.TimeoutException as e:
                raise PersistenceError(f"Gateway timeout after {self.timeout}s") from e
            except httpx.RequestError as e:
                raise PersistenceError(f"Gateway unreachable: {e}") from e

        if response.is_error:
            raise self._map_error(response)

        try:
            return request_from_payload(response.json())
        except (KeyError, ValueError, TypeError, ValidationError) as e:
            raise PersistenceError(f"Invalid authorization request payload from gateway: {e}") from e

    @staticmethod
    def _map_error(response: httpx.Response) -> DomainException:
        detail = _error_detail(response)
        status = response.status_code
        if status == 404:
            return NotFoundError(detail)
        if status == 409:
            kind = response.headers.get("X-Error-Kind")
            if kind == "invalid_transition":
                return InvalidTransition(detail)
            return ConflictError(detail)
        if status == 422:
            return ValidationError(detail)
        return PersistenceError(f"Gateway error {status}: {detail}")
