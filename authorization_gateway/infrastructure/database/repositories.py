"""Data access layer for authorization requests"""

from dataclasses import asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from authorization_gateway.infrastructure.database.models import AuthorizationRequestRecord
from authorization_gateway.domain.authorization_data import authorization_data_to_dict, parse_authorization_data
from authorization_gateway.domain.exceptions import ConflictError, NotFoundError, PersistenceError, ValidationError
from authorization_gateway.domain.models import (
    AuthorizationRequest,
    Competitor,
    Page,
    Priority,
    RequestFilters,
    RequestStats,
    RequestStatus,
)
from authorization_gateway.domain.stats import aggregate_stats
from authorization_gateway.domain.workflow import append_note_text
from authorization_gateway.utils.date_utils import as_utc, utcnow

# Columns a caller may write through update(); identity and version are managed here
UPDATABLE_COLUMNS = {
    column.name
    for column in AuthorizationRequestRecord.__table__.columns
    if column.name not in ("id", "created_at", "version")
}

DATETIME_COLUMNS = {
    "advisor_reviewed_at",
    "internal_committee_reviewed_at",
    "partners_committee_reviewed_at",
    "decided_at",
    "created_at",
    "updated_at",
}


def _column_value(key: str, value: Any) -> Any:
    """Convert a domain value to what the column stores"""
    if isinstance(value, Enum):
        return value.value
    if key == "authorization_data":
        if value is None:
            return None
        return authorization_data_to_dict(parse_authorization_data(value))
    if key == "competitors_data":
        return [asdict(item) if isinstance(item, Competitor) else dict(item) for item in value or []]
    return value


def _record_values(request: AuthorizationRequest) -> Dict[str, Any]:
    values = {}
    for column in AuthorizationRequestRecord.__table__.columns:
        if column.name == "version":
            continue
        values[column.name] = _column_value(column.name, getattr(request, column.name))
    return values


def _optional_utc(value: Optional[datetime]) -> Optional[datetime]:
    return as_utc(value) if value is not None else None


def to_domain(record: AuthorizationRequestRecord) -> AuthorizationRequest:
    """Map an ORM row to the domain dataclass"""
    values = {}
    for column in AuthorizationRequestRecord.__table__.columns:
        value = getattr(record, column.name)
        if column.name in DATETIME_COLUMNS:
            value = _optional_utc(value)
        values[column.name] = value

    values["status"] = RequestStatus(record.status)
    values["priority"] = Priority(record.priority)
    values["authorization_data"] = parse_authorization_data(record.authorization_data)
    values["competitors_data"] = [
        Competitor(name=item.get("name", ""), price=item.get("price") or 0) for item in record.competitors_data or []
    ]
    return AuthorizationRequest(**values)


class AuthorizationRequestRepository:
    """Repository for authorization requests"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, request: AuthorizationRequest) -> AuthorizationRequest:
        """Insert a new request; the store assigns the id unless one is given"""
        values = _record_values(request)
        if not values.get("id"):
            values.pop("id")
        for key in ("created_at", "updated_at"):
            if values.get(key) is None:
                values[key] = utcnow()

        record = AuthorizationRequestRecord(**values)
        self.db.add(record)
        try:
            self.db.flush()  # Get ID without committing
        except IntegrityError as e:
            raise ConflictError(f"Authorization request {request.id} already exists") from e
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not create authorization request: {e}") from e
        return to_domain(record)

    def get(self, request_id: str) -> AuthorizationRequest:
        return to_domain(self._load(request_id))

    def update(
        self,
        request_id: str,
        fields: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> AuthorizationRequest:
        """
        Apply a partial update.

        Raises:
            ConflictError: the stored version differs from `expected_version`, or a
                concurrent writer bumped it between read and flush
            NotFoundError: unknown id
        """
        unknown = set(fields) - UPDATABLE_COLUMNS
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        record = self._load(request_id)
        if expected_version is not None and record.version != expected_version:
            raise ConflictError(
                f"Authorization request {request_id} changed since version {expected_version}",
                expected_version=expected_version,
                actual_version=record.version,
            )

        for key, value in fields.items():
            setattr(record, key, _column_value(key, value))

        # updated_at only moves forward
        stamp = as_utc(fields.get("updated_at") or utcnow())
        previous = _optional_utc(record.updated_at)
        record.updated_at = max(stamp, previous) if previous else stamp

        try:
            self.db.flush()
        except StaleDataError as e:
            raise ConflictError(f"Authorization request {request_id} was modified concurrently") from e
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not update authorization request {request_id}: {e}") from e
        return to_domain(record)

    def save(self, request: AuthorizationRequest) -> AuthorizationRequest:
        """Write back a request mutated by the workflow engine"""
        values = _record_values(request)
        for key in ("id", "created_at"):
            values.pop(key)
        return self.update(request.id, values, expected_version=request.version)

    def list(self, filters: RequestFilters, page: Page) -> List[AuthorizationRequest]:
        """Newest-first page of requests matching the filters"""
        query = self.db.query(AuthorizationRequestRecord)
        if filters.assignee:
            query = query.filter(AuthorizationRequestRecord.assigned_to_user_id == filters.assignee)
        if filters.status:
            query = query.filter(AuthorizationRequestRecord.status == RequestStatus(filters.status).value)
        if filters.priority:
            query = query.filter(AuthorizationRequestRecord.priority == Priority(filters.priority).value)
        if filters.search_term and filters.search_term.strip():
            pattern = f"%{filters.search_term.strip()}%"
            query = query.filter(
                or_(
                    AuthorizationRequestRecord.client_name.ilike(pattern),
                    AuthorizationRequestRecord.client_email.ilike(pattern),
                    AuthorizationRequestRecord.vehicle_brand.ilike(pattern),
                    AuthorizationRequestRecord.vehicle_model.ilike(pattern),
                    AuthorizationRequestRecord.agency_name.ilike(pattern),
                )
            )

        records = (
            query.order_by(AuthorizationRequestRecord.created_at.desc())
            .offset(page.offset)
            .limit(page.size)
            .all()
        )
        return [to_domain(record) for record in records]

    def append_note(self, request_id: str, text: str) -> AuthorizationRequest:
        """Append a timestamped entry to the internal notes"""
        if not text or not text.strip():
            raise ValidationError("Note text is required")
        record = self._load(request_id)
        notes = append_note_text(record.internal_notes, text.strip(), utcnow())
        return self.update(request_id, {"internal_notes": notes})

    def aggregate(self) -> RequestStats:
        records = self.db.query(AuthorizationRequestRecord).all()
        return aggregate_stats(to_domain(record) for record in records)

    def _load(self, request_id: str) -> AuthorizationRequestRecord:
        record = self.db.get(AuthorizationRequestRecord, request_id)
        if record is None:
            raise NotFoundError(f"Authorization request {request_id} not found")
        return record
