"""Dependency injection for FastAPI endpoints"""

from typing import Optional
from fastapi import Header, HTTPException, Request
from authorization_gateway.domain.models import SessionContext
from authorization_gateway.domain.workflow import WorkflowEngine


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_session_context(
    x_user_id: Optional[str] = Header(None, alias="X-User-ID"),
    x_user_name: Optional[str] = Header(None, alias="X-User-Name"),
) -> Optional[SessionContext]:
    """Acting user from request headers; None for anonymous callers"""
    if not x_user_id or not x_user_id.strip():
        return None
    return SessionContext(user_id=x_user_id.strip(), display_name=x_user_name)


def require_session_context(
    x_user_id: Optional[str] = Header(None, alias="X-User-ID"),
    x_user_name: Optional[str] = Header(None, alias="X-User-Name"),
) -> SessionContext:
    """Acting user for operations that record who did them"""
    context = get_session_context(x_user_id, x_user_name)
    if context is None:
        raise HTTPException(status_code=401, detail="X-User-ID header is required")
    return context


def get_engine() -> WorkflowEngine:
    """Provide the workflow engine"""
    return WorkflowEngine()
