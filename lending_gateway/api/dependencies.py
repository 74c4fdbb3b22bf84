"""Dependency injection for FastAPI endpoints"""

from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from lending_gateway.domain.access import Actor, actor_for_role
from lending_gateway.infrastructure.database.session import get_db
from lending_gateway.services.decision_service import DecisionService


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_role: Optional[str] = Header(None),
) -> Actor:
    """Caller identity as forwarded by the upstream auth layer; no id means no capabilities"""
    if not x_actor_id or not x_actor_id.strip():
        return Actor(actor_id="anonymous")
    return actor_for_role(x_actor_id.strip(), x_actor_role or "viewer")


def get_decision_service(request: Request, db: Session = Depends(get_db)) -> DecisionService:
    """Provide a decision service bound to the request's session"""
    return DecisionService(db, request_id=get_request_id(request))
