"""FastAPI dependency injection helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from campus_rides.services.container import Services
from campus_rides.services.lifecycle import RideLifecycleEngine
from campus_rides.services.moderation import ModerationService


@dataclass(frozen=True)
class Caller:
    """Identity asserted by the upstream auth layer."""

    id: str
    role: str = "student"


async def get_caller(
    x_user_id: Optional[str] = Header(None),
    x_user_role: str = Header("student"),
) -> Caller:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return Caller(id=x_user_id, role=x_user_role.lower())


async def require_admin(caller: Caller = Depends(get_caller)) -> Caller:
    if caller.role != "admin":
        raise HTTPException(status_code=403, detail="Admin access required")
    return caller


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_engine(services: Services = Depends(get_services)) -> RideLifecycleEngine:
    return services.engine


def get_moderation(services: Services = Depends(get_services)) -> ModerationService:
    return services.moderation
