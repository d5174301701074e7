"""Shared service container and request actor for the API"""

from typing import Optional

from fastapi import Header, HTTPException

from insurance_sales.models import Actor, UserRole
from insurance_sales.services.container import LifecycleServices, build_services

_services: Optional[LifecycleServices] = None


def init_services(services: LifecycleServices) -> None:
    """Set the shared services (called from app.py and tests)."""
    global _services
    _services = services


def get_services() -> LifecycleServices:
    global _services
    if _services is None:
        _services = build_services()
    return _services


def get_actor(
    x_user_id: str = Header(..., description="Authenticated user ID"),
    x_user_role: str = Header(..., description="Role of the authenticated user"),
) -> Actor:
    """Actor from identity headers set by the auth gateway."""
    try:
        role = UserRole(x_user_role)
    except ValueError:
        raise HTTPException(status_code=403, detail=f"Rol desconocido: {x_user_role}")
    if role == UserRole.SYSTEM:
        raise HTTPException(status_code=403, detail="El rol system no se acepta desde la API")
    return Actor(user_id=x_user_id, role=role)
