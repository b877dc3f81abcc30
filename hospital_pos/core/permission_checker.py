from typing import Optional

from fastapi import Depends, Request

from hospital_pos.core.exceptions import PermissionDeniedError
from hospital_pos.core.rbac import permissions_for, role_has_permission
from hospital_pos.core.security import get_current_user
from hospital_pos.core.utils import logger
from hospital_pos.models.user_model import User


def _client_details(request: Optional[Request]) -> dict:
    return {
        "ip_address": (
            getattr(request.client, "host", "unknown")
            if request and request.client
            else "unknown"
        ),
        "user_agent": request.headers.get("user-agent", "unknown") if request else "unknown",
        "path": request.url.path if request else "unknown",
    }


def ensure_permission(current_user: User, *perms: str, request: Optional[Request] = None) -> None:
    """Raise PermissionDeniedError unless the user's role grants one of ``perms``."""
    if any(role_has_permission(current_user.role, perm) for perm in perms):
        logger.log_debug(
            {
                "event": "access_granted",
                "user_id": current_user.id,
                "granted_permissions": [
                    perm for perm in perms if perm in permissions_for(current_user.role)
                ],
            }
        )
        return

    logger.log_security_event(
        {
            "event": "unauthorized_access_attempt",
            "user_id": current_user.id,
            "role": current_user.role.value,
            "required_permissions": list(perms),
            **_client_details(request),
        }
    )
    raise PermissionDeniedError(
        f"Access denied. Requires at least one of these permissions: {', '.join(perms)}",
        detail={"required_permissions": list(perms), "role": current_user.role.value},
    )


def require_permission(*perms: str):
    """
    Dependency factory to enforce permissions from the role table.

    Args:
        *perms: Required permissions (user needs at least one)

    Usage:
        current_user: User = Depends(require_permission("payment.record"))
    """

    async def checker(
        request: Request,
        current_user: User = Depends(get_current_user),
    ) -> User:
        ensure_permission(current_user, *perms, request=request)
        return current_user

    return checker
