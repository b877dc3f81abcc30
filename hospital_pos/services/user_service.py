"""
User Provisioning

Staff accounts are created and re-roled by two hosted functions,
``create-user`` and ``update-user-role``. Both authorise the caller from
the bearer token, so the admin's own access token is forwarded.
"""
from typing import Dict, List, Optional

import httpx

from hospital_pos.core.exceptions import (
    AuthenticationError,
    CollaboratorError,
    PermissionDeniedError,
    ValidationError,
)
from hospital_pos.core.security import DemoIdentityProvider
from hospital_pos.core.utils import LoggerMixin
from hospital_pos.models.user_model import Role, User


class UserProvisioningClient(LoggerMixin):
    """Interface for listing, creating and re-roling staff accounts."""

    async def list_users(self, token: str) -> List[User]:
        raise NotImplementedError

    async def create_user(
        self, email: str, password: str, full_name: str, role: Role, token: str
    ) -> User:
        raise NotImplementedError

    async def update_user_role(
        self, user_id: str, new_role: Role, actor: User, token: str
    ) -> None:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None

    def _check_self_demotion(self, user_id: str, new_role: Role, actor: User) -> None:
        if user_id == actor.id and actor.role == Role.ADMIN and new_role != Role.ADMIN:
            self.log_security_event({"event": "self_demotion_blocked", "user_id": actor.id})
            raise ValidationError(
                "Cannot remove admin role from yourself", code="SELF_DEMOTION"
            )


class OfflineUserProvisioning(UserProvisioningClient):
    """Demo mode: the roster is fixed, so listing works and provisioning does not."""

    def __init__(self, identity: DemoIdentityProvider):
        self._identity = identity

    async def list_users(self, token: str) -> List[User]:
        return self._identity.users

    async def create_user(
        self, email: str, password: str, full_name: str, role: Role, token: str
    ) -> User:
        raise CollaboratorError(
            "User provisioning requires the hosted backend",
            code="PROVISIONING_UNAVAILABLE",
        )

    async def update_user_role(
        self, user_id: str, new_role: Role, actor: User, token: str
    ) -> None:
        self._check_self_demotion(user_id, new_role, actor)
        raise CollaboratorError(
            "User provisioning requires the hosted backend",
            code="PROVISIONING_UNAVAILABLE",
        )


class HostedUserProvisioning(UserProvisioningClient):
    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._client = client or httpx.AsyncClient(
            base_url=base_url, timeout=timeout, headers={"apikey": api_key}
        )

    async def list_users(self, token: str) -> List[User]:
        profiles = await self._call(
            "GET",
            "/rest/v1/profiles",
            token,
            params={"select": "user_id,username,name,department", "order": "name.asc"},
        )
        roles = await self._call(
            "GET", "/rest/v1/user_roles", token, params={"select": "user_id,role"}
        )
        role_by_user: Dict[str, str] = {row["user_id"]: row["role"] for row in roles}

        return [
            User(
                id=row["user_id"],
                username=row.get("username") or row["user_id"],
                name=row.get("name") or row.get("username") or row["user_id"],
                role=Role(role_by_user[row["user_id"]]),
                department=row.get("department"),
            )
            for row in profiles
            if row["user_id"] in role_by_user
        ]

    async def create_user(
        self, email: str, password: str, full_name: str, role: Role, token: str
    ) -> User:
        role = Role(role)
        payload = await self._call(
            "POST",
            "/functions/v1/create-user",
            token,
            json={"email": email, "password": password, "fullName": full_name, "role": role.value},
        )
        created = payload["user"]
        user = User(
            id=created["id"],
            username=created.get("email", email),
            name=created.get("full_name", full_name),
            role=Role(created.get("role", role.value)),
            department=role.value,
        )
        self.log_info({"event": "user_created", "user_id": user.id, "role": user.role.value})
        return user

    async def update_user_role(
        self, user_id: str, new_role: Role, actor: User, token: str
    ) -> None:
        new_role = Role(new_role)
        self._check_self_demotion(user_id, new_role, actor)
        await self._call(
            "POST",
            "/functions/v1/update-user-role",
            token,
            json={"userId": user_id, "newRole": new_role.value},
        )
        self.log_info(
            {
                "event": "user_role_updated",
                "user_id": user_id,
                "new_role": new_role.value,
                "actor": actor.id,
            }
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _call(self, method: str, url: str, token: str, **kwargs):
        try:
            response = await self._client.request(
                method, url, headers={"Authorization": f"Bearer {token}"}, **kwargs
            )
        except httpx.HTTPError as e:
            self.log_error({"event": "provisioning_request_failed", "url": url, "error": str(e)})
            raise CollaboratorError(
                "User provisioning unreachable",
                code="PROVISIONING_UNREACHABLE",
                detail={"url": url},
            ) from e

        if response.is_success:
            return response.json()

        message = _error_message(response)
        if response.status_code == 400:
            raise ValidationError(message, code="PROVISIONING_REJECTED")
        if response.status_code == 401:
            raise AuthenticationError(message, code="INVALID_TOKEN")
        if response.status_code == 403:
            raise PermissionDeniedError(message)

        self.log_error(
            {"event": "provisioning_request_rejected", "url": url, "status_code": response.status_code}
        )
        raise CollaboratorError(
            message,
            code="PROVISIONING_FAILED",
            detail={"url": url, "status_code": response.status_code},
        )


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return body.get("error") or body.get("message") or str(body)
    return str(body)
