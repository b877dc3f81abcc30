"""
Identity provider clients and the ``get_current_user`` dependency.

Offline (demo) mode signs staff in against a fixed roster with a shared
password. Hosted mode delegates to the hosted auth API and reads the
role from ``user_roles`` and the display name from ``profiles``.
"""
import secrets
from typing import Dict, List, Optional

import httpx
from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from hospital_pos.api.dependencies import get_identity_provider
from hospital_pos.core.exceptions import AuthenticationError, CollaboratorError
from hospital_pos.core.utils import LoggerMixin, logger
from hospital_pos.models.user_model import Role, User


security = HTTPBearer(
    scheme_name="Bearer Token", description="Access token from /auth/sign-in", auto_error=False
)


DEMO_USERS = (
    User(id="1", username="cashier", name="Sarah Johnson", role=Role.CASHIER, department="Front Desk"),
    User(id="2", username="doctor", name="Dr. Michael Chen", role=Role.DOCTOR, department="Consultation"),
    User(id="3", username="lab", name="Lisa Parker", role=Role.LAB, department="Laboratory"),
    User(id="4", username="pharmacy", name="James Wilson", role=Role.PHARMACY, department="Pharmacy"),
    User(id="5", username="admin", name="Admin User", role=Role.ADMIN, department="Administration"),
    User(id="6", username="hod_lab", name="Grace Okafor", role=Role.HOD_LAB, department="Laboratory"),
    User(id="7", username="hod_pharmacy", name="Daniel Mensah", role=Role.HOD_PHARMACY, department="Pharmacy"),
)


class AuthSession(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: User


class IdentityProvider(LoggerMixin):
    """Interface shared by the demo and hosted providers."""

    async def sign_in(self, username: str, password: str) -> AuthSession:
        raise NotImplementedError

    async def sign_out(self, token: str) -> None:
        raise NotImplementedError

    async def get_current_user(self, token: str) -> User:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


class DemoIdentityProvider(IdentityProvider):
    """In-process roster; tokens live until sign-out or restart."""

    def __init__(self, password: str, users=DEMO_USERS):
        self._password = password
        self._users: Dict[str, User] = {u.username: u for u in users}
        self._tokens: Dict[str, User] = {}

    @property
    def users(self) -> List[User]:
        return list(self._users.values())

    async def sign_in(self, username: str, password: str) -> AuthSession:
        user = self._users.get(username)
        if user is None or not secrets.compare_digest(password, self._password):
            self.log_security_event({"event": "sign_in_failed", "username": username})
            raise AuthenticationError("Invalid username or password", code="INVALID_CREDENTIALS")

        token = secrets.token_urlsafe(32)
        self._tokens[token] = user
        self.log_info({"event": "sign_in", "user_id": user.id, "role": user.role.value})
        return AuthSession(access_token=token, user=user)

    async def sign_out(self, token: str) -> None:
        user = self._tokens.pop(token, None)
        if user:
            self.log_info({"event": "sign_out", "user_id": user.id})

    async def get_current_user(self, token: str) -> User:
        try:
            return self._tokens[token]
        except KeyError:
            raise AuthenticationError("Invalid or expired token", code="INVALID_TOKEN") from None


class HostedIdentityProvider(IdentityProvider):
    """
    Client for the hosted auth API.

    ``sign_in`` posts the password grant to ``/auth/v1/token``; the returned
    access token is then used for every profile and role lookup so row
    level security applies to the caller.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._api_key = api_key
        self._client = client or httpx.AsyncClient(
            base_url=base_url, timeout=timeout, headers={"apikey": api_key}
        )

    async def sign_in(self, username: str, password: str) -> AuthSession:
        response = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": username, "password": password},
        )
        if response.status_code in (400, 401):
            self.log_security_event({"event": "sign_in_failed", "username": username})
            raise AuthenticationError("Invalid username or password", code="INVALID_CREDENTIALS")
        self._raise_for_status(response, "/auth/v1/token")

        payload = response.json()
        token = payload["access_token"]
        user = await self._load_user(payload["user"], token)
        self.log_info({"event": "sign_in", "user_id": user.id, "role": user.role.value})
        return AuthSession(access_token=token, user=user)

    async def sign_out(self, token: str) -> None:
        response = await self._request("POST", "/auth/v1/logout", headers=_bearer(token))
        if response.status_code not in (401, 403):
            self._raise_for_status(response, "/auth/v1/logout")

    async def get_current_user(self, token: str) -> User:
        response = await self._request("GET", "/auth/v1/user", headers=_bearer(token))
        if response.status_code in (401, 403):
            raise AuthenticationError("Invalid or expired token", code="INVALID_TOKEN")
        self._raise_for_status(response, "/auth/v1/user")
        return await self._load_user(response.json(), token)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _load_user(self, auth_user: dict, token: str) -> User:
        user_id = auth_user["id"]
        role_rows = await self._rows("user_roles", user_id, token, select="role")
        if not role_rows:
            self.log_security_event({"event": "user_without_role", "user_id": user_id})
            raise AuthenticationError("No role assigned to this account", code="ROLE_MISSING")

        profile_rows = await self._rows(
            "profiles", user_id, token, select="username,name,department"
        )
        profile = profile_rows[0] if profile_rows else {}
        email = auth_user.get("email") or ""
        return User(
            id=user_id,
            username=profile.get("username") or email,
            name=profile.get("name") or email,
            role=Role(role_rows[0]["role"]),
            department=profile.get("department"),
        )

    async def _rows(self, table: str, user_id: str, token: str, select: str) -> List[dict]:
        url = f"/rest/v1/{table}"
        response = await self._request(
            "GET",
            url,
            params={"select": select, "user_id": f"eq.{user_id}"},
            headers=_bearer(token),
        )
        self._raise_for_status(response, url)
        return response.json()

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            self.log_error({"event": "identity_request_failed", "url": url, "error": str(e)})
            raise CollaboratorError(
                "Identity provider unreachable",
                code="IDENTITY_UNREACHABLE",
                detail={"url": url},
            ) from e

    def _raise_for_status(self, response: httpx.Response, url: str) -> None:
        if response.is_error:
            self.log_error(
                {"event": "identity_request_rejected", "url": url, "status_code": response.status_code}
            )
            raise CollaboratorError(
                "Identity provider rejected the request",
                code="IDENTITY_REJECTED",
                detail={"url": url, "status_code": response.status_code},
            )


def _bearer(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def get_access_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
) -> str:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Not authenticated")
    return credentials.credentials


async def get_current_user(
    request: Request,
    token: str = Depends(get_access_token),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> User:
    """Resolve the bearer token to the acting staff member."""
    try:
        return await identity.get_current_user(token)
    except AuthenticationError:
        logger.log_warning(
            {
                "event": "invalid_auth_credentials",
                "path": request.url.path,
                "ip_address": request.client.host if request.client else "unknown",
            }
        )
        raise
