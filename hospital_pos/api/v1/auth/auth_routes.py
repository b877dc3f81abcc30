from fastapi import APIRouter, Depends, status

from hospital_pos.api.dependencies import get_identity_provider
from hospital_pos.core.security import IdentityProvider, get_access_token, get_current_user
from hospital_pos.core.utils import logger
from hospital_pos.models.user_model import User
from hospital_pos.schemas.user_schemas import (
    AuthSessionResponseSchema,
    SignInSchema,
    UserResponseSchema,
)


router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/sign-in", response_model=AuthSessionResponseSchema)
async def sign_in(
    credentials: SignInSchema,
    identity: IdentityProvider = Depends(get_identity_provider),
):
    """Exchange username and password for a bearer token and the role dashboard."""
    session = await identity.sign_in(credentials.username, credentials.password)
    return AuthSessionResponseSchema(
        access_token=session.access_token,
        token_type=session.token_type,
        user=UserResponseSchema.from_user(session.user),
    )


@router.post("/sign-out", status_code=status.HTTP_204_NO_CONTENT)
async def sign_out(
    token: str = Depends(get_access_token),
    current_user: User = Depends(get_current_user),
    identity: IdentityProvider = Depends(get_identity_provider),
):
    await identity.sign_out(token)
    logger.log_info({"event": "signed_out", "user_id": current_user.id})


@router.get("/me", response_model=UserResponseSchema)
async def me(current_user: User = Depends(get_current_user)):
    return UserResponseSchema.from_user(current_user)
