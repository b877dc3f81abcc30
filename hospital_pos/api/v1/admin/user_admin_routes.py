from typing import List

from fastapi import APIRouter, Depends, status

from hospital_pos.api.dependencies import get_user_provisioning
from hospital_pos.core.permission_checker import require_permission
from hospital_pos.core.security import get_access_token
from hospital_pos.core.utils import logger
from hospital_pos.models.user_model import User
from hospital_pos.schemas.user_schemas import RoleUpdateSchema, UserCreateSchema, UserResponseSchema
from hospital_pos.services.user_service import UserProvisioningClient


router = APIRouter(prefix="/admin/users", tags=["admin"])


@router.get("", response_model=List[UserResponseSchema])
async def list_users(
    token: str = Depends(get_access_token),
    provisioning: UserProvisioningClient = Depends(get_user_provisioning),
    current_user: User = Depends(require_permission("user.list")),
):
    users = await provisioning.list_users(token)
    return [UserResponseSchema.from_user(user) for user in users]


@router.post("", response_model=UserResponseSchema, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreateSchema,
    token: str = Depends(get_access_token),
    provisioning: UserProvisioningClient = Depends(get_user_provisioning),
    current_user: User = Depends(require_permission("user.create")),
):
    user = await provisioning.create_user(
        email=user_data.email,
        password=user_data.password,
        full_name=user_data.full_name,
        role=user_data.role,
        token=token,
    )
    logger.log_info(
        {"event": "staff_account_created", "user_id": user.id, "created_by": current_user.id}
    )
    return UserResponseSchema.from_user(user)


@router.patch("/{user_id}/role", status_code=status.HTTP_204_NO_CONTENT)
async def update_user_role(
    user_id: str,
    role_data: RoleUpdateSchema,
    token: str = Depends(get_access_token),
    provisioning: UserProvisioningClient = Depends(get_user_provisioning),
    current_user: User = Depends(require_permission("role.assign")),
):
    await provisioning.update_user_role(user_id, role_data.new_role, actor=current_user, token=token)
