from typing import List

from fastapi import APIRouter, Depends

from hospital_pos.api.dependencies import get_dashboard_repository, get_workflow_service
from hospital_pos.core.permission_checker import require_permission
from hospital_pos.core.utils import logger
from hospital_pos.models.service_model import ServiceType
from hospital_pos.models.user_model import User
from hospital_pos.repositories.dashboard_repo import DashboardRepository
from hospital_pos.schemas.service_schemas import ServiceResponseSchema
from hospital_pos.services.workflow_service import WorkflowService


router = APIRouter(prefix="/services", tags=["services"])


@router.get("/queue/{service_type}", response_model=List[ServiceResponseSchema])
async def get_service_queue(
    service_type: ServiceType,
    dashboard: DashboardRepository = Depends(get_dashboard_repository),
    current_user: User = Depends(require_permission("service.read")),
):
    """Paid services waiting for the lab or pharmacy, oldest first."""
    return dashboard.service_queue(service_type)


@router.post("/{service_id}/complete", response_model=ServiceResponseSchema)
async def complete_service(
    service_id: str,
    workflow: WorkflowService = Depends(get_workflow_service),
    current_user: User = Depends(require_permission("service.complete")),
):
    service = await workflow.complete_service(service_id, completed_by=current_user.id)
    logger.log_info({"event": "lab_service_completed", "service_id": service_id, "user_id": current_user.id})
    return service


@router.post("/{service_id}/dispense", response_model=ServiceResponseSchema)
async def dispense_service(
    service_id: str,
    workflow: WorkflowService = Depends(get_workflow_service),
    current_user: User = Depends(require_permission("service.dispense")),
):
    service = await workflow.dispense_service(service_id, dispensed_by=current_user.id)
    logger.log_info({"event": "prescription_dispensed", "service_id": service_id, "user_id": current_user.id})
    return service
