import traceback
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from hospital_pos.api.dependencies import get_dashboard_repository, get_workflow_service
from hospital_pos.core.exceptions import HospitalError
from hospital_pos.core.permission_checker import ensure_permission, require_permission
from hospital_pos.core.utils import logger
from hospital_pos.models.patient_model import PatientStatus
from hospital_pos.models.user_model import User
from hospital_pos.repositories.dashboard_repo import DashboardRepository
from hospital_pos.schemas.diagnosis_schemas import DiagnosisResponseSchema
from hospital_pos.schemas.patient_schemas import (
    PatientBalanceSchema,
    PatientCreateSchema,
    PatientRegisterAndPaySchema,
    PatientResponseSchema,
    RegistrationResponseSchema,
    VisitCreateSchema,
    VisitResponseSchema,
)
from hospital_pos.schemas.payment_schemas import PaymentResponseSchema
from hospital_pos.schemas.service_schemas import ServiceResponseSchema
from hospital_pos.services.workflow_service import WorkflowService


router = APIRouter(prefix="/patients", tags=["patients"])


# ============= Registration =============
@router.post(
    "",
    response_model=PatientResponseSchema,
    status_code=status.HTTP_201_CREATED,
)
async def register_patient(
    patient_data: PatientCreateSchema,
    workflow: WorkflowService = Depends(get_workflow_service),
    dashboard: DashboardRepository = Depends(get_dashboard_repository),
    current_user: User = Depends(require_permission("patient.register")),
):
    try:
        patient_id = await workflow.register_patient(
            name=patient_data.name,
            age=patient_data.age,
            gender=patient_data.gender,
            contact=patient_data.contact,
            initial_status=patient_data.initial_status,
        )
        logger.log_info(
            {"event": "patient_registered_via_api", "patient_id": patient_id, "user_id": current_user.id}
        )
        return dashboard.patient(patient_id)

    except HospitalError:
        raise
    except Exception as e:
        logger.log_error(
            {
                "event": "patient_registration_error",
                "error": str(e),
                "traceback": traceback.format_exc(),
                "user_id": current_user.id,
            }
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while registering the patient",
        )


@router.post(
    "/register-and-pay",
    response_model=RegistrationResponseSchema,
    status_code=status.HTTP_201_CREATED,
)
async def register_and_pay(
    request: Request,
    data: PatientRegisterAndPaySchema,
    workflow: WorkflowService = Depends(get_workflow_service),
    dashboard: DashboardRepository = Depends(get_dashboard_repository),
    current_user: User = Depends(require_permission("patient.register")),
):
    """
    Cashier flow for a walk-in: register as payment_pending, then record
    the first payment. Requires payment rights as well.
    """
    ensure_permission(current_user, "payment.record", request=request)
    patient_id, receipt = await workflow.register_patient_with_payment(
        name=data.name,
        age=data.age,
        gender=data.gender,
        contact=data.contact,
        payment_type=data.payment_type,
        amount=data.amount,
        description=data.description,
    )
    return {"patient": dashboard.patient(patient_id), "receipt_number": receipt}


@router.post(
    "/{patient_id}/visits",
    response_model=VisitResponseSchema,
    status_code=status.HTTP_201_CREATED,
)
async def start_visit(
    patient_id: str,
    visit_data: VisitCreateSchema,
    workflow: WorkflowService = Depends(get_workflow_service),
    dashboard: DashboardRepository = Depends(get_dashboard_repository),
    current_user: User = Depends(require_permission("patient.register")),
):
    """Open a new visit for a returning patient."""
    await workflow.start_visit(patient_id, visit_data.reason)
    return dashboard.patient(patient_id).current_visit


# ============= Reads =============
@router.get("", response_model=List[PatientResponseSchema])
async def list_patients(
    patient_status: Optional[PatientStatus] = Query(None, alias="status"),
    dashboard: DashboardRepository = Depends(get_dashboard_repository),
    current_user: User = Depends(require_permission("patient.read")),
):
    return dashboard.patients_by_status(patient_status)


@router.get("/{patient_id}", response_model=PatientResponseSchema)
async def get_patient(
    patient_id: str,
    dashboard: DashboardRepository = Depends(get_dashboard_repository),
    current_user: User = Depends(require_permission("patient.read")),
):
    return dashboard.patient(patient_id)


@router.get("/{patient_id}/payments", response_model=List[PaymentResponseSchema])
async def get_patient_payments(
    patient_id: str,
    dashboard: DashboardRepository = Depends(get_dashboard_repository),
    current_user: User = Depends(require_permission("payment.read")),
):
    dashboard.patient(patient_id)
    return dashboard.payments_for_patient(patient_id)


@router.get("/{patient_id}/services", response_model=List[ServiceResponseSchema])
async def get_patient_services(
    patient_id: str,
    pending_only: bool = Query(False),
    dashboard: DashboardRepository = Depends(get_dashboard_repository),
    current_user: User = Depends(require_permission("patient.read")),
):
    dashboard.patient(patient_id)
    if pending_only:
        return dashboard.pending_services_for_patient(patient_id)
    return dashboard.services_for_patient(patient_id)


@router.get("/{patient_id}/balance", response_model=PatientBalanceSchema)
async def get_patient_balance(
    patient_id: str,
    dashboard: DashboardRepository = Depends(get_dashboard_repository),
    current_user: User = Depends(require_permission("payment.read")),
):
    dashboard.patient(patient_id)
    return PatientBalanceSchema(
        patient_id=patient_id,
        unpaid_balance=dashboard.unpaid_balance(patient_id),
        pending_services=len(dashboard.pending_services_for_patient(patient_id)),
    )


@router.get("/{patient_id}/diagnoses", response_model=List[DiagnosisResponseSchema])
async def get_patient_diagnoses(
    patient_id: str,
    dashboard: DashboardRepository = Depends(get_dashboard_repository),
    current_user: User = Depends(require_permission("diagnosis.read")),
):
    return dashboard.diagnoses_for_patient(patient_id)
