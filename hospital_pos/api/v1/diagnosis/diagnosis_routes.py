from fastapi import APIRouter, Depends, status

from hospital_pos.api.dependencies import get_workflow_service
from hospital_pos.core.permission_checker import require_permission
from hospital_pos.models.user_model import User
from hospital_pos.schemas.diagnosis_schemas import DiagnosisCreateSchema, DiagnosisCreatedSchema
from hospital_pos.services.workflow_service import WorkflowService


router = APIRouter(prefix="/diagnoses", tags=["diagnoses"])


@router.post(
    "",
    response_model=DiagnosisCreatedSchema,
    status_code=status.HTTP_201_CREATED,
)
async def record_diagnosis(
    diagnosis_data: DiagnosisCreateSchema,
    workflow: WorkflowService = Depends(get_workflow_service),
    current_user: User = Depends(require_permission("diagnosis.record")),
):
    """
    Record a diagnosis for the signed-in doctor.

    Lab tests spawn one pending lab service and prescriptions spawn one
    pending pharmacy service; the cashier collects both later.
    """
    result = await workflow.record_diagnosis(
        patient_id=diagnosis_data.patient_id,
        doctor_id=current_user.id,
        diagnosis_text=diagnosis_data.diagnosis,
        lab_test_ids=diagnosis_data.lab_tests,
        prescription_lines=[line.model_dump() for line in diagnosis_data.prescriptions],
    )
    return DiagnosisCreatedSchema(
        diagnosis_id=result.diagnosis_id,
        lab_service_id=result.lab_service_id,
        pharmacy_service_id=result.pharmacy_service_id,
    )
