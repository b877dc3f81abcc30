import traceback
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from hospital_pos.api.dependencies import get_dashboard_repository, get_workflow_service
from hospital_pos.core.exceptions import HospitalError
from hospital_pos.core.pagination import (
    PaginatedResponse,
    PaginationParams,
    Paginator,
    get_pagination_params,
)
from hospital_pos.core.permission_checker import require_permission
from hospital_pos.core.utils import logger
from hospital_pos.models.patient_model import PaymentType
from hospital_pos.models.user_model import User
from hospital_pos.repositories.dashboard_repo import DashboardRepository
from hospital_pos.schemas.payment_schemas import (
    CombinedPaymentCreateSchema,
    CombinedQuoteRequestSchema,
    CombinedQuoteResponseSchema,
    PaymentCreateSchema,
    PaymentResponseSchema,
)
from hospital_pos.services.workflow_service import WorkflowService


router = APIRouter(prefix="/payments", tags=["payments"])


@router.post(
    "",
    response_model=PaymentResponseSchema,
    status_code=status.HTTP_201_CREATED,
)
async def record_payment(
    payment_data: PaymentCreateSchema,
    workflow: WorkflowService = Depends(get_workflow_service),
    dashboard: DashboardRepository = Depends(get_dashboard_repository),
    current_user: User = Depends(require_permission("payment.record")),
):
    """
    Record a consultation, lab or pharmacy payment.

    Lab and pharmacy payments settle the patient's oldest pending service
    of that type.
    """
    try:
        receipt = await workflow.record_payment(
            patient_id=payment_data.patient_id,
            payment_type=payment_data.type,
            amount=payment_data.amount,
            description=payment_data.description,
        )
        logger.log_info(
            {"event": "payment_recorded_via_api", "receipt": receipt, "user_id": current_user.id}
        )
        return dashboard.payment_by_receipt(receipt)

    except HospitalError:
        raise
    except Exception as e:
        logger.log_error(
            {
                "event": "payment_error",
                "error": str(e),
                "traceback": traceback.format_exc(),
                "user_id": current_user.id,
            }
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while recording the payment",
        )


@router.post(
    "/combined",
    response_model=PaymentResponseSchema,
    status_code=status.HTTP_201_CREATED,
)
async def record_combined_payment(
    payment_data: CombinedPaymentCreateSchema,
    workflow: WorkflowService = Depends(get_workflow_service),
    dashboard: DashboardRepository = Depends(get_dashboard_repository),
    current_user: User = Depends(require_permission("payment.record")),
):
    """Settle only the selected services, plus the consultation fee when it is in the breakdown."""
    breakdown = (
        [line.model_dump() for line in payment_data.breakdown]
        if payment_data.breakdown is not None
        else None
    )
    receipt = await workflow.record_combined_payment(
        patient_id=payment_data.patient_id,
        selected_service_ids=payment_data.service_ids,
        total_amount=payment_data.total_amount,
        breakdown=breakdown,
    )
    return dashboard.payment_by_receipt(receipt)


@router.post("/combined/quote", response_model=CombinedQuoteResponseSchema)
async def quote_combined_payment(
    quote: CombinedQuoteRequestSchema,
    workflow: WorkflowService = Depends(get_workflow_service),
    current_user: User = Depends(require_permission("payment.record")),
):
    total, lines = workflow.build_combined_breakdown(
        quote.patient_id, quote.service_ids, quote.include_consultation
    )
    return {"patient_id": quote.patient_id, "total_amount": total, "breakdown": lines}


@router.get("", response_model=PaginatedResponse[PaymentResponseSchema])
async def list_payments(
    payment_type: Optional[PaymentType] = Query(None, alias="type"),
    pagination: PaginationParams = Depends(get_pagination_params),
    dashboard: DashboardRepository = Depends(get_dashboard_repository),
    current_user: User = Depends(require_permission("payment.read")),
):
    """Receipts, newest first."""
    return Paginator.paginate(
        dashboard.payments(payment_type),
        pagination,
        transform=PaymentResponseSchema.model_validate,
    )
