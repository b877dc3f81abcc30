from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request

from hospital_pos.api.dependencies import get_dashboard_repository
from hospital_pos.core.permission_checker import ensure_permission, require_permission
from hospital_pos.core.security import get_current_user
from hospital_pos.core.utils import logger
from hospital_pos.models.patient_model import PaymentType
from hospital_pos.models.service_model import ServiceType
from hospital_pos.models.user_model import User
from hospital_pos.repositories.dashboard_repo import REVENUE_METRICS, DashboardRepository
from hospital_pos.schemas.dashboard_schemas import (
    DepartmentReportSchema,
    OverviewSchema,
    RevenueSchema,
    TopItemSchema,
)


router = APIRouter(prefix="/dashboard", tags=["dashboard"])

DEPARTMENT_PERMISSIONS = {
    ServiceType.LAB: "report.lab",
    ServiceType.PHARMACY: "report.pharmacy",
}


# ============= Front Desk =============
@router.get("/overview", response_model=OverviewSchema)
async def get_dashboard_overview(
    dashboard: DashboardRepository = Depends(get_dashboard_repository),
    current_user: User = Depends(require_permission("report.overview")),
):
    """
    Front-desk summary.

    Returns:
    - Patient counts, in total and per status
    - Payment count and cash collected
    - Pending services awaiting payment
    - Collected revenue per payment type
    """
    return dashboard.overview()


@router.get("/revenue", response_model=RevenueSchema)
async def get_revenue(
    revenue_type: PaymentType = Query(..., alias="type"),
    metric: str = Query("payments", pattern=f"^({'|'.join(REVENUE_METRICS)})$"),
    dashboard: DashboardRepository = Depends(get_dashboard_repository),
    current_user: User = Depends(
        require_permission("report.overview", "report.lab", "report.pharmacy")
    ),
):
    """
    Revenue for one payment type.

    ``metric=payments`` (default) is cash collected, with combined payments
    split by their breakdown lines. ``metric=services`` is the total of lab
    or pharmacy services that reached paid or beyond.
    """
    amount = dashboard.revenue_by_type(revenue_type.value, metric=metric)
    return RevenueSchema(type=revenue_type.value, metric=metric, amount=amount)


# ============= Departments =============
@router.get("/top-items/{service_type}", response_model=List[TopItemSchema])
async def get_top_items(
    request: Request,
    service_type: ServiceType,
    limit: int = Query(5, ge=1, le=50),
    dashboard: DashboardRepository = Depends(get_dashboard_repository),
    current_user: User = Depends(get_current_user),
):
    ensure_permission(current_user, DEPARTMENT_PERMISSIONS[service_type], request=request)
    return dashboard.top_items(service_type, limit)


@router.get("/departments/{service_type}", response_model=DepartmentReportSchema)
async def get_department_report(
    request: Request,
    service_type: ServiceType,
    start: Optional[datetime] = Query(None, description="Fulfilled on or after"),
    end: Optional[datetime] = Query(None, description="Fulfilled on or before"),
    dashboard: DashboardRepository = Depends(get_dashboard_repository),
    current_user: User = Depends(get_current_user),
):
    """Head-of-department report; performance comes from who completed or dispensed each service."""
    ensure_permission(current_user, DEPARTMENT_PERMISSIONS[service_type], request=request)
    report = dashboard.department_report(service_type, start=start, end=end)

    logger.log_info(
        {
            "event": "department_report_fetched",
            "service_type": service_type.value,
            "user_id": current_user.id,
        }
    )
    return report
