from decimal import Decimal
from typing import Dict, List

from pydantic import BaseModel

from hospital_pos.schemas.service_schemas import ServiceResponseSchema


class OverviewSchema(BaseModel):
    total_patients: int
    patients_by_status: Dict[str, int]
    payment_pending_patients: int
    total_payments: int
    total_collected: Decimal
    pending_services: int
    revenue_by_type: Dict[str, Decimal]


class RevenueSchema(BaseModel):
    type: str
    metric: str
    amount: Decimal


class TopItemSchema(BaseModel):
    item: str
    count: int


class PerformanceSchema(BaseModel):
    actor: str
    fulfilled: int
    revenue: Decimal


class DepartmentReportSchema(BaseModel):
    service_type: str
    total_services: int
    status_counts: Dict[str, int]
    payment_revenue: Decimal
    service_revenue: Decimal
    fulfilled_count: int
    average_per_fulfilled: Decimal
    top_items: List[TopItemSchema]
    performance: List[PerformanceSchema]
    recent: List[ServiceResponseSchema]
