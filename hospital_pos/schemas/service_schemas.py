from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel

from hospital_pos.models.service_model import ServiceStatus, ServiceType


class ServiceResponseSchema(BaseModel):
    id: str
    patient_id: str
    service_type: ServiceType
    items: List[str]
    total_amount: Decimal
    status: ServiceStatus
    created_at: datetime
    completed_at: Optional[datetime] = None
    completed_by: Optional[str] = None
    dispensed_by: Optional[str] = None

    model_config = {"from_attributes": True}


class LabTestSchema(BaseModel):
    id: str
    name: str
    price: Decimal
    description: str = ""

    model_config = {"from_attributes": True}


class MedicationSchema(BaseModel):
    id: str
    name: str
    price: Decimal

    model_config = {"from_attributes": True}
