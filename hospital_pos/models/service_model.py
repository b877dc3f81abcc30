from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from hospital_pos.core.utils import utcnow


class ServiceType(str, Enum):
    LAB = "lab"
    PHARMACY = "pharmacy"


class ServiceStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    COMPLETED = "completed"
    DISPENSED = "dispensed"


# Terminal status reachable from ``paid`` for each service type.
TERMINAL_STATUS = {
    ServiceType.LAB: ServiceStatus.COMPLETED,
    ServiceType.PHARMACY: ServiceStatus.DISPENSED,
}

BILLABLE_STATUSES = frozenset(
    {ServiceStatus.PAID, ServiceStatus.COMPLETED, ServiceStatus.DISPENSED}
)


class PatientService(BaseModel):
    """
    A lab-test or prescription bundle spawned by a diagnosis.

    ``total_amount`` is fixed when the service is created and is never
    recomputed from the catalog.
    """

    id: str
    patient_id: str
    service_type: ServiceType
    items: List[str]
    total_amount: Decimal = Field(ge=0)
    status: ServiceStatus = ServiceStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    completed_by: Optional[str] = None
    dispensed_by: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.status in (ServiceStatus.PENDING, ServiceStatus.PAID)

    @property
    def fulfilled_by(self) -> Optional[str]:
        return self.dispensed_by or self.completed_by
