from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from hospital_pos.core.utils import utcnow


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class PatientStatus(str, Enum):
    """
    Coarse summary of where a patient is in the current visit.

    Informational ordering: payment_pending -> registered -> paid_consultation
    -> diagnosed -> lab_referred | pharmacy_referred -> completed. A returning
    patient re-enters at ``registered`` when a new visit starts.
    """
    PAYMENT_PENDING = "payment_pending"
    REGISTERED = "registered"
    PAID_CONSULTATION = "paid_consultation"
    DIAGNOSED = "diagnosed"
    LAB_REFERRED = "lab_referred"
    PHARMACY_REFERRED = "pharmacy_referred"
    COMPLETED = "completed"


class PaymentType(str, Enum):
    CONSULTATION = "consultation"
    LAB = "lab"
    PHARMACY = "pharmacy"
    COMBINED = "combined"


class BreakdownKind(str, Enum):
    CONSULTATION = "consultation"
    LAB = "lab"
    PHARMACY = "pharmacy"


class Visit(BaseModel):
    """A returning-patient visit. Services and payments accrue to the latest one."""

    id: str
    patient_id: str
    date: datetime = Field(default_factory=utcnow)
    reason: str
    referred_services: List[str] = Field(default_factory=list)
    total_amount: Decimal = Decimal("0")

    @field_validator("referred_services", mode="before")
    @classmethod
    def null_as_empty(cls, v):
        return [] if v is None else v


class Patient(BaseModel):
    id: str
    name: str
    age: int = Field(ge=0, le=150)
    gender: Gender
    contact: str
    registered_at: datetime = Field(default_factory=utcnow)
    status: PatientStatus = PatientStatus.REGISTERED
    is_returning: bool = False
    visit_history: List[Visit] = Field(default_factory=list)

    @field_validator("name", "contact")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Field cannot be empty")
        return v.strip()

    @property
    def current_visit(self) -> Optional[Visit]:
        return self.visit_history[-1] if self.visit_history else None


class BreakdownLine(BaseModel):
    """One line of a combined payment receipt."""

    service_label: str
    amount: Decimal = Field(ge=0)
    items: List[str] = Field(default_factory=list)
    kind: BreakdownKind
    service_id: Optional[str] = None


class Payment(BaseModel):
    """
    Payments are append-only; nothing edits or deletes them.

    Receipt numbers are not zero-padded, so RCP10000 sorts before RCP9999 as
    text. Order payments by ``receipt_sequence``.
    """

    id: str
    patient_id: str
    type: PaymentType
    amount: Decimal = Field(ge=0)
    description: str
    paid_at: datetime = Field(default_factory=utcnow)
    receipt_number: str
    breakdown: Optional[List[BreakdownLine]] = None

    model_config = {"frozen": True}

    @property
    def receipt_sequence(self) -> int:
        return int(self.receipt_number.removeprefix("RCP"))


class PrescriptionLine(BaseModel):
    drug_name: str
    dosage: str
    quantity: int = Field(gt=0)
    instructions: str = ""
    unit_price: Decimal = Field(ge=0)

    @field_validator("drug_name", "dosage")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Field cannot be empty")
        return v.strip()

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class Diagnosis(BaseModel):
    id: str
    patient_id: str
    doctor_id: str
    diagnosis: str
    lab_tests: List[str] = Field(default_factory=list)
    prescriptions: List[PrescriptionLine] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)

    model_config = {"frozen": True}

    @field_validator("lab_tests", "prescriptions", mode="before")
    @classmethod
    def null_as_empty(cls, v):
        return [] if v is None else v

    @field_validator("diagnosis")
    @classmethod
    def validate_diagnosis(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Diagnosis text cannot be empty")
        return v.strip()
