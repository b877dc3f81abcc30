from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from hospital_pos.models.patient_model import Gender, PatientStatus, PaymentType


# ============= Helpers =============
def _not_blank(v: str, label: str) -> str:
    if not v or not v.strip():
        raise ValueError(f"{label} cannot be empty")
    return v.strip()


# ============= Requests =============
class PatientBaseSchema(BaseModel):
    """Fields every registration form collects."""

    name: str
    age: int = Field(ge=0, le=150)
    gender: Gender
    contact: str

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = _not_blank(v, "Name")
        if len(v) > 255:
            raise ValueError("Name must be at most 255 characters long")
        return v

    @field_validator("contact")
    @classmethod
    def validate_contact(cls, v: str) -> str:
        return _not_blank(v, "Contact")


class PatientCreateSchema(PatientBaseSchema):
    initial_status: PatientStatus = PatientStatus.REGISTERED


class PatientRegisterAndPaySchema(PatientBaseSchema):
    """Register a walk-in and collect the first payment in one step."""

    payment_type: PaymentType = PaymentType.CONSULTATION
    amount: Decimal = Field(gt=0)
    description: Optional[str] = None


class VisitCreateSchema(BaseModel):
    reason: str

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v: str) -> str:
        return _not_blank(v, "Reason")


# ============= Responses =============
class VisitResponseSchema(BaseModel):
    id: str
    patient_id: str
    date: datetime
    reason: str
    referred_services: List[str]
    total_amount: Decimal

    model_config = {"from_attributes": True}


class PatientResponseSchema(BaseModel):
    id: str
    name: str
    age: int
    gender: Gender
    contact: str
    registered_at: datetime
    status: PatientStatus
    is_returning: bool
    visit_history: List[VisitResponseSchema] = []

    model_config = {"from_attributes": True}


class RegistrationResponseSchema(BaseModel):
    patient: PatientResponseSchema
    receipt_number: Optional[str] = None


class PatientBalanceSchema(BaseModel):
    patient_id: str
    unpaid_balance: Decimal
    pending_services: int
