from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class PrescriptionLineSchema(BaseModel):
    """``unit_price`` is copied from the medication catalog when omitted."""

    drug_name: str
    dosage: str
    quantity: int = Field(gt=0)
    instructions: str = ""
    unit_price: Optional[Decimal] = Field(default=None, ge=0)

    model_config = {"from_attributes": True}

    @field_validator("drug_name", "dosage")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Field cannot be empty")
        return v.strip()


class DiagnosisCreateSchema(BaseModel):
    patient_id: str
    diagnosis: str
    lab_tests: List[str] = []
    prescriptions: List[PrescriptionLineSchema] = []

    @field_validator("diagnosis")
    @classmethod
    def validate_diagnosis(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Diagnosis cannot be empty")
        return v.strip()


class DiagnosisCreatedSchema(BaseModel):
    diagnosis_id: str
    lab_service_id: Optional[str] = None
    pharmacy_service_id: Optional[str] = None


class DiagnosisResponseSchema(BaseModel):
    id: str
    patient_id: str
    doctor_id: str
    diagnosis: str
    lab_tests: List[str]
    prescriptions: List[PrescriptionLineSchema]
    created_at: datetime

    model_config = {"from_attributes": True}
