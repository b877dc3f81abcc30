from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from hospital_pos.models.patient_model import BreakdownKind, PaymentType


class PaymentCreateSchema(BaseModel):
    patient_id: str
    type: PaymentType
    amount: Decimal = Field(gt=0)
    description: Optional[str] = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: PaymentType) -> PaymentType:
        if v == PaymentType.COMBINED:
            raise ValueError("Use /payments/combined for combined payments")
        return v


class BreakdownLineSchema(BaseModel):
    service_label: str
    amount: Decimal = Field(ge=0)
    items: List[str] = []
    kind: BreakdownKind
    service_id: Optional[str] = None

    model_config = {"from_attributes": True}


class CombinedPaymentCreateSchema(BaseModel):
    """
    Settle the selected pending services (and optionally the consultation
    fee) with one receipt. When ``breakdown`` is omitted it is built from
    the selected services.
    """

    patient_id: str
    service_ids: List[str] = []
    total_amount: Decimal = Field(gt=0)
    breakdown: Optional[List[BreakdownLineSchema]] = None


class CombinedQuoteRequestSchema(BaseModel):
    patient_id: str
    service_ids: List[str] = []
    include_consultation: bool = False


class CombinedQuoteResponseSchema(BaseModel):
    patient_id: str
    total_amount: Decimal
    breakdown: List[BreakdownLineSchema]


class PaymentResponseSchema(BaseModel):
    id: str
    patient_id: str
    type: PaymentType
    amount: Decimal
    description: str
    paid_at: datetime
    receipt_number: str
    breakdown: Optional[List[BreakdownLineSchema]] = None

    model_config = {"from_attributes": True}
