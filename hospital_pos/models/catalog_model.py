from decimal import Decimal

from pydantic import BaseModel, Field


class LabTest(BaseModel):
    id: str
    name: str
    price: Decimal = Field(ge=0)
    description: str = ""

    model_config = {"frozen": True}


class Medication(BaseModel):
    id: str
    name: str
    price: Decimal = Field(ge=0)

    model_config = {"frozen": True}
