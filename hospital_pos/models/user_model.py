from enum import Enum
from typing import Optional

from pydantic import BaseModel


class Role(str, Enum):
    """Closed role vocabulary shared with the user-provisioning function."""
    CASHIER = "cashier"
    DOCTOR = "doctor"
    LAB = "lab"
    PHARMACY = "pharmacy"
    ADMIN = "admin"
    HOD_LAB = "hod_lab"
    HOD_PHARMACY = "hod_pharmacy"


class User(BaseModel):
    """The authenticated actor as reported by the identity provider."""

    id: str
    username: str
    name: str
    role: Role
    department: Optional[str] = None
