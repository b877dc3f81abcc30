from typing import List

from fastapi import APIRouter, Depends

from hospital_pos.api.dependencies import get_catalog
from hospital_pos.core.permission_checker import require_permission
from hospital_pos.models.user_model import User
from hospital_pos.repositories.catalog_repo import Catalog
from hospital_pos.schemas.service_schemas import LabTestSchema, MedicationSchema


router = APIRouter(prefix="/catalog", tags=["catalog"])


@router.get("/lab-tests", response_model=List[LabTestSchema])
async def list_lab_tests(
    catalog: Catalog = Depends(get_catalog),
    current_user: User = Depends(require_permission("catalog.read")),
):
    return catalog.lab_tests


@router.get("/medications", response_model=List[MedicationSchema])
async def list_medications(
    catalog: Catalog = Depends(get_catalog),
    current_user: User = Depends(require_permission("catalog.read")),
):
    return catalog.medications
