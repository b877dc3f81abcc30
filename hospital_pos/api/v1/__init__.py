from fastapi import APIRouter
from .auth.auth_routes import router as auth_router
from .patient.patient_routes import router as patient_router
from .payment.payment_routes import router as payment_router
from .diagnosis.diagnosis_routes import router as diagnosis_router
from .fulfilment.service_routes import router as service_router
from .catalog.catalog_routes import router as catalog_router
from .dashboard.dashboard import router as dashboard_router
from .admin.user_admin_routes import router as admin_router

router = APIRouter()


router.include_router(auth_router)
router.include_router(patient_router)
router.include_router(payment_router)
router.include_router(diagnosis_router)
router.include_router(service_router)
router.include_router(catalog_router)
router.include_router(dashboard_router)
router.include_router(admin_router)
