import logging
import traceback
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hospital_pos.api.v1 import router as api_router
from hospital_pos.config.config import Settings, get_settings
from hospital_pos.core.exceptions import HospitalError
from hospital_pos.core.security import DemoIdentityProvider, HostedIdentityProvider
from hospital_pos.core.utils import configure_logging
from hospital_pos.repositories.catalog_repo import Catalog
from hospital_pos.repositories.dashboard_repo import DashboardRepository
from hospital_pos.repositories.record_store import EntityKind, RecordStore
from hospital_pos.services.record_gateway import HostedRecordGateway, OfflineRecordGateway
from hospital_pos.services.user_service import HostedUserProvisioning, OfflineUserProvisioning
from hospital_pos.services.workflow_service import WorkflowService

logger = logging.getLogger("uvicorn")


# Patients first so the other collections pass the reference check.
HYDRATION_ORDER = (
    EntityKind.PATIENTS,
    EntityKind.SERVICES,
    EntityKind.DIAGNOSES,
    EntityKind.PAYMENTS,
)


async def hydrate(app: FastAPI) -> None:
    """Load the catalog and existing records from the hosted backend."""
    state = app.state
    catalog_rows = await state.gateway.fetch_catalog()
    if catalog_rows:
        lab_tests, medications = catalog_rows
        catalog = Catalog(lab_tests=lab_tests, medications=medications)
        state.workflow.catalog = catalog
        state.dashboard.catalog = catalog
        logger.info(f"Catalog loaded: {len(lab_tests)} lab tests, {len(medications)} medications")

    for kind in HYDRATION_ORDER:
        count = state.store.load(kind, await state.gateway.fetch_all(kind))
        logger.info(f"Loaded {count} {kind.value}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup & Shutdown lifespan events."""
    settings: Settings = app.state.settings
    # -------- STARTUP --------
    logger.info("Starting Hospital POS...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Persistence mode: {settings.PERSISTENCE_MODE.value}")

    if settings.is_hosted:
        try:
            await hydrate(app)
        except HospitalError as e:
            logger.error(f"Hydration from hosted backend failed: {e.message}")
            logger.error(traceback.format_exc())
            raise

    logger.info("Application startup complete")

    yield

    # -------- SHUTDOWN --------
    logger.info("Shutting down application...")
    for client in (app.state.gateway, app.state.identity, app.state.provisioning):
        await client.aclose()
    logger.info("Shutdown complete")


def build_state(app: FastAPI, settings: Settings) -> None:
    """Wire the store, engine, query layer and collaborators onto ``app.state``."""
    store = RecordStore(receipt_start=settings.RECEIPT_START)
    catalog = Catalog()

    if settings.is_hosted:
        if not settings.HOSTED_BACKEND_URL or not settings.HOSTED_BACKEND_ANON_KEY:
            raise RuntimeError(
                "Hosted mode needs HOSPITAL_POS_HOSTED_BACKEND_URL and "
                "HOSPITAL_POS_HOSTED_BACKEND_ANON_KEY"
            )
        hosted = {
            "base_url": settings.HOSTED_BACKEND_URL,
            "api_key": settings.HOSTED_BACKEND_ANON_KEY,
            "timeout": settings.HOSTED_TIMEOUT_SECONDS,
        }
        gateway = HostedRecordGateway(**hosted)
        identity = HostedIdentityProvider(**hosted)
        provisioning = HostedUserProvisioning(**hosted)
    else:
        gateway = OfflineRecordGateway()
        identity = DemoIdentityProvider(password=settings.DEMO_PASSWORD)
        provisioning = OfflineUserProvisioning(identity)

    app.state.settings = settings
    app.state.store = store
    app.state.gateway = gateway
    app.state.identity = identity
    app.state.provisioning = provisioning
    app.state.workflow = WorkflowService(
        store, catalog, gateway, consultation_fee=settings.CONSULTATION_FEE
    )
    app.state.dashboard = DashboardRepository(store, catalog)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        lifespan=lifespan,
    )
    build_state(app, settings)

    # ---------------------- EXCEPTION HANDLERS ----------------------
    @app.exception_handler(HospitalError)
    async def hospital_error_handler(request: Request, exc: HospitalError):
        log = logger.error if exc.http_status >= 500 else logger.info
        log(f"{exc.type} {exc.code} on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        logger.error(f"Unhandled Error: {trace}")

        return JSONResponse(
            status_code=500,
            content={
                "type": "internal_error",
                "code": "INTERNAL_ERROR",
                "message": "Internal server error",
                "detail": (
                    str(exc) if settings.ENVIRONMENT != "production" else "Server error"
                ),
            },
        )

    # ---------------------- CORS ----------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---------------------- ROUTES ----------------------
    app.include_router(api_router, prefix=settings.API_PREFIX)

    # ---------------------- HEALTH CHECK ----------------------
    @app.get("/health")
    async def health_check():
        store = app.state.store
        return {
            "status": "healthy",
            "environment": settings.ENVIRONMENT,
            "version": settings.VERSION,
            "persistence_mode": settings.PERSISTENCE_MODE.value,
            "records": {kind.value: store.count(kind) for kind in EntityKind},
        }

    return app


app = create_app()
