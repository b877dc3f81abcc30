"""
Shared test fixtures and configuration for pytest.
"""
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, List, Sequence

import pytest
from httpx import ASGITransport, AsyncClient

from hospital_pos.config.config import PersistenceMode, Settings
from hospital_pos.core.exceptions import CollaboratorError
from hospital_pos.main import create_app
from hospital_pos.repositories.catalog_repo import Catalog
from hospital_pos.repositories.dashboard_repo import DashboardRepository
from hospital_pos.repositories.record_store import RecordStore
from hospital_pos.services.record_gateway import RecordChange, RecordGateway
from hospital_pos.services.workflow_service import WorkflowService


class FakeClock:
    """Deterministic clock that advances one second per reading."""

    def __init__(self, start: datetime = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now += timedelta(seconds=1)
        return current


class RecordingGateway(RecordGateway):
    """Gateway double: remembers accepted batches and can be told to fail."""

    def __init__(self):
        self.batches: List[Sequence[RecordChange]] = []
        self.fail_next = False

    async def apply(self, changes: Sequence[RecordChange]) -> None:
        if self.fail_next:
            self.fail_next = False
            raise CollaboratorError("Hosted backend timed out", code="COLLABORATOR_TIMEOUT")
        self.batches.append(list(changes))

    async def fetch_all(self, kind):
        return []

    async def fetch_catalog(self):
        return None


# ============= Engine fixtures =============
@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> RecordStore:
    return RecordStore(receipt_start=1000, clock=clock)


@pytest.fixture
def catalog() -> Catalog:
    return Catalog()


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def workflow(store: RecordStore, catalog: Catalog, gateway: RecordingGateway, clock: FakeClock) -> WorkflowService:
    return WorkflowService(store, catalog, gateway, clock=clock)


@pytest.fixture
def dashboard(store: RecordStore, catalog: Catalog) -> DashboardRepository:
    return DashboardRepository(store, catalog)


@pytest.fixture
async def patient_id(workflow: WorkflowService) -> str:
    """A registered patient who has paid for consultation."""
    pid = await workflow.register_patient("Jane Doe", 30, "female", "555-0100")
    await workflow.record_payment(pid, "consultation", 2000)
    return pid


# ============= API fixtures =============
@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        ENVIRONMENT="test",
        PERSISTENCE_MODE=PersistenceMode.OFFLINE,
        DEMO_PASSWORD="demo123",
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def app(test_settings: Settings):
    return create_app(test_settings)


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def login(client: AsyncClient):
    """Return a coroutine that signs a demo user in and yields auth headers."""

    async def _login(username: str) -> dict:
        response = await client.post(
            "/api/v1/auth/sign-in", json={"username": username, "password": "demo123"}
        )
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['access_token']}"}

    return _login


@pytest.fixture
async def cashier_headers(login) -> dict:
    return await login("cashier")


@pytest.fixture
async def doctor_headers(login) -> dict:
    return await login("doctor")


@pytest.fixture
async def lab_headers(login) -> dict:
    return await login("lab")


@pytest.fixture
async def pharmacy_headers(login) -> dict:
    return await login("pharmacy")


@pytest.fixture
async def admin_headers(login) -> dict:
    return await login("admin")


# Helper functions for tests
def assert_error_response(response, status_code: int, code: str = None):
    assert response.status_code == status_code, response.text
    body = response.json()
    assert {"type", "code", "message"} <= set(body)
    if code:
        assert body["code"] == code


def assert_paginated_response(data: dict):
    assert "items" in data
    assert "page_info" in data
    assert "total_items" in data["page_info"]
    assert "total_pages" in data["page_info"]
