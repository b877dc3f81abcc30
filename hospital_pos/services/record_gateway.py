"""
Record Gateway

Write-through bridge between the workflow engine and the hosted record
backend. The engine hands over the complete list of changes an operation
wants to make; only after the gateway accepts them does the engine touch
the in-memory store.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import httpx
from pydantic import BaseModel
from pydantic_core import to_jsonable_python

from hospital_pos.core.exceptions import CollaboratorError
from hospital_pos.core.utils import LoggerMixin
from hospital_pos.models.catalog_model import LabTest, Medication
from hospital_pos.models.patient_model import Visit
from hospital_pos.repositories.record_store import EntityKind


VISITS_TABLE = "visits"

TABLES: Dict[EntityKind, str] = {
    EntityKind.PATIENTS: "patients",
    EntityKind.PAYMENTS: "payments",
    EntityKind.DIAGNOSES: "diagnoses",
    EntityKind.SERVICES: "patient_services",
}

# Columns the hosted tables actually have; anything else stays local.
HOSTED_COLUMNS: Dict[str, frozenset] = {
    "patients": frozenset(
        {"id", "name", "age", "gender", "contact", "registered_at", "status", "is_returning"}
    ),
    "payments": frozenset(
        {"id", "patient_id", "type", "amount", "description", "paid_at",
         "receipt_number", "breakdown"}
    ),
    "diagnoses": frozenset(
        {"id", "patient_id", "doctor_id", "diagnosis", "lab_tests", "prescriptions",
         "created_at"}
    ),
    "patient_services": frozenset(
        {"id", "patient_id", "service_type", "items", "total_amount", "status",
         "created_at", "completed_at", "dispensed_by"}
    ),
    VISITS_TABLE: frozenset(
        {"id", "patient_id", "date", "reason", "referred_services", "total_amount"}
    ),
}


class ChangeAction(str, Enum):
    INSERT = "insert"
    UPDATE = "update"


@dataclass(frozen=True)
class RecordChange:
    table: str
    action: ChangeAction
    record_id: str
    values: Dict[str, Any] = field(default_factory=dict)

    def hosted_values(self) -> Dict[str, Any]:
        columns = HOSTED_COLUMNS[self.table]
        return {
            key: to_jsonable_python(value)
            for key, value in self.values.items()
            if key in columns
        }


def insert_change(kind: EntityKind, record: BaseModel) -> RecordChange:
    return RecordChange(
        table=TABLES[kind],
        action=ChangeAction.INSERT,
        record_id=record.id,
        values=record.model_dump(),
    )


def update_change(kind: EntityKind, record_id: str, **values: Any) -> RecordChange:
    return RecordChange(
        table=TABLES[kind],
        action=ChangeAction.UPDATE,
        record_id=record_id,
        values=values,
    )


def visit_change(visit: Visit, action: ChangeAction) -> RecordChange:
    return RecordChange(
        table=VISITS_TABLE,
        action=action,
        record_id=visit.id,
        values=visit.model_dump(),
    )


class RecordGateway(LoggerMixin):
    """Interface for the persistence collaborator."""

    async def apply(self, changes: Sequence[RecordChange]) -> None:
        raise NotImplementedError

    async def fetch_all(self, kind: EntityKind) -> List[Dict[str, Any]]:
        raise NotImplementedError

    async def fetch_catalog(self) -> Optional[tuple]:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


class OfflineRecordGateway(RecordGateway):
    """Demo mode: the in-memory store is the only copy."""

    async def apply(self, changes: Sequence[RecordChange]) -> None:
        self.log_debug({"event": "offline_changes_skipped", "count": len(changes)})

    async def fetch_all(self, kind: EntityKind) -> List[Dict[str, Any]]:
        return []

    async def fetch_catalog(self) -> Optional[tuple]:
        return None


class HostedRecordGateway(RecordGateway):
    """
    PostgREST-style client for the hosted tables.

    Inserts are ``POST /rest/v1/{table}`` and updates are
    ``PATCH /rest/v1/{table}?id=eq.{id}``. Changes are sent in order and
    the first failure stops the batch with ``CollaboratorError``.

    The batch is not atomic. Changes sent before the failure stay committed
    on the backend while the local store keeps its previous state, so the
    two agree again only after the next hydration. Ids drawn for the failed
    write are not reused, so a retry cannot collide with those rows.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
        )

    async def apply(self, changes: Sequence[RecordChange]) -> None:
        for change in changes:
            if change.action == ChangeAction.INSERT:
                await self._request(
                    "POST",
                    f"/rest/v1/{change.table}",
                    json=change.hosted_values(),
                    headers={"Prefer": "return=minimal"},
                )
            else:
                await self._request(
                    "PATCH",
                    f"/rest/v1/{change.table}",
                    params={"id": f"eq.{change.record_id}"},
                    json=change.hosted_values(),
                    headers={"Prefer": "return=minimal"},
                )

        self.log_info({"event": "hosted_changes_applied", "count": len(changes)})

    async def fetch_all(self, kind: EntityKind) -> List[Dict[str, Any]]:
        table = TABLES[kind]
        order = {
            EntityKind.PATIENTS: "registered_at.asc",
            EntityKind.PAYMENTS: "paid_at.asc",
        }.get(kind, "created_at.asc")
        rows = await self._select(table, order=order)

        if kind == EntityKind.PATIENTS:
            visits: Dict[str, List[Dict[str, Any]]] = {}
            for visit in await self._select(VISITS_TABLE, order="date.asc"):
                visits.setdefault(visit["patient_id"], []).append(visit)
            for row in rows:
                row["visit_history"] = visits.get(row["id"], [])
        return rows

    async def fetch_catalog(self) -> Optional[tuple]:
        lab_rows = await self._select("lab_tests", order="name.asc", is_active="eq.true")
        medication_rows = await self._select("medications", order="name.asc", is_active="eq.true")
        lab_tests = [
            LabTest(
                id=str(row["id"]),
                name=row["name"],
                price=row["price"],
                description=row.get("description") or "",
            )
            for row in lab_rows
        ]
        medications = [
            Medication(id=str(row["id"]), name=row["name"], price=row["price"])
            for row in medication_rows
        ]
        return lab_tests, medications

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _select(self, table: str, order: str, **filters: str) -> List[Dict[str, Any]]:
        response = await self._request(
            "GET",
            f"/rest/v1/{table}",
            params={"select": "*", "order": order, **filters},
        )
        return response.json()

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            self.log_error({"event": "hosted_request_timeout", "method": method, "url": url})
            raise CollaboratorError(
                "Hosted backend timed out",
                code="COLLABORATOR_TIMEOUT",
                detail={"method": method, "url": url},
            ) from e
        except httpx.HTTPError as e:
            self.log_error(
                {"event": "hosted_request_failed", "method": method, "url": url, "error": str(e)}
            )
            raise CollaboratorError(
                "Hosted backend unreachable",
                code="COLLABORATOR_UNREACHABLE",
                detail={"method": method, "url": url},
            ) from e

        if response.is_error:
            self.log_error(
                {
                    "event": "hosted_request_rejected",
                    "method": method,
                    "url": url,
                    "status_code": response.status_code,
                }
            )
            raise CollaboratorError(
                "Hosted backend rejected the request",
                code="COLLABORATOR_REJECTED",
                detail={
                    "method": method,
                    "url": url,
                    "status_code": response.status_code,
                    "body": response.text[:500],
                },
            )
        return response
