import re
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple, Type, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from hospital_pos.core.exceptions import NotFoundError, ValidationError
from hospital_pos.core.utils import utcnow
from hospital_pos.models.patient_model import Diagnosis, Patient, Payment
from hospital_pos.models.service_model import PatientService


class EntityKind(str, Enum):
    PATIENTS = "patients"
    PAYMENTS = "payments"
    DIAGNOSES = "diagnoses"
    SERVICES = "services"


ENTITY_MODELS: Dict[EntityKind, Type[BaseModel]] = {
    EntityKind.PATIENTS: Patient,
    EntityKind.PAYMENTS: Payment,
    EntityKind.DIAGNOSES: Diagnosis,
    EntityKind.SERVICES: PatientService,
}

ENTITY_LABELS = {
    EntityKind.PATIENTS: "patient",
    EntityKind.PAYMENTS: "payment",
    EntityKind.DIAGNOSES: "diagnosis",
    EntityKind.SERVICES: "service",
}

# Kinds whose records carry a mutable ``status`` field.
STATUS_KINDS = frozenset({EntityKind.PATIENTS, EntityKind.SERVICES})

# Sequential ids: prefix + zero padded counter.
SEQUENTIAL_PREFIXES = {
    EntityKind.PATIENTS: "P",
    EntityKind.SERVICES: "SVC",
}

# Timestamp ids: prefix + epoch milliseconds, bumped to stay strictly increasing.
TIMESTAMP_PREFIXES = {
    EntityKind.PAYMENTS: "PAY",
    EntityKind.DIAGNOSES: "DIAG",
}

RECEIPT_PREFIX = "RCP"
VISIT_PREFIX = "V"

Record = BaseModel


class RecordStore:
    """
    In-memory repository of patients, payments, diagnoses and services.

    Each collection is keyed by id and keeps insertion order. Records are
    pydantic models; updates replace the stored model in place so order is
    preserved. There is no delete.
    """

    def __init__(
        self,
        receipt_start: int = 1000,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._clock = clock
        self._collections: Dict[EntityKind, Dict[str, Record]] = {
            kind: {} for kind in EntityKind
        }
        self._sequences: Dict[EntityKind, int] = {kind: 0 for kind in SEQUENTIAL_PREFIXES}
        self._last_stamps: Dict[EntityKind, int] = {kind: 0 for kind in TIMESTAMP_PREFIXES}
        self._next_receipt = receipt_start
        self._visit_sequence = 0

    # ============= Identifiers =============
    def allocate_id(self, kind: EntityKind) -> str:
        """Consume and return the next identifier for ``kind``."""
        kind = EntityKind(kind)
        if kind in SEQUENTIAL_PREFIXES:
            self._sequences[kind] += 1
            return f"{SEQUENTIAL_PREFIXES[kind]}{self._sequences[kind]:04d}"

        stamp = int(self._clock().timestamp() * 1000)
        stamp = max(stamp, self._last_stamps[kind] + 1)
        self._last_stamps[kind] = stamp
        return f"{TIMESTAMP_PREFIXES[kind]}{stamp}"

    def next_receipt_number(self) -> str:
        receipt = f"{RECEIPT_PREFIX}{self._next_receipt}"
        self._next_receipt += 1
        return receipt

    def allocate_visit_id(self) -> str:
        self._visit_sequence += 1
        return f"{VISIT_PREFIX}{self._visit_sequence:04d}"

    # ============= Writes =============
    def insert(
        self,
        kind: EntityKind,
        data: Union[Mapping[str, Any], BaseModel],
        record_id: Optional[str] = None,
    ) -> str:
        """Validate ``data`` as a ``kind`` record, store it and return its id."""
        kind = EntityKind(kind)
        payload = data.model_dump() if isinstance(data, BaseModel) else dict(data)

        if record_id is None:
            record_id = self.allocate_id(kind)
        if record_id in self._collections[kind]:
            raise ValidationError(
                f"Duplicate {kind.value} id {record_id}",
                code="DUPLICATE_ID",
                detail={"kind": kind.value, "id": record_id},
            )
        payload["id"] = record_id

        record = self._validate(kind, payload)
        self._check_patient_reference(kind, record)
        self._collections[kind][record_id] = record
        return record_id

    def update_status(self, kind: EntityKind, record_id: str, new_status: Any) -> Record:
        kind = EntityKind(kind)
        if kind not in STATUS_KINDS:
            raise ValidationError(
                f"{kind.value} records have no status",
                code="NO_STATUS_FIELD",
                detail={"kind": kind.value},
            )
        return self.update(kind, record_id, status=new_status)

    def update(self, kind: EntityKind, record_id: str, **fields: Any) -> Record:
        """Replace mutable fields of a patient or service, keeping its position."""
        kind = EntityKind(kind)
        if kind not in STATUS_KINDS:
            raise ValidationError(
                f"{kind.value} records are immutable",
                code="IMMUTABLE_RECORD",
                detail={"kind": kind.value, "id": record_id},
            )
        if "id" in fields or "patient_id" in fields:
            raise ValidationError(
                "Identifiers cannot be changed",
                code="IMMUTABLE_FIELD",
                detail={"kind": kind.value, "id": record_id},
            )

        current = self.get(kind, record_id)
        record = self._validate(kind, {**current.model_dump(), **fields})
        self._collections[kind][record_id] = record
        return record

    def load(self, kind: EntityKind, records: Iterable[Union[Mapping[str, Any], BaseModel]]) -> int:
        """Hydrate a collection with existing records and move counters past them."""
        kind = EntityKind(kind)
        count = 0
        for data in records:
            payload = data.model_dump() if isinstance(data, BaseModel) else dict(data)
            if "id" not in payload:
                raise ValidationError(
                    f"Loaded {kind.value} record has no id",
                    code="MISSING_ID",
                    detail={"kind": kind.value},
                )
            self.insert(kind, payload, record_id=str(payload["id"]))
            self._advance_counters(kind, self._collections[kind][str(payload["id"])])
            count += 1
        return count

    # ============= Reads =============
    def get(self, kind: EntityKind, record_id: str) -> Record:
        kind = EntityKind(kind)
        try:
            return self._collections[kind][record_id]
        except KeyError:
            label = ENTITY_LABELS[kind]
            raise NotFoundError(
                f"{label.capitalize()} {record_id} not found",
                code=f"{label.upper()}_NOT_FOUND",
                detail={"kind": kind.value, "id": record_id},
            ) from None

    def all(self, kind: EntityKind) -> Tuple[Record, ...]:
        """Snapshot of the collection in insertion order; later writes are not seen."""
        return tuple(self._collections[EntityKind(kind)].values())

    def count(self, kind: EntityKind) -> int:
        return len(self._collections[EntityKind(kind)])

    # ============= Internals =============
    def _validate(self, kind: EntityKind, payload: Dict[str, Any]) -> Record:
        try:
            return ENTITY_MODELS[kind].model_validate(payload)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid {kind.value} record",
                detail={
                    "errors": e.errors(
                        include_url=False, include_context=False, include_input=False
                    )
                },
            ) from e

    def _check_patient_reference(self, kind: EntityKind, record: Record) -> None:
        if kind == EntityKind.PATIENTS:
            return
        if record.patient_id not in self._collections[EntityKind.PATIENTS]:
            raise ValidationError(
                f"{kind.value} record references unknown patient {record.patient_id}",
                code="UNKNOWN_PATIENT",
                detail={"kind": kind.value, "patient_id": record.patient_id},
            )

    def _advance_counters(self, kind: EntityKind, record: Record) -> None:
        if kind in SEQUENTIAL_PREFIXES:
            match = re.fullmatch(rf"{SEQUENTIAL_PREFIXES[kind]}(\d+)", record.id)
            if match:
                self._sequences[kind] = max(self._sequences[kind], int(match.group(1)))
        else:
            match = re.fullmatch(rf"{TIMESTAMP_PREFIXES[kind]}(\d+)", record.id)
            if match:
                self._last_stamps[kind] = max(self._last_stamps[kind], int(match.group(1)))

        if kind == EntityKind.PAYMENTS:
            match = re.fullmatch(rf"{RECEIPT_PREFIX}(\d+)", record.receipt_number)
            if match:
                self._next_receipt = max(self._next_receipt, int(match.group(1)) + 1)
        elif kind == EntityKind.PATIENTS:
            for visit in record.visit_history:
                match = re.fullmatch(rf"{VISIT_PREFIX}(\d+)", visit.id)
                if match:
                    self._visit_sequence = max(self._visit_sequence, int(match.group(1)))
