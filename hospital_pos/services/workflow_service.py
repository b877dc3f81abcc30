"""
Workflow Service

Every legal change to patients, payments, diagnoses and services goes
through one operation here. Each operation:

1. validates its input,
2. takes the owning patient's lock,
3. reads the store and decides the full set of changes,
4. hands the changes to the record gateway,
5. applies them to the store only once the gateway accepted them.

A gateway failure therefore raises ``CollaboratorError`` with the store
untouched. Identifiers and receipt numbers drawn before the failure are not
reused.
"""
import asyncio
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from hospital_pos.core.exceptions import InvalidTransitionError, ValidationError
from hospital_pos.core.utils import LoggerMixin, money, utcnow
from hospital_pos.models.patient_model import (
    BreakdownKind,
    BreakdownLine,
    Diagnosis,
    Gender,
    Patient,
    PatientStatus,
    Payment,
    PaymentType,
    PrescriptionLine,
    Visit,
)
from hospital_pos.models.service_model import (
    TERMINAL_STATUS,
    PatientService,
    ServiceStatus,
    ServiceType,
)
from hospital_pos.repositories.catalog_repo import Catalog
from hospital_pos.repositories.record_store import EntityKind, RecordStore
from hospital_pos.services.record_gateway import (
    ChangeAction,
    OfflineRecordGateway,
    RecordChange,
    RecordGateway,
    insert_change,
    update_change,
    visit_change,
)


M = TypeVar("M", bound=BaseModel)

COMBINED_DESCRIPTION = "Combined payment - Selected services only"
CONSULTATION_LABEL = "Consultation"

REFERRAL_STATUS = {
    ServiceType.LAB: PatientStatus.LAB_REFERRED,
    ServiceType.PHARMACY: PatientStatus.PHARMACY_REFERRED,
}

INITIAL_STATUSES = (PatientStatus.REGISTERED, PatientStatus.PAYMENT_PENDING)


@dataclass(frozen=True)
class DiagnosisResult:
    diagnosis_id: str
    lab_service_id: Optional[str] = None
    pharmacy_service_id: Optional[str] = None

    @property
    def service_ids(self) -> List[str]:
        return [s for s in (self.lab_service_id, self.pharmacy_service_id) if s]


class WorkflowService(LoggerMixin):
    """Patient / payment / diagnosis / service state transitions."""

    def __init__(
        self,
        store: RecordStore,
        catalog: Catalog,
        gateway: Optional[RecordGateway] = None,
        consultation_fee: Decimal = Decimal("2000"),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.catalog = catalog
        self.gateway = gateway or OfflineRecordGateway()
        self.consultation_fee = money(consultation_fee)
        self._clock = clock
        self._locks: Dict[str, asyncio.Lock] = {}

    # ============= Registration =============
    async def register_patient(
        self,
        name: str,
        age: int,
        gender: Union[Gender, str],
        contact: str,
        initial_status: Union[PatientStatus, str] = PatientStatus.REGISTERED,
    ) -> str:
        """Create a patient and return its id (``P0001``, ``P0002``, ...)."""
        initial_status = _coerce(PatientStatus, initial_status, "initial_status")
        if initial_status not in INITIAL_STATUSES:
            raise ValidationError(
                "New patients start as registered or payment_pending",
                code="INVALID_INITIAL_STATUS",
                detail={"initial_status": initial_status.value},
            )

        patient = _build(
            Patient,
            {
                "id": "new",
                "name": name,
                "age": age,
                "gender": gender,
                "contact": contact,
                "registered_at": self._clock(),
                "status": initial_status,
            },
        )
        patient = patient.model_copy(update={"id": self.store.allocate_id(EntityKind.PATIENTS)})

        await self.gateway.apply([insert_change(EntityKind.PATIENTS, patient)])
        self.store.insert(EntityKind.PATIENTS, patient, record_id=patient.id)

        self.log_info(
            {"event": "patient_registered", "patient_id": patient.id, "status": initial_status.value}
        )
        return patient.id

    async def register_patient_with_payment(
        self,
        name: str,
        age: int,
        gender: Union[Gender, str],
        contact: str,
        payment_type: Union[PaymentType, str],
        amount: Any,
        description: Optional[str] = None,
    ) -> Tuple[str, str]:
        """Front-desk flow: register as payment_pending, then take the first payment."""
        payment_type = self._payment_type_for_single(payment_type)
        _positive_amount(amount)

        patient_id = await self.register_patient(
            name, age, gender, contact, initial_status=PatientStatus.PAYMENT_PENDING
        )
        receipt = await self.record_payment(patient_id, payment_type, amount, description)
        return patient_id, receipt

    async def start_visit(self, patient_id: str, reason: str) -> str:
        """Open a new visit for a returning patient; status goes back to registered."""
        if not reason or not reason.strip():
            raise ValidationError("Visit reason cannot be empty", code="MISSING_REASON")

        async with self._patient_lock(patient_id):
            patient = self.store.get(EntityKind.PATIENTS, patient_id)
            visit = Visit(
                id=self.store.allocate_visit_id(),
                patient_id=patient_id,
                date=self._clock(),
                reason=reason.strip(),
            )
            fields = {
                "status": PatientStatus.REGISTERED,
                "is_returning": True,
                "visit_history": [*patient.visit_history, visit],
            }

            await self.gateway.apply(
                [
                    visit_change(visit, ChangeAction.INSERT),
                    update_change(
                        EntityKind.PATIENTS,
                        patient_id,
                        status=PatientStatus.REGISTERED,
                        is_returning=True,
                    ),
                ]
            )
            self.store.update(EntityKind.PATIENTS, patient_id, **fields)

        self.log_info({"event": "visit_started", "patient_id": patient_id, "visit_id": visit.id})
        return visit.id

    # ============= Payments =============
    async def record_payment(
        self,
        patient_id: str,
        payment_type: Union[PaymentType, str],
        amount: Any,
        description: Optional[str] = None,
    ) -> str:
        """
        Record a consultation, lab or pharmacy payment and return its receipt.

        Lab and pharmacy payments settle only the oldest pending service of
        that type. With no such service the patient falls back to registered.
        """
        payment_type = self._payment_type_for_single(payment_type)
        amount = _positive_amount(amount)

        async with self._patient_lock(patient_id):
            patient = self.store.get(EntityKind.PATIENTS, patient_id)
            _ensure_visit_open(patient)

            payment = self._new_payment(
                patient_id,
                payment_type,
                amount,
                description or f"{payment_type.value} payment",
            )
            changes: List[RecordChange] = [insert_change(EntityKind.PAYMENTS, payment)]
            settled: Optional[PatientService] = None

            if payment_type == PaymentType.CONSULTATION:
                new_status = PatientStatus.PAID_CONSULTATION
            else:
                service_type = ServiceType(payment_type.value)
                settled = self._oldest_pending_service(patient_id, service_type)
                if settled:
                    new_status = REFERRAL_STATUS[service_type]
                    changes.append(
                        update_change(EntityKind.SERVICES, settled.id, status=ServiceStatus.PAID)
                    )
                else:
                    new_status = PatientStatus.REGISTERED

            patient_fields = self._patient_fields_after_payment(patient, new_status, amount)
            changes.extend(self._patient_changes(patient, patient_fields))

            await self.gateway.apply(changes)

            self.store.insert(EntityKind.PAYMENTS, payment, record_id=payment.id)
            if settled:
                self.store.update_status(EntityKind.SERVICES, settled.id, ServiceStatus.PAID)
            self.store.update(EntityKind.PATIENTS, patient_id, **patient_fields)

        self.log_info(
            {
                "event": "payment_recorded",
                "patient_id": patient_id,
                "type": payment_type.value,
                "amount": str(amount),
                "receipt": payment.receipt_number,
                "settled_service": settled.id if settled else None,
                "patient_status": new_status.value,
            }
        )
        return payment.receipt_number

    def build_combined_breakdown(
        self,
        patient_id: str,
        service_ids: Sequence[str],
        include_consultation: bool = False,
    ) -> Tuple[Decimal, List[BreakdownLine]]:
        """Price a combined payment from the patient's pending services."""
        self.store.get(EntityKind.PATIENTS, patient_id)
        services = self._selected_pending_services(patient_id, service_ids)

        lines: List[BreakdownLine] = []
        if include_consultation:
            lines.append(
                BreakdownLine(
                    service_label=CONSULTATION_LABEL,
                    amount=self.consultation_fee,
                    kind=BreakdownKind.CONSULTATION,
                )
            )
        lines.extend(self._service_line(service) for service in services)

        total = sum((line.amount for line in lines), Decimal("0"))
        return total, lines

    async def record_combined_payment(
        self,
        patient_id: str,
        selected_service_ids: Sequence[str],
        total_amount: Any,
        breakdown: Optional[Iterable[Union[BreakdownLine, Mapping[str, Any]]]] = None,
    ) -> str:
        """
        Settle a caller-chosen subset of pending services in one receipt.

        Services that are not selected keep their status. A supplied
        breakdown needs one line per selected service with that service's
        kind and total, and at most one consultation line. The patient moves
        to paid_consultation only when the breakdown carries a consultation
        line.
        """
        total = _positive_amount(total_amount)
        lines = (
            [_build(BreakdownLine, line) for line in breakdown]
            if breakdown is not None
            else None
        )

        async with self._patient_lock(patient_id):
            patient = self.store.get(EntityKind.PATIENTS, patient_id)
            _ensure_visit_open(patient)

            services = self._selected_pending_services(patient_id, selected_service_ids)
            if lines is None:
                lines = [self._service_line(service) for service in services]

            includes_consultation = any(
                line.kind == BreakdownKind.CONSULTATION for line in lines
            )
            if not services and not includes_consultation:
                raise ValidationError(
                    "Select at least one service or the consultation fee",
                    code="EMPTY_SELECTION",
                )

            _check_breakdown(lines, services)
            selected = {service.id for service in services}

            line_total = sum((line.amount for line in lines), Decimal("0"))
            if line_total != total:
                raise ValidationError(
                    "Breakdown amounts do not add up to the payment total",
                    code="BREAKDOWN_MISMATCH",
                    detail={"total_amount": str(total), "breakdown_total": str(line_total)},
                )

            payment = self._new_payment(
                patient_id, PaymentType.COMBINED, total, COMBINED_DESCRIPTION, lines
            )
            changes: List[RecordChange] = [insert_change(EntityKind.PAYMENTS, payment)]
            changes.extend(
                update_change(EntityKind.SERVICES, service.id, status=ServiceStatus.PAID)
                for service in services
            )

            new_status = (
                PatientStatus.PAID_CONSULTATION if includes_consultation else patient.status
            )
            patient_fields = self._patient_fields_after_payment(patient, new_status, total)
            changes.extend(self._patient_changes(patient, patient_fields))

            await self.gateway.apply(changes)

            self.store.insert(EntityKind.PAYMENTS, payment, record_id=payment.id)
            for service in services:
                self.store.update_status(EntityKind.SERVICES, service.id, ServiceStatus.PAID)
            self.store.update(EntityKind.PATIENTS, patient_id, **patient_fields)

        self.log_info(
            {
                "event": "combined_payment_recorded",
                "patient_id": patient_id,
                "amount": str(total),
                "receipt": payment.receipt_number,
                "services": sorted(selected),
                "consultation": includes_consultation,
            }
        )
        return payment.receipt_number

    # ============= Diagnoses =============
    async def record_diagnosis(
        self,
        patient_id: str,
        doctor_id: str,
        diagnosis_text: str,
        lab_test_ids: Optional[Sequence[str]] = None,
        prescription_lines: Optional[Iterable[Union[PrescriptionLine, Mapping[str, Any]]]] = None,
    ) -> DiagnosisResult:
        """
        Record a diagnosis and spawn the pending lab and pharmacy services.

        Lab totals come from the catalog now; pharmacy totals are
        unit price times quantity per line. Both are frozen on the service.
        """
        if not doctor_id:
            raise ValidationError("Diagnosis requires the authoring doctor", code="MISSING_DOCTOR")

        lab_test_ids = [str(t) for t in (lab_test_ids or [])]
        lab_total = self.catalog.lab_total(lab_test_ids)
        lines = [self._priced_line(line) for line in (prescription_lines or [])]
        now = self._clock()

        async with self._patient_lock(patient_id):
            patient = self.store.get(EntityKind.PATIENTS, patient_id)
            _ensure_visit_open(patient)

            diagnosis = _build(
                Diagnosis,
                {
                    "id": "new",
                    "patient_id": patient_id,
                    "doctor_id": doctor_id,
                    "diagnosis": diagnosis_text,
                    "lab_tests": lab_test_ids,
                    "prescriptions": lines,
                    "created_at": now,
                },
            )
            diagnosis = diagnosis.model_copy(
                update={"id": self.store.allocate_id(EntityKind.DIAGNOSES)}
            )

            services: List[PatientService] = []
            if lab_test_ids:
                services.append(
                    self._new_service(patient_id, ServiceType.LAB, lab_test_ids, lab_total, now)
                )
            if lines:
                services.append(
                    self._new_service(
                        patient_id,
                        ServiceType.PHARMACY,
                        [line.drug_name for line in lines],
                        sum((line.line_total for line in lines), Decimal("0")),
                        now,
                    )
                )

            patient_fields: Dict[str, Any] = {"status": PatientStatus.DIAGNOSED}
            visit = patient.current_visit
            if visit and services:
                visit = visit.model_copy(
                    update={
                        "referred_services": [
                            *visit.referred_services,
                            *(service.id for service in services),
                        ]
                    }
                )
                patient_fields["visit_history"] = [*patient.visit_history[:-1], visit]

            changes: List[RecordChange] = [insert_change(EntityKind.DIAGNOSES, diagnosis)]
            changes.extend(insert_change(EntityKind.SERVICES, service) for service in services)
            changes.extend(self._patient_changes(patient, patient_fields))

            await self.gateway.apply(changes)

            self.store.insert(EntityKind.DIAGNOSES, diagnosis, record_id=diagnosis.id)
            for service in services:
                self.store.insert(EntityKind.SERVICES, service, record_id=service.id)
            self.store.update(EntityKind.PATIENTS, patient_id, **patient_fields)

        by_type = {service.service_type: service.id for service in services}
        result = DiagnosisResult(
            diagnosis_id=diagnosis.id,
            lab_service_id=by_type.get(ServiceType.LAB),
            pharmacy_service_id=by_type.get(ServiceType.PHARMACY),
        )
        self.log_info(
            {
                "event": "diagnosis_recorded",
                "patient_id": patient_id,
                "doctor_id": doctor_id,
                "diagnosis_id": diagnosis.id,
                "services": result.service_ids,
            }
        )
        return result

    # ============= Fulfilment =============
    async def complete_service(
        self, service_id: str, completed_by: Optional[str] = None
    ) -> PatientService:
        """paid -> completed for a lab service."""
        return await self._finish_service(
            service_id, ServiceType.LAB, {"completed_by": completed_by}
        )

    async def dispense_service(self, service_id: str, dispensed_by: str) -> PatientService:
        """paid -> dispensed for a pharmacy service."""
        if not dispensed_by:
            raise ValidationError("Dispensing requires the acting pharmacist", code="MISSING_ACTOR")
        return await self._finish_service(
            service_id, ServiceType.PHARMACY, {"dispensed_by": dispensed_by}
        )

    async def _finish_service(
        self, service_id: str, service_type: ServiceType, actor_fields: Dict[str, Any]
    ) -> PatientService:
        patient_id = self.store.get(EntityKind.SERVICES, service_id).patient_id

        async with self._patient_lock(patient_id):
            service = self.store.get(EntityKind.SERVICES, service_id)
            target = TERMINAL_STATUS[service_type]

            if service.service_type != service_type:
                raise InvalidTransitionError(
                    f"Service {service_id} is a {service.service_type.value} service",
                    code="WRONG_SERVICE_TYPE",
                    detail={"service_id": service_id, "service_type": service.service_type.value},
                )
            if service.status != ServiceStatus.PAID:
                raise InvalidTransitionError(
                    f"Service {service_id} cannot move from {service.status.value} to {target.value}",
                    code="SERVICE_NOT_PAID",
                    detail={
                        "service_id": service_id,
                        "current_status": service.status.value,
                        "requested_status": target.value,
                    },
                )

            fields = {"status": target, "completed_at": self._clock(), **actor_fields}
            changes = [update_change(EntityKind.SERVICES, service_id, **fields)]

            still_open = any(
                other.is_open
                for other in self.store.all(EntityKind.SERVICES)
                if other.patient_id == patient_id and other.id != service_id
            )
            if not still_open:
                changes.append(
                    update_change(EntityKind.PATIENTS, patient_id, status=PatientStatus.COMPLETED)
                )

            await self.gateway.apply(changes)

            updated = self.store.update(EntityKind.SERVICES, service_id, **fields)
            if not still_open:
                self.store.update_status(EntityKind.PATIENTS, patient_id, PatientStatus.COMPLETED)

        self.log_info(
            {
                "event": f"service_{target.value}",
                "service_id": service_id,
                "patient_id": patient_id,
                "actor": updated.fulfilled_by,
                "patient_completed": not still_open,
            }
        )
        return updated

    # ============= Helpers =============
    def _patient_lock(self, patient_id: str) -> asyncio.Lock:
        lock = self._locks.get(patient_id)
        if lock is None:
            lock = self._locks[patient_id] = asyncio.Lock()
        return lock

    def _payment_type_for_single(self, payment_type: Union[PaymentType, str]) -> PaymentType:
        payment_type = _coerce(PaymentType, payment_type, "type")
        if payment_type == PaymentType.COMBINED:
            raise ValidationError(
                "Combined payments go through record_combined_payment",
                code="USE_COMBINED_PAYMENT",
            )
        return payment_type

    def _new_payment(
        self,
        patient_id: str,
        payment_type: PaymentType,
        amount: Decimal,
        description: str,
        breakdown: Optional[List[BreakdownLine]] = None,
    ) -> Payment:
        return Payment(
            id=self.store.allocate_id(EntityKind.PAYMENTS),
            patient_id=patient_id,
            type=payment_type,
            amount=amount,
            description=description,
            paid_at=self._clock(),
            receipt_number=self.store.next_receipt_number(),
            breakdown=breakdown,
        )

    def _new_service(
        self,
        patient_id: str,
        service_type: ServiceType,
        items: List[str],
        total: Decimal,
        created_at: datetime,
    ) -> PatientService:
        return PatientService(
            id=self.store.allocate_id(EntityKind.SERVICES),
            patient_id=patient_id,
            service_type=service_type,
            items=items,
            total_amount=total,
            status=ServiceStatus.PENDING,
            created_at=created_at,
        )

    def _oldest_pending_service(
        self, patient_id: str, service_type: ServiceType
    ) -> Optional[PatientService]:
        for service in self.store.all(EntityKind.SERVICES):
            if (
                service.patient_id == patient_id
                and service.service_type == service_type
                and service.status == ServiceStatus.PENDING
            ):
                return service
        return None

    def _selected_pending_services(
        self, patient_id: str, service_ids: Sequence[str]
    ) -> List[PatientService]:
        service_ids = list(service_ids)
        duplicates = sorted({sid for sid in service_ids if service_ids.count(sid) > 1})
        if duplicates:
            raise ValidationError(
                "A service can only be selected once",
                code="DUPLICATE_SERVICE_SELECTION",
                detail={"service_ids": duplicates},
            )

        services = []
        for service_id in service_ids:
            service = self.store.get(EntityKind.SERVICES, service_id)
            if service.patient_id != patient_id:
                raise ValidationError(
                    f"Service {service_id} belongs to another patient",
                    code="SERVICE_PATIENT_MISMATCH",
                    detail={"service_id": service_id, "patient_id": patient_id},
                )
            if service.status != ServiceStatus.PENDING:
                raise InvalidTransitionError(
                    f"Service {service_id} is already {service.status.value}",
                    code="SERVICE_NOT_PENDING",
                    detail={"service_id": service_id, "current_status": service.status.value},
                )
            services.append(service)
        return services

    def _service_line(self, service: PatientService) -> BreakdownLine:
        return BreakdownLine(
            service_label=f"{service.service_type.value.capitalize()} Services",
            amount=service.total_amount,
            items=[self.catalog.label_for(item) for item in service.items],
            kind=BreakdownKind(service.service_type.value),
            service_id=service.id,
        )

    def _priced_line(self, line: Union[PrescriptionLine, Mapping[str, Any]]) -> PrescriptionLine:
        """Copy the catalog price onto a prescription line that arrives without one."""
        if isinstance(line, PrescriptionLine):
            return line
        data = dict(line)
        if data.get("unit_price") is None:
            medication = self.catalog.medication_by_name(data.get("drug_name", ""))
            if medication is None:
                raise ValidationError(
                    f"No catalog price for {data.get('drug_name')!r}",
                    code="UNKNOWN_MEDICATION_PRICE",
                    detail={"drug_name": data.get("drug_name")},
                )
            data["unit_price"] = medication.price
        return _build(PrescriptionLine, data)

    def _patient_fields_after_payment(
        self, patient: Patient, new_status: PatientStatus, amount: Decimal
    ) -> Dict[str, Any]:
        fields: Dict[str, Any] = {"status": new_status}
        visit = patient.current_visit
        if visit:
            visit = visit.model_copy(update={"total_amount": visit.total_amount + amount})
            fields["visit_history"] = [*patient.visit_history[:-1], visit]
        return fields

    def _patient_changes(self, patient: Patient, fields: Dict[str, Any]) -> List[RecordChange]:
        changes = [update_change(EntityKind.PATIENTS, patient.id, status=fields["status"])]
        if "visit_history" in fields:
            changes.append(visit_change(fields["visit_history"][-1], ChangeAction.UPDATE))
        return changes


def _build(model: Type[M], data: Union[M, Mapping[str, Any]]) -> M:
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid {model.__name__}",
            detail={
                "errors": e.errors(include_url=False, include_context=False, include_input=False)
            },
        ) from e


def _coerce(enum_cls, value, field_name: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(
            f"Invalid {field_name}: {value!r}",
            detail={"field": field_name, "allowed": [member.value for member in enum_cls]},
        ) from None


def _positive_amount(amount: Any) -> Decimal:
    try:
        value = money(amount)
    except (ArithmeticError, ValueError, TypeError):
        raise ValidationError(
            f"Invalid amount: {amount!r}", code="INVALID_AMOUNT"
        ) from None
    if not value.is_finite() or value <= 0:
        raise ValidationError(
            "Amount must be greater than zero",
            code="INVALID_AMOUNT",
            detail={"amount": str(value)},
        )
    return value


def _ensure_visit_open(patient: Patient) -> None:
    if patient.status == PatientStatus.COMPLETED:
        raise InvalidTransitionError(
            f"Patient {patient.id} has completed this visit; start a new visit first",
            code="VISIT_CLOSED",
            detail={"patient_id": patient.id},
        )


def _check_breakdown(lines: Sequence[BreakdownLine], services: Sequence[PatientService]) -> None:
    """
    One line per selected service, carrying that service's kind and total,
    plus at most one consultation line with no service id.
    """
    by_id = {service.id: service for service in services}
    seen: Dict[str, BreakdownLine] = {}
    consultation_lines = 0

    for line in lines:
        if line.service_id is None:
            if line.kind != BreakdownKind.CONSULTATION:
                raise ValidationError(
                    f"{line.kind.value} breakdown lines must name their service",
                    code="BREAKDOWN_KIND_MISMATCH",
                    detail={"service_label": line.service_label, "kind": line.kind.value},
                )
            consultation_lines += 1
            if consultation_lines > 1:
                raise ValidationError(
                    "Breakdown has more than one consultation line",
                    code="BREAKDOWN_DUPLICATE_LINE",
                )
            continue

        service = by_id.get(line.service_id)
        if service is None:
            raise ValidationError(
                "Breakdown references services that are not selected",
                code="BREAKDOWN_SERVICE_NOT_SELECTED",
                detail={"service_ids": [line.service_id]},
            )
        if line.service_id in seen:
            raise ValidationError(
                f"Service {line.service_id} appears twice in the breakdown",
                code="BREAKDOWN_DUPLICATE_LINE",
                detail={"service_id": line.service_id},
            )
        if line.kind.value != service.service_type.value:
            raise ValidationError(
                f"Breakdown line for {service.id} must be {service.service_type.value}",
                code="BREAKDOWN_KIND_MISMATCH",
                detail={
                    "service_id": service.id,
                    "kind": line.kind.value,
                    "service_type": service.service_type.value,
                },
            )
        if line.amount != service.total_amount:
            raise ValidationError(
                f"Breakdown amount for {service.id} must equal the service total",
                code="BREAKDOWN_AMOUNT_MISMATCH",
                detail={
                    "service_id": service.id,
                    "amount": str(line.amount),
                    "service_total": str(service.total_amount),
                },
            )
        seen[line.service_id] = line

    missing = [service.id for service in services if service.id not in seen]
    if missing:
        raise ValidationError(
            "Every selected service needs its own breakdown line",
            code="BREAKDOWN_SERVICE_MISSING",
            detail={"service_ids": missing},
        )
