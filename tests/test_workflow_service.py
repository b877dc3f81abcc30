"""
Workflow engine tests: registration, payments, diagnoses, fulfilment,
visits and write-through atomicity.
"""
import asyncio
from decimal import Decimal
from typing import Optional

import pytest

from hospital_pos.core.exceptions import (
    CollaboratorError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from hospital_pos.models.patient_model import BreakdownKind, PatientStatus, PaymentType
from hospital_pos.models.service_model import ServiceStatus, ServiceType
from hospital_pos.repositories.record_store import EntityKind, RecordStore
from hospital_pos.services.workflow_service import COMBINED_DESCRIPTION, WorkflowService


def add_service(store: RecordStore, patient_id: str, total: str, service_type: str = "lab") -> str:
    return store.insert(
        EntityKind.SERVICES,
        {
            "patient_id": patient_id,
            "service_type": service_type,
            "items": ["1"] if service_type == "lab" else ["Paracetamol 500mg"],
            "total_amount": total,
        },
    )


def status_of(store: RecordStore, kind: EntityKind, record_id: str):
    return store.get(kind, record_id).status


def line(kind: str, amount: str, service_id: Optional[str] = None) -> dict:
    return {"service_label": kind.capitalize(), "amount": amount, "kind": kind, "service_id": service_id}


@pytest.mark.asyncio
@pytest.mark.unit
class TestJaneDoeVisit:
    async def test_full_lab_visit(self, workflow: WorkflowService, store: RecordStore):
        pid = await workflow.register_patient("Jane Doe", 34, "female", "0800000000")
        assert pid == "P0001"

        receipt = await workflow.record_payment(pid, "consultation", 2000)
        assert receipt == "RCP1000"
        assert status_of(store, EntityKind.PATIENTS, pid) == PatientStatus.PAID_CONSULTATION

        result = await workflow.record_diagnosis(pid, "doc1", "Malaria", ["1"], [])
        assert status_of(store, EntityKind.PATIENTS, pid) == PatientStatus.DIAGNOSED
        assert result.pharmacy_service_id is None
        service = store.get(EntityKind.SERVICES, result.lab_service_id)
        assert service.status == ServiceStatus.PENDING
        assert service.total_amount == Decimal("2500")

        await workflow.record_payment(pid, "lab", 2500)
        assert status_of(store, EntityKind.SERVICES, service.id) == ServiceStatus.PAID
        assert status_of(store, EntityKind.PATIENTS, pid) == PatientStatus.LAB_REFERRED

        completed = await workflow.complete_service(service.id, completed_by="3")
        assert completed.status == ServiceStatus.COMPLETED
        assert completed.completed_at is not None
        assert completed.completed_by == "3"
        assert status_of(store, EntityKind.PATIENTS, pid) == PatientStatus.COMPLETED


@pytest.mark.asyncio
@pytest.mark.unit
class TestRegistration:
    async def test_default_status_registered(self, workflow: WorkflowService, store: RecordStore):
        pid = await workflow.register_patient("John", 40, "male", "555")
        assert status_of(store, EntityKind.PATIENTS, pid) == PatientStatus.REGISTERED

    async def test_initial_status_restricted(self, workflow: WorkflowService):
        with pytest.raises(ValidationError) as exc:
            await workflow.register_patient("John", 40, "male", "555", initial_status="diagnosed")
        assert exc.value.code == "INVALID_INITIAL_STATUS"

    async def test_invalid_fields_do_not_consume_ids(self, workflow: WorkflowService):
        with pytest.raises(ValidationError):
            await workflow.register_patient("  ", 40, "male", "555")
        with pytest.raises(ValidationError):
            await workflow.register_patient("John", 40, "robot", "555")

        assert await workflow.register_patient("John", 40, "male", "555") == "P0001"

    async def test_register_with_payment(self, workflow: WorkflowService, store: RecordStore):
        pid, receipt = await workflow.register_patient_with_payment(
            "Ada", 25, "female", "555", "consultation", 2000
        )

        assert receipt == "RCP1000"
        assert status_of(store, EntityKind.PATIENTS, pid) == PatientStatus.PAID_CONSULTATION

    async def test_register_with_bad_payment_registers_nobody(self, workflow: WorkflowService, store: RecordStore):
        with pytest.raises(ValidationError):
            await workflow.register_patient_with_payment("Ada", 25, "female", "555", "consultation", 0)
        assert store.count(EntityKind.PATIENTS) == 0


@pytest.mark.asyncio
@pytest.mark.unit
class TestRecordPayment:
    async def test_non_positive_amount_rejected(self, workflow: WorkflowService, patient_id: str):
        for amount in (0, -5, "abc"):
            with pytest.raises(ValidationError) as exc:
                await workflow.record_payment(patient_id, "lab", amount)
            assert exc.value.code == "INVALID_AMOUNT"

    async def test_combined_type_rejected(self, workflow: WorkflowService, patient_id: str):
        with pytest.raises(ValidationError) as exc:
            await workflow.record_payment(patient_id, "combined", 100)
        assert exc.value.code == "USE_COMBINED_PAYMENT"

    async def test_unknown_patient(self, workflow: WorkflowService):
        with pytest.raises(NotFoundError):
            await workflow.record_payment("P9999", "consultation", 2000)

    async def test_lab_payment_pays_only_oldest_pending(self, workflow: WorkflowService, store: RecordStore, patient_id: str):
        first = add_service(store, patient_id, "1000")
        second = add_service(store, patient_id, "2000")

        await workflow.record_payment(patient_id, "lab", 1000)

        assert status_of(store, EntityKind.SERVICES, first) == ServiceStatus.PAID
        assert status_of(store, EntityKind.SERVICES, second) == ServiceStatus.PENDING
        assert status_of(store, EntityKind.PATIENTS, patient_id) == PatientStatus.LAB_REFERRED

    async def test_payment_without_matching_service_falls_back(self, workflow: WorkflowService, store: RecordStore, patient_id: str):
        add_service(store, patient_id, "500", service_type="lab")

        await workflow.record_payment(patient_id, "pharmacy", 500)

        assert status_of(store, EntityKind.PATIENTS, patient_id) == PatientStatus.REGISTERED

    async def test_receipts_strictly_increase(self, workflow: WorkflowService, patient_id: str):
        receipts = [await workflow.record_payment(patient_id, "consultation", 10) for _ in range(5)]
        sequence = [int(r[3:]) for r in receipts]

        assert sequence == sorted(sequence)
        assert len(set(sequence)) == len(sequence)

    async def test_default_description(self, workflow: WorkflowService, store: RecordStore, patient_id: str):
        payment = store.all(EntityKind.PAYMENTS)[-1]
        assert payment.description == "consultation payment"

    async def test_concurrent_lab_payments_settle_different_services(
        self, workflow: WorkflowService, store: RecordStore, patient_id: str
    ):
        first = add_service(store, patient_id, "1000")
        second = add_service(store, patient_id, "1000")

        await asyncio.gather(
            workflow.record_payment(patient_id, "lab", 1000),
            workflow.record_payment(patient_id, "lab", 1000),
        )

        assert status_of(store, EntityKind.SERVICES, first) == ServiceStatus.PAID
        assert status_of(store, EntityKind.SERVICES, second) == ServiceStatus.PAID


@pytest.mark.asyncio
@pytest.mark.unit
class TestCombinedPayment:
    async def test_only_selected_services_paid(self, workflow: WorkflowService, store: RecordStore, patient_id: str):
        first = add_service(store, patient_id, "1000")
        second = add_service(store, patient_id, "2000")

        receipt = await workflow.record_combined_payment(patient_id, [first], 1000)

        assert status_of(store, EntityKind.SERVICES, first) == ServiceStatus.PAID
        assert status_of(store, EntityKind.SERVICES, second) == ServiceStatus.PENDING
        payment = store.all(EntityKind.PAYMENTS)[-1]
        assert payment.receipt_number == receipt
        assert payment.type == PaymentType.COMBINED
        assert payment.description == COMBINED_DESCRIPTION
        assert [line.service_id for line in payment.breakdown] == [first]

    async def test_consultation_line_moves_patient(self, workflow: WorkflowService, store: RecordStore):
        pid = await workflow.register_patient("Ada", 25, "female", "555")
        total, lines = workflow.build_combined_breakdown(pid, [], include_consultation=True)

        await workflow.record_combined_payment(pid, [], total, lines)

        assert total == Decimal("2000")
        assert status_of(store, EntityKind.PATIENTS, pid) == PatientStatus.PAID_CONSULTATION

    async def test_without_consultation_status_kept(self, workflow: WorkflowService, store: RecordStore, patient_id: str):
        result = await workflow.record_diagnosis(patient_id, "doc1", "Flu", ["4"], [])
        await workflow.record_combined_payment(patient_id, [result.lab_service_id], 800)

        assert status_of(store, EntityKind.PATIENTS, patient_id) == PatientStatus.DIAGNOSED

    async def test_breakdown_builder(self, workflow: WorkflowService, patient_id: str):
        result = await workflow.record_diagnosis(
            patient_id,
            "doc1",
            "Infection",
            ["1", "2"],
            [{"drug_name": "Amoxicillin 250mg", "dosage": "250mg", "quantity": 3}],
        )

        total, lines = workflow.build_combined_breakdown(
            patient_id, result.service_ids, include_consultation=True
        )

        assert total == Decimal("2000") + Decimal("4000") + Decimal("360")
        assert [line.kind for line in lines] == [
            BreakdownKind.CONSULTATION,
            BreakdownKind.LAB,
            BreakdownKind.PHARMACY,
        ]
        assert lines[1].items == ["Blood Test (Full)", "Urine Test"]

    async def test_empty_selection_rejected(self, workflow: WorkflowService, patient_id: str):
        with pytest.raises(ValidationError) as exc:
            await workflow.record_combined_payment(patient_id, [], 100, [])
        assert exc.value.code == "EMPTY_SELECTION"

    async def test_unknown_service(self, workflow: WorkflowService, patient_id: str):
        with pytest.raises(NotFoundError):
            await workflow.record_combined_payment(patient_id, ["SVC0404"], 100)

    async def test_other_patients_service_rejected(self, workflow: WorkflowService, store: RecordStore, patient_id: str):
        other = await workflow.register_patient("Other", 50, "male", "555")
        foreign = add_service(store, other, "1000")

        with pytest.raises(ValidationError) as exc:
            await workflow.record_combined_payment(patient_id, [foreign], 1000)
        assert exc.value.code == "SERVICE_PATIENT_MISMATCH"

    async def test_duplicate_selection_rejected(self, workflow: WorkflowService, store: RecordStore, patient_id: str):
        sid = add_service(store, patient_id, "1000")
        with pytest.raises(ValidationError) as exc:
            await workflow.record_combined_payment(patient_id, [sid, sid], 2000)
        assert exc.value.code == "DUPLICATE_SERVICE_SELECTION"

    async def test_already_paid_service_rejected(self, workflow: WorkflowService, store: RecordStore, patient_id: str):
        sid = add_service(store, patient_id, "1000")
        await workflow.record_payment(patient_id, "lab", 1000)

        with pytest.raises(InvalidTransitionError) as exc:
            await workflow.record_combined_payment(patient_id, [sid], 1000)
        assert exc.value.code == "SERVICE_NOT_PENDING"

    async def test_breakdown_must_match_total(self, workflow: WorkflowService, store: RecordStore, patient_id: str):
        sid = add_service(store, patient_id, "1000")
        before = store.count(EntityKind.PAYMENTS)

        with pytest.raises(ValidationError) as exc:
            await workflow.record_combined_payment(patient_id, [sid], 1500)

        assert exc.value.code == "BREAKDOWN_MISMATCH"
        assert store.count(EntityKind.PAYMENTS) == before
        assert status_of(store, EntityKind.SERVICES, sid) == ServiceStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.unit
class TestCombinedBreakdownChecks:
    """Supplied breakdowns must attribute each selected service exactly once."""

    async def assert_rejected(self, workflow, store, patient_id, service_ids, total, breakdown, code):
        before = store.count(EntityKind.PAYMENTS)

        with pytest.raises(ValidationError) as exc:
            await workflow.record_combined_payment(patient_id, service_ids, total, breakdown)

        assert exc.value.code == code
        assert store.count(EntityKind.PAYMENTS) == before
        for sid in service_ids:
            assert status_of(store, EntityKind.SERVICES, sid) == ServiceStatus.PENDING

    async def test_service_paid_as_consultation(self, workflow: WorkflowService, store: RecordStore, patient_id: str):
        sid = add_service(store, patient_id, "2500")

        await self.assert_rejected(
            workflow, store, patient_id, [sid], 2500,
            [line("consultation", "2500")],
            "BREAKDOWN_SERVICE_MISSING",
        )
        assert status_of(store, EntityKind.PATIENTS, patient_id) == PatientStatus.PAID_CONSULTATION

    async def test_wrong_kind(self, workflow: WorkflowService, store: RecordStore, patient_id: str):
        sid = add_service(store, patient_id, "2500")

        await self.assert_rejected(
            workflow, store, patient_id, [sid], 2500,
            [line("pharmacy", "2500", sid)],
            "BREAKDOWN_KIND_MISMATCH",
        )

    async def test_service_line_without_id(self, workflow: WorkflowService, store: RecordStore, patient_id: str):
        sid = add_service(store, patient_id, "2500")

        await self.assert_rejected(
            workflow, store, patient_id, [sid], 5000,
            [line("lab", "2500", sid), line("lab", "2500")],
            "BREAKDOWN_KIND_MISMATCH",
        )

    async def test_amount_differs_from_service_total(self, workflow: WorkflowService, store: RecordStore, patient_id: str):
        first = add_service(store, patient_id, "1000")
        second = add_service(store, patient_id, "2000")

        await self.assert_rejected(
            workflow, store, patient_id, [first, second], 3000,
            [line("lab", "2000", first), line("lab", "1000", second)],
            "BREAKDOWN_AMOUNT_MISMATCH",
        )

    async def test_duplicate_service_line(self, workflow: WorkflowService, store: RecordStore, patient_id: str):
        sid = add_service(store, patient_id, "1000")

        await self.assert_rejected(
            workflow, store, patient_id, [sid], 2000,
            [line("lab", "1000", sid), line("lab", "1000", sid)],
            "BREAKDOWN_DUPLICATE_LINE",
        )

    async def test_two_consultation_lines(self, workflow: WorkflowService, store: RecordStore, patient_id: str):
        sid = add_service(store, patient_id, "1000")

        await self.assert_rejected(
            workflow, store, patient_id, [sid], 5000,
            [line("consultation", "2000"), line("consultation", "2000"), line("lab", "1000", sid)],
            "BREAKDOWN_DUPLICATE_LINE",
        )

    async def test_unselected_service_line(self, workflow: WorkflowService, store: RecordStore, patient_id: str):
        first = add_service(store, patient_id, "1000")
        second = add_service(store, patient_id, "1000")

        await self.assert_rejected(
            workflow, store, patient_id, [first], 2000,
            [line("lab", "1000", first), line("lab", "1000", second)],
            "BREAKDOWN_SERVICE_NOT_SELECTED",
        )

    async def test_consultation_plus_service_credits_both(
        self, workflow: WorkflowService, store: RecordStore, dashboard, patient_id: str
    ):
        sid = add_service(store, patient_id, "2500")

        await workflow.record_combined_payment(
            patient_id, [sid], 4500, [line("consultation", "2000"), line("lab", "2500", sid)]
        )

        assert status_of(store, EntityKind.SERVICES, sid) == ServiceStatus.PAID
        assert dashboard.payment_revenue("lab") == Decimal("2500")
        assert dashboard.payment_revenue("consultation") == Decimal("4000")


@pytest.mark.asyncio
@pytest.mark.unit
class TestDiagnosis:
    async def test_pharmacy_total_from_lines(self, workflow: WorkflowService, store: RecordStore, patient_id: str):
        result = await workflow.record_diagnosis(
            patient_id,
            "doc1",
            "Headache",
            [],
            [
                {"drug_name": "Paracetamol 500mg", "dosage": "500mg", "quantity": 10},
                {"drug_name": "Custom syrup", "dosage": "5ml", "quantity": 2, "unit_price": "75"},
            ],
        )

        service = store.get(EntityKind.SERVICES, result.pharmacy_service_id)
        assert service.service_type == ServiceType.PHARMACY
        assert service.items == ["Paracetamol 500mg", "Custom syrup"]
        assert service.total_amount == Decimal("650")
        assert result.lab_service_id is None

    async def test_no_orders_still_diagnoses(self, workflow: WorkflowService, store: RecordStore, patient_id: str):
        result = await workflow.record_diagnosis(patient_id, "doc1", "Healthy", [], [])

        assert result.service_ids == []
        assert store.count(EntityKind.SERVICES) == 0
        assert status_of(store, EntityKind.PATIENTS, patient_id) == PatientStatus.DIAGNOSED

    async def test_unknown_lab_test(self, workflow: WorkflowService, store: RecordStore, patient_id: str):
        with pytest.raises(NotFoundError):
            await workflow.record_diagnosis(patient_id, "doc1", "Flu", ["99"], [])
        assert store.count(EntityKind.DIAGNOSES) == 0

    async def test_unpriced_unknown_drug(self, workflow: WorkflowService, patient_id: str):
        with pytest.raises(ValidationError) as exc:
            await workflow.record_diagnosis(
                patient_id, "doc1", "Flu", [], [{"drug_name": "Mystery", "dosage": "1", "quantity": 1}]
            )
        assert exc.value.code == "UNKNOWN_MEDICATION_PRICE"

    async def test_blank_diagnosis_rejected(self, workflow: WorkflowService, patient_id: str):
        with pytest.raises(ValidationError):
            await workflow.record_diagnosis(patient_id, "doc1", "   ", ["1"], [])

    @pytest.mark.parametrize(
        "line",
        [
            {"drug_name": "Paracetamol 500mg", "dosage": "", "quantity": 2},
            {"drug_name": "Paracetamol 500mg", "dosage": "   ", "quantity": 2},
            {"drug_name": " ", "dosage": "5ml", "quantity": 1, "unit_price": "75"},
        ],
    )
    async def test_blank_prescription_fields_rejected(
        self, workflow: WorkflowService, store: RecordStore, patient_id: str, line
    ):
        with pytest.raises(ValidationError):
            await workflow.record_diagnosis(patient_id, "doc1", "Headache", [], [line])

        assert store.count(EntityKind.DIAGNOSES) == 0
        assert store.count(EntityKind.SERVICES) == 0
        assert status_of(store, EntityKind.PATIENTS, patient_id) != PatientStatus.DIAGNOSED

    async def test_service_total_frozen_after_price_change(
        self, workflow: WorkflowService, store: RecordStore, patient_id: str
    ):
        result = await workflow.record_diagnosis(patient_id, "doc1", "Malaria", ["1"], [])
        workflow.catalog = workflow.catalog.with_lab_test_price("1", Decimal("9999"))

        assert store.get(EntityKind.SERVICES, result.lab_service_id).total_amount == Decimal("2500")


@pytest.mark.asyncio
@pytest.mark.unit
class TestFulfilment:
    async def test_complete_twice(self, workflow: WorkflowService, store: RecordStore, patient_id: str):
        result = await workflow.record_diagnosis(patient_id, "doc1", "Malaria", ["1"], [])
        await workflow.record_payment(patient_id, "lab", 2500)

        await workflow.complete_service(result.lab_service_id)
        with pytest.raises(InvalidTransitionError):
            await workflow.complete_service(result.lab_service_id)
        assert status_of(store, EntityKind.SERVICES, result.lab_service_id) == ServiceStatus.COMPLETED

    async def test_pending_service_cannot_complete(self, workflow: WorkflowService, patient_id: str):
        result = await workflow.record_diagnosis(patient_id, "doc1", "Malaria", ["1"], [])

        with pytest.raises(InvalidTransitionError) as exc:
            await workflow.complete_service(result.lab_service_id)
        assert exc.value.code == "SERVICE_NOT_PAID"

    async def test_wrong_service_type(self, workflow: WorkflowService, patient_id: str):
        result = await workflow.record_diagnosis(
            patient_id, "doc1", "Pain", [], [{"drug_name": "Ibuprofen 400mg", "dosage": "1", "quantity": 1}]
        )
        await workflow.record_payment(patient_id, "pharmacy", 80)

        with pytest.raises(InvalidTransitionError) as exc:
            await workflow.complete_service(result.pharmacy_service_id)
        assert exc.value.code == "WRONG_SERVICE_TYPE"

    async def test_dispense_stamps_actor(self, workflow: WorkflowService, store: RecordStore, patient_id: str):
        result = await workflow.record_diagnosis(
            patient_id, "doc1", "Pain", [], [{"drug_name": "Ibuprofen 400mg", "dosage": "1", "quantity": 2}]
        )
        await workflow.record_payment(patient_id, "pharmacy", 160)

        service = await workflow.dispense_service(result.pharmacy_service_id, dispensed_by="4")

        assert service.status == ServiceStatus.DISPENSED
        assert service.dispensed_by == "4"
        assert service.completed_at is not None
        assert status_of(store, EntityKind.PATIENTS, patient_id) == PatientStatus.COMPLETED

    async def test_patient_waits_for_all_services(self, workflow: WorkflowService, store: RecordStore, patient_id: str):
        result = await workflow.record_diagnosis(
            patient_id,
            "doc1",
            "Infection",
            ["4"],
            [{"drug_name": "Amoxicillin 250mg", "dosage": "1", "quantity": 1}],
        )
        await workflow.record_combined_payment(patient_id, result.service_ids, 920)

        await workflow.complete_service(result.lab_service_id)
        assert status_of(store, EntityKind.PATIENTS, patient_id) != PatientStatus.COMPLETED

        await workflow.dispense_service(result.pharmacy_service_id, dispensed_by="4")
        assert status_of(store, EntityKind.PATIENTS, patient_id) == PatientStatus.COMPLETED

    async def test_unknown_service(self, workflow: WorkflowService):
        with pytest.raises(NotFoundError):
            await workflow.complete_service("SVC0404")


@pytest.mark.asyncio
@pytest.mark.unit
class TestVisits:
    async def _complete_visit(self, workflow: WorkflowService, patient_id: str) -> None:
        result = await workflow.record_diagnosis(patient_id, "doc1", "Malaria", ["4"], [])
        await workflow.record_payment(patient_id, "lab", 800)
        await workflow.complete_service(result.lab_service_id)

    async def test_completed_patient_is_closed(self, workflow: WorkflowService, store: RecordStore, patient_id: str):
        await self._complete_visit(workflow, patient_id)

        with pytest.raises(InvalidTransitionError) as exc:
            await workflow.record_payment(patient_id, "consultation", 2000)
        assert exc.value.code == "VISIT_CLOSED"
        with pytest.raises(InvalidTransitionError):
            await workflow.record_diagnosis(patient_id, "doc1", "Relapse", [], [])
        assert status_of(store, EntityKind.PATIENTS, patient_id) == PatientStatus.COMPLETED

    async def test_new_visit_reopens_patient(self, workflow: WorkflowService, store: RecordStore, patient_id: str):
        await self._complete_visit(workflow, patient_id)

        visit_id = await workflow.start_visit(patient_id, "Follow-up")
        await workflow.record_payment(patient_id, "consultation", 2000)
        result = await workflow.record_diagnosis(patient_id, "doc1", "Recovered", ["1"], [])

        patient = store.get(EntityKind.PATIENTS, patient_id)
        assert visit_id == "V0001"
        assert patient.is_returning is True
        assert patient.status == PatientStatus.DIAGNOSED
        assert patient.current_visit.total_amount == Decimal("2000")
        assert patient.current_visit.referred_services == [result.lab_service_id]

    async def test_visit_requires_reason(self, workflow: WorkflowService, patient_id: str):
        with pytest.raises(ValidationError):
            await workflow.start_visit(patient_id, " ")


@pytest.mark.asyncio
@pytest.mark.unit
class TestWriteThrough:
    """A gateway failure must leave the store exactly as it was."""

    async def test_accepted_changes_are_sent_as_one_batch(self, workflow: WorkflowService, gateway, patient_id: str):
        result = await workflow.record_diagnosis(patient_id, "doc1", "Malaria", ["1"], [])

        batch = gateway.batches[-1]
        tables = [change.table for change in batch]
        assert tables == ["diagnoses", "patient_services", "patients"]
        assert batch[1].record_id == result.lab_service_id

    async def test_failed_payment_leaves_store_unchanged(
        self, workflow: WorkflowService, store: RecordStore, gateway, patient_id: str
    ):
        sid = add_service(store, patient_id, "1000")
        payments_before = store.count(EntityKind.PAYMENTS)
        status_before = status_of(store, EntityKind.PATIENTS, patient_id)

        gateway.fail_next = True
        with pytest.raises(CollaboratorError):
            await workflow.record_payment(patient_id, "lab", 1000)

        assert store.count(EntityKind.PAYMENTS) == payments_before
        assert status_of(store, EntityKind.SERVICES, sid) == ServiceStatus.PENDING
        assert status_of(store, EntityKind.PATIENTS, patient_id) == status_before

    async def test_receipts_stay_increasing_after_failure(self, workflow: WorkflowService, gateway, patient_id: str):
        gateway.fail_next = True
        with pytest.raises(CollaboratorError):
            await workflow.record_payment(patient_id, "consultation", 100)

        receipt = await workflow.record_payment(patient_id, "consultation", 100)
        assert int(receipt[3:]) > 1000

    async def test_failed_diagnosis_creates_nothing(
        self, workflow: WorkflowService, store: RecordStore, gateway, patient_id: str
    ):
        gateway.fail_next = True
        with pytest.raises(CollaboratorError):
            await workflow.record_diagnosis(patient_id, "doc1", "Malaria", ["1"], [])

        assert store.count(EntityKind.DIAGNOSES) == 0
        assert store.count(EntityKind.SERVICES) == 0
        assert status_of(store, EntityKind.PATIENTS, patient_id) == PatientStatus.PAID_CONSULTATION

    async def test_failed_registration_adds_no_patient(self, workflow: WorkflowService, store: RecordStore, gateway):
        gateway.fail_next = True
        with pytest.raises(CollaboratorError):
            await workflow.register_patient("Jane", 30, "female", "555")
        assert store.count(EntityKind.PATIENTS) == 0
