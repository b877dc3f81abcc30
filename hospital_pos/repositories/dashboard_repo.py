from collections import Counter
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from hospital_pos.core.exceptions import NotFoundError, ValidationError
from hospital_pos.models.patient_model import (
    BreakdownKind,
    Diagnosis,
    Patient,
    PatientStatus,
    Payment,
    PaymentType,
)
from hospital_pos.models.service_model import (
    BILLABLE_STATUSES,
    TERMINAL_STATUS,
    PatientService,
    ServiceStatus,
    ServiceType,
)
from hospital_pos.repositories.catalog_repo import Catalog
from hospital_pos.repositories.record_store import EntityKind, RecordStore


REVENUE_METRICS = ("payments", "services")


class DashboardRepository:
    """
    Read-only views over the record store.

    Every method recomputes from the current store contents; nothing is
    cached and nothing here writes.

    Revenue has two definitions that are never mixed:

    * payment revenue: cash collected. Combined payments count toward a
      department through their breakdown lines.
    * service revenue: totals of services in paid, completed or dispensed
      status, whether or not the cash came in one payment.
    """

    def __init__(self, store: RecordStore, catalog: Catalog):
        self.store = store
        self.catalog = catalog

    # ============= Patients =============
    def patients_by_status(self, status: Optional[Union[PatientStatus, str]] = None) -> List[Patient]:
        patients = self.store.all(EntityKind.PATIENTS)
        if status is None:
            return list(patients)
        status = PatientStatus(status)
        return [p for p in patients if p.status == status]

    def patient(self, patient_id: str) -> Patient:
        return self.store.get(EntityKind.PATIENTS, patient_id)

    def diagnoses_for_patient(self, patient_id: str) -> List[Diagnosis]:
        self.store.get(EntityKind.PATIENTS, patient_id)
        return [d for d in self.store.all(EntityKind.DIAGNOSES) if d.patient_id == patient_id]

    # ============= Payments =============
    def payments(self, payment_type: Optional[Union[PaymentType, str]] = None) -> List[Payment]:
        """All payments newest first."""
        payments = self.store.all(EntityKind.PAYMENTS)
        if payment_type is not None:
            payment_type = PaymentType(payment_type)
            payments = [p for p in payments if p.type == payment_type]
        return sorted(payments, key=lambda p: p.receipt_sequence, reverse=True)

    def payments_for_patient(self, patient_id: str) -> List[Payment]:
        return [p for p in self.store.all(EntityKind.PAYMENTS) if p.patient_id == patient_id]

    def payment_by_receipt(self, receipt_number: str) -> Payment:
        for payment in self.store.all(EntityKind.PAYMENTS):
            if payment.receipt_number == receipt_number:
                return payment
        raise NotFoundError(
            f"Receipt {receipt_number} not found",
            code="RECEIPT_NOT_FOUND",
            detail={"receipt_number": receipt_number},
        )

    # ============= Services =============
    def services_for_patient(self, patient_id: str) -> List[PatientService]:
        return [s for s in self.store.all(EntityKind.SERVICES) if s.patient_id == patient_id]

    def pending_services_for_patient(self, patient_id: str) -> List[PatientService]:
        return [
            s for s in self.services_for_patient(patient_id) if s.status == ServiceStatus.PENDING
        ]

    def unpaid_balance(self, patient_id: str) -> Decimal:
        """Sum of the patient's pending service totals."""
        return sum(
            (s.total_amount for s in self.pending_services_for_patient(patient_id)),
            Decimal("0"),
        )

    def service_queue(self, service_type: Union[ServiceType, str]) -> List[PatientService]:
        """Paid services of ``service_type`` waiting to be completed or dispensed, oldest first."""
        service_type = ServiceType(service_type)
        return [
            s
            for s in self.store.all(EntityKind.SERVICES)
            if s.service_type == service_type and s.status == ServiceStatus.PAID
        ]

    # ============= Revenue =============
    def payment_revenue(self, revenue_type: Optional[str] = None) -> Decimal:
        """Cash collected, optionally for one payment type or department."""
        payments = self.store.all(EntityKind.PAYMENTS)
        if revenue_type is None:
            return sum((p.amount for p in payments), Decimal("0"))

        revenue_type = PaymentType(revenue_type)
        if revenue_type == PaymentType.COMBINED:
            return sum(
                (p.amount for p in payments if p.type == PaymentType.COMBINED),
                Decimal("0"),
            )

        kind = BreakdownKind(revenue_type.value)
        total = Decimal("0")
        for payment in payments:
            if payment.type == revenue_type:
                total += payment.amount
            elif payment.type == PaymentType.COMBINED and payment.breakdown:
                total += sum(
                    (line.amount for line in payment.breakdown if line.kind == kind),
                    Decimal("0"),
                )
        return total

    def service_revenue(self, service_type: Union[ServiceType, str]) -> Decimal:
        service_type = ServiceType(service_type)
        return sum(
            (
                s.total_amount
                for s in self.store.all(EntityKind.SERVICES)
                if s.service_type == service_type and s.status in BILLABLE_STATUSES
            ),
            Decimal("0"),
        )

    def revenue_by_type(self, revenue_type: str, metric: str = "payments") -> Decimal:
        if metric == "payments":
            return self.payment_revenue(revenue_type)
        if metric == "services":
            try:
                service_type = ServiceType(revenue_type)
            except ValueError:
                raise ValidationError(
                    f"Service revenue is only defined for lab and pharmacy, not {revenue_type!r}",
                    code="INVALID_REVENUE_TYPE",
                ) from None
            return self.service_revenue(service_type)
        raise ValidationError(
            f"Unknown revenue metric {metric!r}",
            code="INVALID_REVENUE_METRIC",
            detail={"allowed": list(REVENUE_METRICS)},
        )

    # ============= Analytics =============
    def top_items(self, service_type: Union[ServiceType, str], limit: int = 5) -> List[Dict[str, Any]]:
        """Most frequent item labels; ties keep first-seen order."""
        service_type = ServiceType(service_type)
        counts: Counter = Counter()
        for service in self.store.all(EntityKind.SERVICES):
            if service.service_type != service_type:
                continue
            for item in service.items:
                counts[self.catalog.label_for(item)] += 1

        # Counter keeps insertion order and sorted() is stable.
        ranked = sorted(counts.items(), key=lambda pair: pair[1], reverse=True)
        return [{"item": label, "count": count} for label, count in ranked[:max(limit, 0)]]

    def overview(self) -> Dict[str, Any]:
        """Front-desk summary cards."""
        patients = self.store.all(EntityKind.PATIENTS)
        services = self.store.all(EntityKind.SERVICES)
        status_counts = Counter(p.status.value for p in patients)

        return {
            "total_patients": len(patients),
            "patients_by_status": {
                status.value: status_counts.get(status.value, 0) for status in PatientStatus
            },
            "payment_pending_patients": status_counts.get(PatientStatus.PAYMENT_PENDING.value, 0),
            "total_payments": self.store.count(EntityKind.PAYMENTS),
            "total_collected": self.payment_revenue(),
            "pending_services": sum(1 for s in services if s.status == ServiceStatus.PENDING),
            "revenue_by_type": {
                t.value: self.payment_revenue(t.value)
                for t in (PaymentType.CONSULTATION, PaymentType.LAB, PaymentType.PHARMACY)
            },
        }

    def department_report(
        self,
        service_type: Union[ServiceType, str],
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        recent_limit: int = 10,
    ) -> Dict[str, Any]:
        """
        Head-of-department report for the lab or pharmacy.

        Performance is grouped by the actor stamped on each fulfilled
        service. ``start`` / ``end`` narrow the fulfilled services by their
        completion time; counts by status always cover every service. Bounds
        without a timezone are read as UTC.
        """
        service_type = ServiceType(service_type)
        terminal = TERMINAL_STATUS[service_type]
        start, end = _as_utc(start), _as_utc(end)
        services = [
            s for s in self.store.all(EntityKind.SERVICES) if s.service_type == service_type
        ]
        status_counts = Counter(s.status.value for s in services)

        fulfilled = [
            s
            for s in services
            if s.status == terminal and _within(s.completed_at, start, end)
        ]
        fulfilled_total = sum((s.total_amount for s in fulfilled), Decimal("0"))
        average = (
            (fulfilled_total / len(fulfilled)).quantize(Decimal("0.01"))
            if fulfilled
            else Decimal("0")
        )

        performance: Dict[str, Dict[str, Any]] = {}
        for service in fulfilled:
            actor = service.fulfilled_by or "unknown"
            entry = performance.setdefault(
                actor, {"actor": actor, "fulfilled": 0, "revenue": Decimal("0")}
            )
            entry["fulfilled"] += 1
            entry["revenue"] += service.total_amount

        recent = sorted(
            fulfilled,
            key=lambda s: s.completed_at,
            reverse=True,
        )[:recent_limit]

        return {
            "service_type": service_type.value,
            "total_services": len(services),
            "status_counts": {
                status.value: status_counts.get(status.value, 0)
                for status in (ServiceStatus.PENDING, ServiceStatus.PAID, terminal)
            },
            "payment_revenue": self.payment_revenue(service_type.value),
            "service_revenue": self.service_revenue(service_type),
            "fulfilled_count": len(fulfilled),
            "average_per_fulfilled": average,
            "top_items": self.top_items(service_type, limit=5),
            "performance": sorted(
                performance.values(), key=lambda entry: entry["fulfilled"], reverse=True
            ),
            "recent": recent,
        }


def _as_utc(moment: Optional[datetime]) -> Optional[datetime]:
    if moment is None or moment.tzinfo is not None:
        return moment
    return moment.replace(tzinfo=timezone.utc)


def _within(moment: Optional[datetime], start: Optional[datetime], end: Optional[datetime]) -> bool:
    if moment is None:
        return start is None and end is None
    if start and moment < start:
        return False
    if end and moment > end:
        return False
    return True
