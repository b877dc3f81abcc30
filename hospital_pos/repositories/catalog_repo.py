from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from hospital_pos.core.exceptions import NotFoundError
from hospital_pos.models.catalog_model import LabTest, Medication


DEFAULT_LAB_TESTS = (
    LabTest(id="1", name="Blood Test (Full)", price=Decimal("2500"), description="Complete blood count"),
    LabTest(id="2", name="Urine Test", price=Decimal("1500"), description="Urinalysis"),
    LabTest(id="3", name="X-Ray Chest", price=Decimal("3000"), description="Chest X-ray examination"),
    LabTest(id="4", name="Blood Sugar", price=Decimal("800"), description="Glucose level test"),
    LabTest(id="5", name="ECG", price=Decimal("2000"), description="Electrocardiogram"),
)

DEFAULT_MEDICATIONS = (
    Medication(id="1", name="Paracetamol 500mg", price=Decimal("50")),
    Medication(id="2", name="Amoxicillin 250mg", price=Decimal("120")),
    Medication(id="3", name="Ibuprofen 400mg", price=Decimal("80")),
    Medication(id="4", name="Vitamin C 1000mg", price=Decimal("30")),
    Medication(id="5", name="Omeprazole 20mg", price=Decimal("150")),
)


class Catalog:
    """
    Read-only lab test and medication price list.

    A catalog never changes after construction. Price updates produce a
    new Catalog, so anything priced from an older one keeps its amounts.
    """

    def __init__(
        self,
        lab_tests: Iterable[LabTest] = DEFAULT_LAB_TESTS,
        medications: Iterable[Medication] = DEFAULT_MEDICATIONS,
    ):
        self._lab_tests: Dict[str, LabTest] = {t.id: t for t in lab_tests}
        self._medications: Dict[str, Medication] = {m.id: m for m in medications}

    # ============= Lab Tests =============
    @property
    def lab_tests(self) -> List[LabTest]:
        return list(self._lab_tests.values())

    def lab_test(self, test_id: str) -> LabTest:
        try:
            return self._lab_tests[test_id]
        except KeyError:
            raise NotFoundError(
                f"Lab test {test_id!r} is not in the catalog",
                code="LAB_TEST_NOT_FOUND",
                detail={"lab_test_id": test_id},
            ) from None

    def lab_total(self, test_ids: Iterable[str]) -> Decimal:
        return sum((self.lab_test(t).price for t in test_ids), Decimal("0"))

    # ============= Medications =============
    @property
    def medications(self) -> List[Medication]:
        return list(self._medications.values())

    def medication(self, medication_id: str) -> Medication:
        try:
            return self._medications[medication_id]
        except KeyError:
            raise NotFoundError(
                f"Medication {medication_id!r} is not in the catalog",
                code="MEDICATION_NOT_FOUND",
                detail={"medication_id": medication_id},
            ) from None

    def medication_by_name(self, name: str) -> Optional[Medication]:
        for medication in self._medications.values():
            if medication.name == name:
                return medication
        return None

    # ============= Display =============
    def label_for(self, item: str) -> str:
        """Human name for a service item: lab test ids resolve, drug names pass through."""
        test = self._lab_tests.get(item)
        return test.name if test else item

    # ============= Copies =============
    def with_lab_test_price(self, test_id: str, price: Decimal) -> "Catalog":
        updated = self.lab_test(test_id).model_copy(update={"price": price})
        return Catalog(
            lab_tests=[updated if t.id == test_id else t for t in self.lab_tests],
            medications=self.medications,
        )

    def with_medication_price(self, medication_id: str, price: Decimal) -> "Catalog":
        updated = self.medication(medication_id).model_copy(update={"price": price})
        return Catalog(
            lab_tests=self.lab_tests,
            medications=[updated if m.id == medication_id else m for m in self.medications],
        )
