from .user_model import Role, User
from .catalog_model import LabTest, Medication
from .patient_model import (
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
from .service_model import PatientService, ServiceStatus, ServiceType
