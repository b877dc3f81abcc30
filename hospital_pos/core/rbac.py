"""
Role and permission tables.

Every role maps to an explicit set of permissions and to the dashboard the
client renders for it. Routes never branch on role names; they ask for a
permission and this table decides.
"""
from typing import Dict, FrozenSet, List

from hospital_pos.models.user_model import Role


# Permission names by category
DEFAULT_PERMISSIONS = {
    # Patients
    "patient.register": "Register new patients and start visits",
    "patient.read": "View patient records and histories",
    # Payments
    "payment.record": "Collect consultation, service and combined payments",
    "payment.read": "View receipts and payment history",
    # Clinical
    "diagnosis.record": "Record diagnoses, lab orders and prescriptions",
    "diagnosis.read": "View diagnoses",
    # Fulfilment
    "service.complete": "Complete paid lab services",
    "service.dispense": "Dispense paid prescriptions",
    "service.read": "View service queues",
    # Catalog
    "catalog.read": "View lab tests and medications",
    # Reports
    "report.overview": "View front-desk totals",
    "report.lab": "View lab department analytics",
    "report.pharmacy": "View pharmacy department analytics",
    # Administration
    "user.list": "List staff accounts",
    "user.create": "Provision staff accounts",
    "role.assign": "Change a staff member's role",
}


DEFAULT_ROLES: Dict[Role, Dict[str, object]] = {
    Role.CASHIER: {
        "dashboard": "cashier",
        "permissions": [
            "patient.register",
            "patient.read",
            "payment.record",
            "payment.read",
            "service.read",
            "catalog.read",
            "report.overview",
        ],
    },
    Role.DOCTOR: {
        "dashboard": "doctor",
        "permissions": [
            "patient.read",
            "diagnosis.record",
            "diagnosis.read",
            "catalog.read",
        ],
    },
    Role.LAB: {
        "dashboard": "lab",
        "permissions": [
            "patient.read",
            "diagnosis.read",
            "service.read",
            "service.complete",
            "catalog.read",
        ],
    },
    Role.PHARMACY: {
        "dashboard": "pharmacy",
        "permissions": [
            "patient.read",
            "diagnosis.read",
            "service.read",
            "service.dispense",
            "catalog.read",
        ],
    },
    Role.HOD_LAB: {
        "dashboard": "hod_lab",
        "permissions": [
            "patient.read",
            "payment.read",
            "service.read",
            "catalog.read",
            "report.lab",
        ],
    },
    Role.HOD_PHARMACY: {
        "dashboard": "hod_pharmacy",
        "permissions": [
            "patient.read",
            "payment.read",
            "service.read",
            "catalog.read",
            "report.pharmacy",
        ],
    },
    Role.ADMIN: {
        "dashboard": "admin",
        "permissions": [
            "patient.read",
            "payment.read",
            "diagnosis.read",
            "service.read",
            "catalog.read",
            "report.overview",
            "report.lab",
            "report.pharmacy",
            "user.list",
            "user.create",
            "role.assign",
        ],
    },
}


ROLE_PERMISSIONS: Dict[Role, FrozenSet[str]] = {
    role: frozenset(config["permissions"]) for role, config in DEFAULT_ROLES.items()
}

ROLE_DASHBOARDS: Dict[Role, str] = {
    role: config["dashboard"] for role, config in DEFAULT_ROLES.items()
}


def permissions_for(role: Role) -> List[str]:
    return sorted(ROLE_PERMISSIONS[role])


def role_has_permission(role: Role, permission: str) -> bool:
    if permission not in DEFAULT_PERMISSIONS:
        raise KeyError(f"Unknown permission: {permission}")
    return permission in ROLE_PERMISSIONS[role]


def dashboard_for(role: Role) -> str:
    return ROLE_DASHBOARDS[role]
