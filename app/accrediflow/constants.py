"""
Central constants for the AccrediFlow application.
"""
from __future__ import annotations

ROLE_SUPERADMIN = "superadmin"
ROLE_ADMIN = "admin"
ROLE_COORDINATOR = "coordinator"
ROLE_HOD = "hod"
ROLE_FACULTY = "faculty"

VALID_ROLES = frozenset({ROLE_SUPERADMIN, ROLE_ADMIN, ROLE_COORDINATOR, ROLE_HOD, ROLE_FACULTY})

# Roles an institute admin may provision.
INSTITUTE_ROLES = frozenset({ROLE_COORDINATOR, ROLE_HOD, ROLE_FACULTY})

ACCREDITATION_BODIES = ("NAAC", "NBA", "NIRF")

# Evidence each role is expected to upload, as (body, name) pairs.
DOCUMENT_CATEGORIES: dict[str, tuple[tuple[str, str], ...]] = {
    ROLE_FACULTY: (
        ("NAAC", "Faculty CVs"),
        ("NAAC", "Certificates of Awards"),
        ("NBA", "Final Year Project Reports"),
    ),
    ROLE_HOD: (
        ("NAAC", "Student Feedback Reports"),
        ("NBA", "Placement Statistics"),
        ("NBA", "Lab Manuals & Records"),
        ("NBA", "Placement & Higher Studies Proof"),
    ),
    ROLE_COORDINATOR: (
        ("NIRF", "Student to Teacher Ratio"),
        ("NIRF", "Quantity of Research"),
        ("NIRF", "Median Salary of Graduates"),
        ("NIRF", "%age of Women or Students from Other States/Countries"),
        ("NAAC", "Student-Teacher Ratio"),
    ),
}


def category_label(body: str, name: str) -> str:
    return f"{body}: {name}"


def categories_for_role(role: str) -> list[str]:
    return [category_label(body, name) for body, name in DOCUMENT_CATEGORIES.get(role, ())]
