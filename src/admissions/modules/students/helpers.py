"""
Helper functions for students.

Maps enrollment data onto student record fields. The same mapping is used
when a student is created at approval and when later enrollment edits are
propagated.
"""

import logging
from datetime import date

from admissions.modules.enrollments.models import Enrollment

logger = logging.getLogger(__name__)


def parse_birth_date(value: str | None) -> date | None:
    """Parse a ``YYYY-MM-DD`` birth date, returning None when blank or malformed."""
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring malformed birth date: {value!r}")
        return None


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


def build_student_fields(enrollment: Enrollment) -> dict:
    """
    Build student record fields from an enrollment.

    Returns:
        Dict with name, cpf, rg, birth_date, address, health_info and
        financial_responsible
    """
    details = enrollment.details or {}

    return {
        "name": enrollment.candidate_name,
        "cpf": _blank_to_none(details.get("student_cpf")),
        "rg": _blank_to_none(details.get("rg")),
        "birth_date": parse_birth_date(details.get("birth_date")),
        "address": {
            "zip_code": details.get("zip_code"),
            "street": details.get("address"),
            "number": details.get("address_number"),
            "neighbor": details.get("neighbor"),
            "city": details.get("city"),
            "state": details.get("state"),
            "complement": details.get("complement"),
        },
        "health_info": {
            "blood_type": details.get("blood_type"),
            "allergies": details.get("allergies"),
            "health_insurance": details.get("health_insurance"),
            "health_insurance_number": details.get("health_insurance_number"),
        },
        "financial_responsible": {
            "name": details.get("parent_name") or enrollment.parent_name,
            "cpf": details.get("parent_cpf"),
            "email": details.get("parent_email") or enrollment.parent_email,
            "phone": details.get("parent_phone") or enrollment.parent_phone,
        },
    }
