"""
Model registry.

Importing this module registers every table on ``Base.metadata`` so that
mappers resolve their string relationships and Alembic sees the full schema.
"""

from admissions.core.database import Base
from admissions.modules.documents.models import EnrollmentDocument
from admissions.modules.enrollments.models import Enrollment
from admissions.modules.guardians.models import Guardian, guardian_students
from admissions.modules.installments.models import FinancialPlan, Installment
from admissions.modules.notifications.models import AdminNotification
from admissions.modules.students.models import Student

__all__ = [
    "AdminNotification",
    "Base",
    "Enrollment",
    "EnrollmentDocument",
    "FinancialPlan",
    "Guardian",
    "Installment",
    "Student",
    "guardian_students",
]
