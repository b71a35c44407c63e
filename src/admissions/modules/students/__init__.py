"""
Students module - official student records provisioned at approval.
"""

from admissions.modules.students.models import Student, StudentStatus
from admissions.modules.students.repository import StudentRepository

__all__ = ["Student", "StudentStatus", "StudentRepository"]
