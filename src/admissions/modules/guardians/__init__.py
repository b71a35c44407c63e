"""
Guardians module - portal accounts for the families of enrolled students.
"""

from admissions.modules.guardians.models import Guardian, guardian_students

__all__ = ["Guardian", "guardian_students"]
