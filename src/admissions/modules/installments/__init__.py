"""
Installments module - payment schedules generated from financial plans.
"""

from admissions.modules.installments.models import (
    FinancialPlan,
    Installment,
    InstallmentStatus,
    NegotiationType,
)

__all__ = ["FinancialPlan", "Installment", "InstallmentStatus", "NegotiationType"]
