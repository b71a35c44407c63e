"""
Renewals module - next year's enrollment for returning students.
"""
