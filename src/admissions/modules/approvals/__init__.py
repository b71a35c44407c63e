"""
Approvals module - turns an enrollment into an official student record.
"""
