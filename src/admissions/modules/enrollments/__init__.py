"""
Enrollments Module

Handles the enrollment lifecycle:
1. Staff create a draft and the family receives an invitation link
2. The family fills in the wizard (autosaved) and uploads documents
3. The family submits; staff review documents and approve
4. Approval creates the student record (see the approvals module)

Security Features:
- SHA-256 token hashing (invitation tokens never stored in plain text)
- Optimistic concurrency on edits
- State machine validation for status transitions
"""
