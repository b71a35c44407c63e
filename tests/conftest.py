"""
Shared fixtures for the admissions test suite.
"""

from collections.abc import Callable
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

import admissions.models  # noqa: F401  (registers every mapper)
from admissions.core.rate_limit import reset_memory_store
from admissions.modules.documents.models import DocumentKind, DocumentStatus, EnrollmentDocument
from admissions.modules.enrollments.models import Enrollment, EnrollmentStatus


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.refresh = AsyncMock()
    db.flush = AsyncMock()
    db.get = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def make_enrollment() -> Callable[..., MagicMock]:
    """Factory for enrollment models with realistic defaults."""

    def _make(status: EnrollmentStatus = EnrollmentStatus.DRAFT, **overrides) -> MagicMock:
        enrollment = MagicMock(spec=Enrollment)
        enrollment.id = uuid4()
        enrollment.invite_token_hash = "a" * 64
        enrollment.candidate_name = "Ana Souza"
        enrollment.academic_year = 2025
        enrollment.parent_name = "Maria Souza"
        enrollment.parent_email = "maria@example.com"
        enrollment.parent_phone = "+55 11 99999-0000"
        enrollment.details = {
            "enrollment_type": "new",
            "student_cpf": "111.222.333-44",
            "birth_date": "2015-03-10",
            "parent_cpf": "555.666.777-88",
            "city": "Campinas",
        }
        enrollment.status = status
        enrollment.version = 1
        enrollment.student_id = None
        enrollment.financial_plan_id = None
        enrollment.student_sync_pending = False
        enrollment.documents = []
        enrollment.submitted_at = None
        enrollment.approved_at = None
        enrollment.approved_by = None
        enrollment.created_at = datetime.now(UTC)
        enrollment.updated_at = datetime.now(UTC)
        for key, value in overrides.items():
            setattr(enrollment, key, value)
        return enrollment

    return _make


@pytest.fixture
def make_document() -> Callable[..., MagicMock]:
    """Factory for stored document rows."""

    def _make(
        kind: DocumentKind = DocumentKind.STUDENT_ID,
        status: DocumentStatus = DocumentStatus.UPLOADED,
        **overrides,
    ) -> MagicMock:
        document = MagicMock(spec=EnrollmentDocument)
        document.id = uuid4()
        document.enrollment_id = uuid4()
        document.kind = kind
        document.status = status
        document.storage_ref = f"enrollments/{document.enrollment_id}/{kind.value}_file.pdf"
        document.file_name = "file.pdf"
        document.content_type = "application/pdf"
        document.size_bytes = 1024
        document.uploaded_at = datetime.now(UTC)
        document.reviewed_at = None
        document.reviewed_by = None
        document.rejection_reason = None
        for key, value in overrides.items():
            setattr(document, key, value)
        return document

    return _make


@pytest.fixture(autouse=True)
def clear_rate_limits():
    """Start every test with empty in-memory rate limit counters."""
    reset_memory_store()
    yield
    reset_memory_store()
