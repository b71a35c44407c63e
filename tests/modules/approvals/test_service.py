"""
Unit tests for the approval service.

These tests cover:
- Student provisioning from enrollment data
- Rollback when provisioning fails
- Status checks
- Optional guardian access after approval
"""

from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from admissions.core.errors import InvalidTransitionError
from admissions.modules.approvals import service
from admissions.modules.approvals.service import (
    CannotApproveEnrollmentError,
    StudentProvisioningError,
    approve_enrollment,
    grant_guardian_access,
)
from admissions.modules.enrollments.models import EnrollmentStatus
from admissions.modules.enrollments.service import EnrollmentNotFoundError
from admissions.modules.guardians.service import GuardianAccessResult
from admissions.modules.students.models import StudentStatus

SERVICE = "admissions.modules.approvals.service"


@pytest.fixture
def student_repo():
    repo = MagicMock()
    student = MagicMock()
    student.id = uuid4()
    repo.create = AsyncMock(return_value=student)
    with patch(f"{SERVICE}.StudentRepository", repo):
        yield repo


class TestApproveEnrollment:
    """Tests for approve_enrollment."""

    @pytest.mark.asyncio
    async def test_creates_student_and_links_it(self, mock_db, make_enrollment, student_repo):
        enrollment = make_enrollment(EnrollmentStatus.SENT)
        staff_id = uuid4()

        with patch.object(
            service.enrollment_repository,
            "get_by_id_for_update",
            AsyncMock(return_value=enrollment),
        ):
            result = await approve_enrollment(mock_db, enrollment.id, staff_id)

        student_id = student_repo.create.return_value.id
        assert result.student_id == student_id
        assert result.documents_complete is False
        assert result.guardian_access is None

        kwargs = student_repo.create.call_args.kwargs
        assert kwargs["origin_enrollment_id"] == enrollment.id
        assert kwargs["name"] == "Ana Souza"
        assert kwargs["cpf"] == "111.222.333-44"
        assert kwargs["birth_date"] == date(2015, 3, 10)
        assert kwargs["address"]["city"] == "Campinas"
        assert kwargs["financial_responsible"]["cpf"] == "555.666.777-88"

        assert enrollment.status == EnrollmentStatus.APPROVED
        assert enrollment.student_id == student_id
        assert enrollment.approved_by == staff_id
        assert enrollment.approved_at is not None
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_renewal_reuses_existing_student(self, mock_db, make_enrollment, student_repo):
        existing = MagicMock()
        existing.id = uuid4()
        student_repo.get_by_id = AsyncMock(return_value=existing)
        student_repo.update_fields = AsyncMock(return_value=existing)
        enrollment = make_enrollment(
            EnrollmentStatus.SENT, academic_year=2026, student_id=existing.id
        )

        with patch.object(
            service.enrollment_repository,
            "get_by_id_for_update",
            AsyncMock(return_value=enrollment),
        ):
            result = await approve_enrollment(mock_db, enrollment.id, uuid4())

        student_repo.create.assert_not_awaited()
        assert result.student_id == existing.id
        assert enrollment.student_id == existing.id
        assert enrollment.status == EnrollmentStatus.APPROVED

        kwargs = student_repo.update_fields.call_args.kwargs
        assert student_repo.update_fields.call_args.args == (mock_db, existing)
        assert kwargs["status"] == StudentStatus.ACTIVE
        assert kwargs["cpf"] == "111.222.333-44"
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_renewal_with_missing_student_rolls_back(
        self, mock_db, make_enrollment, student_repo
    ):
        student_repo.get_by_id = AsyncMock(return_value=None)
        enrollment = make_enrollment(EnrollmentStatus.SENT, student_id=uuid4())

        with patch.object(
            service.enrollment_repository,
            "get_by_id_for_update",
            AsyncMock(return_value=enrollment),
        ):
            with pytest.raises(StudentProvisioningError):
                await approve_enrollment(mock_db, enrollment.id, uuid4())

        assert enrollment.status == EnrollmentStatus.SENT
        student_repo.create.assert_not_awaited()
        mock_db.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_draft_can_be_approved_directly(self, mock_db, make_enrollment, student_repo):
        enrollment = make_enrollment(EnrollmentStatus.DRAFT)

        with patch.object(
            service.enrollment_repository,
            "get_by_id_for_update",
            AsyncMock(return_value=enrollment),
        ):
            await approve_enrollment(mock_db, enrollment.id, uuid4())

        assert enrollment.status == EnrollmentStatus.APPROVED

    @pytest.mark.asyncio
    async def test_provisioning_failure_rolls_back(self, mock_db, make_enrollment, student_repo):
        enrollment = make_enrollment(EnrollmentStatus.SENT)
        student_repo.create = AsyncMock(side_effect=RuntimeError("students table locked"))

        with patch.object(
            service.enrollment_repository,
            "get_by_id_for_update",
            AsyncMock(return_value=enrollment),
        ):
            with pytest.raises(StudentProvisioningError) as exc_info:
                await approve_enrollment(mock_db, enrollment.id, uuid4())

        assert exc_info.value.status_code == 503
        assert exc_info.value.error_code == "STUDENT_PROVISIONING_FAILED"
        assert enrollment.status == EnrollmentStatus.SENT
        assert enrollment.student_id is None
        mock_db.rollback.assert_awaited_once()
        mock_db.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_commit_failure_rolls_back(self, mock_db, make_enrollment, student_repo):
        enrollment = make_enrollment(EnrollmentStatus.SENT)
        mock_db.commit = AsyncMock(side_effect=RuntimeError("connection reset"))

        with patch.object(
            service.enrollment_repository,
            "get_by_id_for_update",
            AsyncMock(return_value=enrollment),
        ):
            with pytest.raises(StudentProvisioningError):
                await approve_enrollment(mock_db, enrollment.id, uuid4())

        mock_db.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [EnrollmentStatus.APPROVED, EnrollmentStatus.CANCELLED])
    async def test_cannot_approve_twice_or_cancelled(
        self, mock_db, make_enrollment, student_repo, status
    ):
        enrollment = make_enrollment(status)

        with patch.object(
            service.enrollment_repository,
            "get_by_id_for_update",
            AsyncMock(return_value=enrollment),
        ):
            with pytest.raises(CannotApproveEnrollmentError) as exc_info:
                await approve_enrollment(mock_db, enrollment.id, uuid4())

        assert exc_info.value.status_code == 409
        student_repo.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_enrollment(self, mock_db, student_repo):
        with patch.object(
            service.enrollment_repository, "get_by_id_for_update", AsyncMock(return_value=None)
        ):
            with pytest.raises(EnrollmentNotFoundError):
                await approve_enrollment(mock_db, uuid4(), uuid4())

    @pytest.mark.asyncio
    async def test_guardian_access_is_provisioned(self, mock_db, make_enrollment, student_repo):
        enrollment = make_enrollment(EnrollmentStatus.SENT)
        access = GuardianAccessResult(guardian_id=uuid4(), created=True, email_sent=True)

        with (
            patch.object(
                service.enrollment_repository,
                "get_by_id_for_update",
                AsyncMock(return_value=enrollment),
            ),
            patch.object(
                service.enrollment_repository, "get_by_id", AsyncMock(return_value=enrollment)
            ),
            patch(f"{SERVICE}.create_guardian_account", AsyncMock(return_value=access)) as create,
        ):
            result = await approve_enrollment(
                mock_db, enrollment.id, uuid4(), provision_guardian=True
            )

        assert result.guardian_access is access
        create.assert_awaited_once()
        assert create.call_args.args[2] == "maria@example.com"

    @pytest.mark.asyncio
    async def test_guardian_failure_keeps_approval(self, mock_db, make_enrollment, student_repo):
        enrollment = make_enrollment(EnrollmentStatus.SENT)

        with (
            patch.object(
                service.enrollment_repository,
                "get_by_id_for_update",
                AsyncMock(return_value=enrollment),
            ),
            patch.object(
                service.enrollment_repository, "get_by_id", AsyncMock(return_value=enrollment)
            ),
            patch(
                f"{SERVICE}.create_guardian_account",
                AsyncMock(side_effect=RuntimeError("mail provider down")),
            ),
        ):
            result = await approve_enrollment(
                mock_db, enrollment.id, uuid4(), provision_guardian=True
            )

        assert result.guardian_access is None
        assert enrollment.status == EnrollmentStatus.APPROVED
        mock_db.commit.assert_awaited_once()


class TestGrantGuardianAccess:
    @pytest.mark.asyncio
    async def test_requires_approved_enrollment(self, mock_db, make_enrollment):
        enrollment = make_enrollment(EnrollmentStatus.SENT)

        with patch.object(
            service.enrollment_repository, "get_by_id", AsyncMock(return_value=enrollment)
        ):
            with pytest.raises(InvalidTransitionError) as exc_info:
                await grant_guardian_access(mock_db, enrollment.id)

        assert exc_info.value.error_code == "ENROLLMENT_NOT_APPROVED"

    @pytest.mark.asyncio
    async def test_explicit_email_overrides_default(self, mock_db, make_enrollment):
        enrollment = make_enrollment(EnrollmentStatus.APPROVED, student_id=uuid4())
        access = GuardianAccessResult(guardian_id=uuid4(), created=False, email_sent=False)

        with (
            patch.object(
                service.enrollment_repository, "get_by_id", AsyncMock(return_value=enrollment)
            ),
            patch(f"{SERVICE}.create_guardian_account", AsyncMock(return_value=access)) as create,
        ):
            result = await grant_guardian_access(mock_db, enrollment.id, email="dad@example.com")

        assert result is access
        create.assert_awaited_once_with(
            mock_db, enrollment.student_id, "dad@example.com", name="Maria Souza"
        )
