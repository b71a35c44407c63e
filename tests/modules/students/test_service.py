"""
Unit tests for student sync from enrollment edits.
"""

from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from admissions.modules.enrollments import service as enrollment_service
from admissions.modules.enrollments.schemas import EnrollmentDetails, EnrollmentDraftUpdate
from admissions.modules.enrollments.service import autosave_draft
from admissions.modules.students import service
from admissions.modules.students.helpers import build_student_fields, parse_birth_date
from admissions.modules.students.service import (
    apply_enrollment_to_student,
    resync_pending_students,
    schedule_student_sync,
    sync_student_from_enrollment,
)

SERVICE = "admissions.modules.students.service"
ENROLLMENT_SERVICE = "admissions.modules.enrollments.service"


class TestBuildStudentFields:
    def test_maps_wizard_details(self, make_enrollment):
        fields = build_student_fields(make_enrollment())

        assert fields["name"] == "Ana Souza"
        assert fields["cpf"] == "111.222.333-44"
        assert fields["birth_date"] == date(2015, 3, 10)
        assert fields["address"]["city"] == "Campinas"
        assert fields["financial_responsible"]["name"] == "Maria Souza"
        assert fields["financial_responsible"]["email"] == "maria@example.com"

    def test_blank_identity_numbers_become_none(self, make_enrollment):
        enrollment = make_enrollment(details={"student_cpf": "  ", "rg": ""})
        fields = build_student_fields(enrollment)
        assert fields["cpf"] is None
        assert fields["rg"] is None

    @pytest.mark.parametrize("value", [None, "", "10/03/2015", "2015-13-01"])
    def test_unparseable_birth_date(self, value):
        assert parse_birth_date(value) is None


class TestApplyEnrollmentToStudent:
    @pytest.mark.asyncio
    async def test_updates_student_and_clears_flag(self, mock_db, make_enrollment):
        enrollment = make_enrollment(student_id=uuid4(), student_sync_pending=True, version=4)
        student = MagicMock()
        repo = MagicMock()
        repo.get_by_id = AsyncMock(return_value=student)
        repo.update_fields = AsyncMock(return_value=student)

        with (
            patch(f"{SERVICE}.StudentRepository", repo),
            patch.object(
                service.enrollment_repository,
                "clear_student_sync_pending",
                AsyncMock(return_value=True),
            ) as clear,
        ):
            assert await apply_enrollment_to_student(mock_db, enrollment) is True

        assert repo.update_fields.call_args.kwargs["cpf"] == "111.222.333-44"
        clear.assert_awaited_once_with(mock_db, enrollment.id, 4)
        # The ORM object is left alone so no versioned UPDATE is flushed
        assert enrollment.student_sync_pending is True
        assert enrollment.version == 4

    @pytest.mark.asyncio
    async def test_missing_student_clears_flag(self, mock_db, make_enrollment):
        enrollment = make_enrollment(student_id=uuid4(), student_sync_pending=True)
        repo = MagicMock()
        repo.get_by_id = AsyncMock(return_value=None)

        with (
            patch(f"{SERVICE}.StudentRepository", repo),
            patch.object(
                service.enrollment_repository,
                "clear_student_sync_pending",
                AsyncMock(return_value=True),
            ) as clear,
        ):
            assert await apply_enrollment_to_student(mock_db, enrollment) is False

        clear.assert_awaited_once_with(mock_db, enrollment.id, 1)


class TestAutosaveAroundSync:
    """A background sync between two autosaves must not cause a conflict."""

    @pytest.mark.asyncio
    async def test_second_autosave_after_sync_is_saved(self, mock_db, make_enrollment):
        enrollment = make_enrollment(student_id=uuid4(), academic_year=2026)

        def bump_version():
            enrollment.version += 1

        mock_db.commit = AsyncMock(side_effect=bump_version)
        repo = MagicMock()
        repo.get_by_id = AsyncMock(return_value=MagicMock())
        repo.update_fields = AsyncMock()

        with (
            patch.object(
                enrollment_service.repository,
                "get_by_token_hash",
                AsyncMock(return_value=enrollment),
            ),
            patch(f"{ENROLLMENT_SERVICE}.schedule_student_sync") as schedule,
            patch(f"{SERVICE}.StudentRepository", repo),
            patch.object(
                service.enrollment_repository,
                "clear_student_sync_pending",
                AsyncMock(return_value=True),
            ) as clear,
        ):
            first = await autosave_draft(
                mock_db,
                "token",
                EnrollmentDraftUpdate(details=EnrollmentDetails(city="Santos"), expected_version=1),
            )
            assert await apply_enrollment_to_student(mock_db, enrollment) is True
            second = await autosave_draft(
                mock_db,
                "token",
                EnrollmentDraftUpdate(
                    details=EnrollmentDetails(city="Sorocaba"),
                    expected_version=first.version,
                ),
            )

        assert first.saved is True
        assert first.version == 2
        clear.assert_awaited_once_with(mock_db, enrollment.id, 2)
        assert second.saved is True
        assert second.conflict is False
        assert second.version == 3
        assert enrollment.details["city"] == "Sorocaba"
        assert schedule.call_count == 2


class TestSyncStudentFromEnrollment:
    @pytest.mark.asyncio
    async def test_failure_is_swallowed_and_left_pending(self):
        session = AsyncMock()
        session_cm = MagicMock()
        session_cm.__aenter__ = AsyncMock(return_value=session)
        session_cm.__aexit__ = AsyncMock(return_value=False)

        with (
            patch(f"{SERVICE}.async_session_maker", MagicMock(return_value=session_cm)),
            patch.object(
                service.enrollment_repository,
                "get_by_id",
                AsyncMock(side_effect=RuntimeError("db down")),
            ),
        ):
            assert await sync_student_from_enrollment(uuid4()) is False

    def test_schedule_never_raises(self):
        with patch(f"{SERVICE}.run_soon", side_effect=RuntimeError("scheduler stopped")):
            assert schedule_student_sync(uuid4()) is False


class TestResyncPendingStudents:
    @pytest.mark.asyncio
    async def test_counts_results(self, make_enrollment):
        pending = [make_enrollment(), make_enrollment(), make_enrollment()]
        session_cm = MagicMock()
        session_cm.__aenter__ = AsyncMock(return_value=AsyncMock())
        session_cm.__aexit__ = AsyncMock(return_value=False)

        with (
            patch(f"{SERVICE}.async_session_maker", MagicMock(return_value=session_cm)),
            patch.object(
                service.enrollment_repository,
                "get_pending_student_sync",
                AsyncMock(return_value=pending),
            ),
            patch(
                f"{SERVICE}.sync_student_from_enrollment",
                AsyncMock(side_effect=[True, False, True]),
            ),
        ):
            results = await resync_pending_students()

        assert results == {"synced": 2, "failed": 1}
