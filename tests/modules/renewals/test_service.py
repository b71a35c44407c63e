"""
Unit tests for the renewal service.

These tests cover:
- Copying biographical data into next year's draft
- Idempotence (existing renewals and concurrent inserts)
- Resolving a student id to its latest enrollment
- Target year validation
"""

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from admissions.core.errors import ValidationError
from admissions.modules.enrollments.models import EnrollmentStatus
from admissions.modules.renewals import service
from admissions.modules.renewals.service import (
    RenewalSourceNotFoundError,
    build_renewal_details,
    start_renewal,
)

SERVICE = "admissions.modules.renewals.service"


@pytest.fixture
def approved_source(make_enrollment):
    source = make_enrollment(EnrollmentStatus.APPROVED, student_id=uuid4())
    source.details = {
        **source.details,
        "cancellation_reason": "old",
        "renewed_from": "older-id",
    }
    return source


class TestBuildRenewalDetails:
    def test_drops_system_fields_and_marks_renewal(self, approved_source):
        details = build_renewal_details(approved_source)

        assert details["enrollment_type"] == "renewal"
        assert details["renewed_from"] == str(approved_source.id)
        assert details["student_cpf"] == "111.222.333-44"
        assert "cancellation_reason" not in details


class TestStartRenewal:
    """Tests for start_renewal."""

    @pytest.mark.asyncio
    async def test_creates_next_year_draft(self, mock_db, make_enrollment, approved_source):
        renewal = make_enrollment(academic_year=2026, student_id=approved_source.student_id)

        with (
            patch.object(
                service.enrollment_repository,
                "get_by_id",
                AsyncMock(return_value=approved_source),
            ),
            patch.object(
                service.enrollment_repository,
                "get_active_for_student_year",
                AsyncMock(return_value=None),
            ),
            patch.object(
                service.enrollment_repository, "create", AsyncMock(return_value=renewal)
            ) as create,
            patch(f"{SERVICE}.send_invitation", AsyncMock(return_value=True)) as invite,
        ):
            result = await start_renewal(mock_db, approved_source.id)

        assert result.created is True
        assert result.enrollment is renewal
        assert result.email_sent is True
        assert "/enrollment/" in result.invite_url

        kwargs = create.call_args.kwargs
        assert kwargs["academic_year"] == 2026
        assert kwargs["student_id"] == approved_source.student_id
        assert kwargs["candidate_name"] == approved_source.candidate_name
        assert kwargs["details"]["enrollment_type"] == "renewal"
        mock_db.commit.assert_awaited_once()
        invite.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_is_idempotent(self, mock_db, make_enrollment, approved_source):
        existing = make_enrollment(academic_year=2026)

        with (
            patch.object(
                service.enrollment_repository,
                "get_by_id",
                AsyncMock(return_value=approved_source),
            ),
            patch.object(
                service.enrollment_repository,
                "get_active_for_student_year",
                AsyncMock(return_value=existing),
            ),
            patch.object(service.enrollment_repository, "create", AsyncMock()) as create,
        ):
            first = await start_renewal(mock_db, approved_source.id, 2026)
            second = await start_renewal(mock_db, approved_source.id, 2026)

        assert first.enrollment is existing
        assert second.enrollment is existing
        assert first.created is False
        assert first.invite_url is None
        create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_concurrent_insert_returns_winner(
        self, mock_db, make_enrollment, approved_source
    ):
        winner = make_enrollment(academic_year=2026)

        with (
            patch.object(
                service.enrollment_repository,
                "get_by_id",
                AsyncMock(return_value=approved_source),
            ),
            patch.object(
                service.enrollment_repository,
                "get_active_for_student_year",
                AsyncMock(side_effect=[None, winner]),
            ),
            patch.object(
                service.enrollment_repository,
                "create",
                AsyncMock(side_effect=IntegrityError("INSERT", {}, Exception("duplicate"))),
            ),
        ):
            result = await start_renewal(mock_db, approved_source.id)

        assert result.created is False
        assert result.enrollment is winner
        mock_db.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_source_without_student_uses_renewal_lookup(self, mock_db, make_enrollment):
        source = make_enrollment(EnrollmentStatus.SENT)
        existing = make_enrollment(academic_year=2026)

        with (
            patch.object(
                service.enrollment_repository, "get_by_id", AsyncMock(return_value=source)
            ),
            patch.object(
                service.enrollment_repository,
                "get_active_renewal_of",
                AsyncMock(return_value=existing),
            ) as lookup,
        ):
            result = await start_renewal(mock_db, source.id)

        assert result.enrollment is existing
        lookup.assert_awaited_once_with(mock_db, source.id, 2026)

    @pytest.mark.asyncio
    async def test_student_id_resolves_to_latest_enrollment(
        self, mock_db, make_enrollment, approved_source
    ):
        student = MagicMock()
        student.id = approved_source.student_id
        student_repo = MagicMock()
        student_repo.get_by_id = AsyncMock(return_value=student)
        existing = make_enrollment(academic_year=2026)

        with (
            patch.object(service.enrollment_repository, "get_by_id", AsyncMock(return_value=None)),
            patch(f"{SERVICE}.StudentRepository", student_repo),
            patch.object(
                service.enrollment_repository,
                "get_latest_for_student",
                AsyncMock(return_value=approved_source),
            ),
            patch.object(
                service.enrollment_repository,
                "get_active_for_student_year",
                AsyncMock(return_value=existing),
            ),
        ):
            result = await start_renewal(mock_db, student.id)

        assert result.enrollment is existing

    @pytest.mark.asyncio
    async def test_student_id_twice_returns_same_renewal(
        self, mock_db, make_enrollment, approved_source
    ):
        student = MagicMock()
        student.id = approved_source.student_id
        student_repo = MagicMock()
        student_repo.get_by_id = AsyncMock(return_value=student)
        renewal = make_enrollment(academic_year=2026, student_id=student.id)

        async def latest_for_student(db, student_id, before_year=None):
            return approved_source if before_year == 2026 else renewal

        with (
            patch.object(service.enrollment_repository, "get_by_id", AsyncMock(return_value=None)),
            patch(f"{SERVICE}.StudentRepository", student_repo),
            patch.object(
                service.enrollment_repository,
                "get_latest_for_student",
                AsyncMock(side_effect=latest_for_student),
            ) as latest,
            patch.object(
                service.enrollment_repository,
                "get_active_for_student_year",
                AsyncMock(return_value=renewal),
            ),
            patch.object(service.enrollment_repository, "create", AsyncMock()) as create,
        ):
            first = await start_renewal(mock_db, student.id, 2026)
            second = await start_renewal(mock_db, student.id, 2026)

        assert first.enrollment is renewal
        assert second.enrollment is renewal
        assert second.created is False
        latest.assert_awaited_with(mock_db, student.id, before_year=2026)
        create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_renewal_cannot_renew_into_its_own_year(self, mock_db, make_enrollment):
        renewal = make_enrollment(academic_year=2026, student_id=uuid4())

        with (
            patch.object(
                service.enrollment_repository, "get_by_id", AsyncMock(return_value=renewal)
            ),
            patch.object(
                service.enrollment_repository,
                "get_active_for_student_year",
                AsyncMock(return_value=renewal),
            ),
        ):
            with pytest.raises(ValidationError) as exc_info:
                await start_renewal(mock_db, renewal.id, 2026)

        assert exc_info.value.error_code == "INVALID_RENEWAL_YEAR"

    @pytest.mark.asyncio
    async def test_unknown_source(self, mock_db):
        student_repo = MagicMock()
        student_repo.get_by_id = AsyncMock(return_value=None)

        with (
            patch.object(service.enrollment_repository, "get_by_id", AsyncMock(return_value=None)),
            patch(f"{SERVICE}.StudentRepository", student_repo),
        ):
            with pytest.raises(RenewalSourceNotFoundError):
                await start_renewal(mock_db, uuid4())

    @pytest.mark.asyncio
    @pytest.mark.parametrize("target_year", [2024, 2025])
    async def test_target_year_must_be_later(self, mock_db, approved_source, target_year):
        with (
            patch.object(
                service.enrollment_repository,
                "get_by_id",
                AsyncMock(return_value=approved_source),
            ),
            patch.object(
                service.enrollment_repository,
                "get_active_for_student_year",
                AsyncMock(return_value=None),
            ),
        ):
            with pytest.raises(ValidationError) as exc_info:
                await start_renewal(mock_db, approved_source.id, target_year)

        assert exc_info.value.error_code == "INVALID_RENEWAL_YEAR"
