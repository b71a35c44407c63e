"""
Unit tests for the enrollments repository.

These tests focus on the status state machine enforced by ``update_status``.
"""

import pytest

from admissions.modules.enrollments.models import EnrollmentStatus
from admissions.modules.enrollments.repository import (
    VALID_STATUS_TRANSITIONS,
    InvalidStatusTransitionError,
    is_valid_transition,
    update_status,
)

S = EnrollmentStatus

ALLOWED = {
    (S.DRAFT, S.SENT),
    (S.DRAFT, S.APPROVED),
    (S.DRAFT, S.CANCELLED),
    (S.SENT, S.DRAFT),
    (S.SENT, S.APPROVED),
    (S.SENT, S.CANCELLED),
    (S.COMPLETED, S.SENT),
    (S.COMPLETED, S.APPROVED),
    (S.COMPLETED, S.CANCELLED),
    (S.APPROVED, S.CANCELLED),
}


class TestStatusTransitions:
    """Tests for the status transition table."""

    @pytest.mark.parametrize("current", list(EnrollmentStatus))
    @pytest.mark.parametrize("new", list(EnrollmentStatus))
    def test_transition_table(self, current, new):
        assert is_valid_transition(current, new) == ((current, new) in ALLOWED)

    def test_cancelled_is_terminal(self):
        assert VALID_STATUS_TRANSITIONS[S.CANCELLED] == set()

    def test_approved_only_leaves_to_cancelled(self):
        assert VALID_STATUS_TRANSITIONS[S.APPROVED] == {S.CANCELLED}

    def test_error_message_lists_valid_targets(self):
        error = InvalidStatusTransitionError(S.APPROVED, S.DRAFT)
        assert "approved -> draft" in str(error)
        assert "cancelled" in str(error)


class TestUpdateStatus:
    """Tests for update_status."""

    @pytest.mark.asyncio
    async def test_applies_status_and_extra_fields(self, mock_db, make_enrollment):
        enrollment = make_enrollment(S.DRAFT)

        result = await update_status(mock_db, enrollment, S.SENT, submitted_at="now")

        assert result.status == S.SENT
        assert result.submitted_at == "now"
        mock_db.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rejects_invalid_transition(self, mock_db, make_enrollment):
        enrollment = make_enrollment(S.CANCELLED)

        with pytest.raises(InvalidStatusTransitionError):
            await update_status(mock_db, enrollment, S.DRAFT)

        assert enrollment.status == S.CANCELLED
        mock_db.flush.assert_not_awaited()
