"""
Unit tests for staff authentication.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from admissions.core.auth import get_current_staff_user
from admissions.core.security import create_access_token


def _credentials(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


def _request() -> MagicMock:
    request = MagicMock()
    request.state = SimpleNamespace()
    return request


class TestGetCurrentStaffUser:
    """Tests for get_current_staff_user."""

    @pytest.mark.asyncio
    async def test_valid_staff_token(self):
        user_id = uuid4()
        token = create_access_token(
            str(user_id), {"email": "secretaria@escola.com", "role": "secretary"}
        )
        request = _request()

        user = await get_current_staff_user(request, _credentials(token))

        assert user.id == user_id
        assert user.role == "secretary"
        assert request.state.staff_id == user_id

    @pytest.mark.asyncio
    async def test_non_staff_role_is_forbidden(self):
        token = create_access_token(str(uuid4()), {"email": "pai@example.com", "role": "guardian"})

        with pytest.raises(HTTPException) as exc_info:
            await get_current_staff_user(_request(), _credentials(token))

        assert exc_info.value.status_code == 403
        assert exc_info.value.detail["error"] == "STAFF_ACCESS_REQUIRED"

    @pytest.mark.asyncio
    async def test_garbage_token_is_unauthorized(self):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_staff_user(_request(), _credentials("not.a.jwt"))

        assert exc_info.value.status_code == 401
