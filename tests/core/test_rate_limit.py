"""
Unit tests for rate limiting.
"""

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
from fastapi import Request

from admissions.core.rate_limit import (
    RateLimitExceeded,
    _check_rate_limit_memory,
    check_rate_limit,
    rate_limit,
    staff_action_rate_limit,
)

RATE_LIMIT = "admissions.core.rate_limit"


def _request(path: str = "/api/v1/enrollment-invites/abc/submit", staff_id=None) -> MagicMock:
    request = MagicMock(spec=Request)
    request.client = MagicMock(host="10.0.0.1")
    request.url = MagicMock(path=path)
    request.state = MagicMock(spec=[])
    if staff_id is not None:
        request.state.staff_id = staff_id
    return request


class TestMemoryRateLimit:
    """Tests for the in-memory fallback."""

    def test_allows_up_to_limit(self):
        results = [_check_rate_limit_memory("k", 3, 60) for _ in range(4)]
        assert results == [True, True, True, False]

    def test_keys_are_independent(self):
        assert _check_rate_limit_memory("a", 1, 60) is True
        assert _check_rate_limit_memory("b", 1, 60) is True
        assert _check_rate_limit_memory("a", 1, 60) is False

    def test_window_expiry(self):
        with patch(f"{RATE_LIMIT}.time.time", return_value=1000.0):
            assert _check_rate_limit_memory("k", 1, 60) is True
            assert _check_rate_limit_memory("k", 1, 60) is False
        with patch(f"{RATE_LIMIT}.time.time", return_value=1061.0):
            assert _check_rate_limit_memory("k", 1, 60) is True


class TestCheckRateLimit:
    @pytest.mark.asyncio
    async def test_falls_back_to_memory_without_redis(self):
        with patch(f"{RATE_LIMIT}.get_redis", AsyncMock(return_value=None)):
            assert await check_rate_limit("k", 1, 60) is True
            assert await check_rate_limit("k", 1, 60) is False

    @pytest.mark.asyncio
    async def test_falls_back_to_memory_on_redis_error(self):
        client = MagicMock()
        client.pipeline = MagicMock(side_effect=ConnectionError("redis gone"))

        with patch(f"{RATE_LIMIT}.get_redis", AsyncMock(return_value=client)):
            assert await check_rate_limit("k", 1, 60) is True
            assert await check_rate_limit("k", 1, 60) is False


class TestRateLimitDecorator:
    """Tests for the rate_limit decorator."""

    @pytest.mark.asyncio
    async def test_raises_429_when_exceeded(self):
        calls = []

        @rate_limit(limit=2, window_seconds=60)
        async def endpoint(request):
            calls.append(request)
            return "ok"

        request = _request()
        with patch(f"{RATE_LIMIT}.get_redis", AsyncMock(return_value=None)):
            assert await endpoint(request=request) == "ok"
            assert await endpoint(request=request) == "ok"
            with pytest.raises(RateLimitExceeded) as exc_info:
                await endpoint(request=request)

        assert exc_info.value.status_code == 429
        assert exc_info.value.headers["Retry-After"] == "60"
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_positional_request_is_limited(self):
        @rate_limit(limit=1, window_seconds=30)
        async def endpoint(request):
            return "ok"

        request = Request(
            {
                "type": "http",
                "method": "POST",
                "path": "/api/v1/enrollment-invites/abc/submit",
                "headers": [],
                "client": ("10.0.0.2", 5000),
            }
        )
        with patch(f"{RATE_LIMIT}.get_redis", AsyncMock(return_value=None)):
            assert await endpoint(request) == "ok"
            with pytest.raises(RateLimitExceeded) as exc_info:
                await endpoint(request)

        assert exc_info.value.headers["Retry-After"] == "30"

    @pytest.mark.asyncio
    async def test_without_request_passes_through(self):
        @rate_limit(limit=1, window_seconds=60)
        async def endpoint(value):
            return value

        assert await endpoint(1) == 1
        assert await endpoint(2) == 2


class TestStaffActionKey:
    def test_uses_staff_id_when_authenticated(self):
        staff_id = uuid4()
        request = _request("/api/v1/admin/enrollments", staff_id=staff_id)
        assert staff_action_rate_limit(request) == (
            f"staff_action:{staff_id}:/api/v1/admin/enrollments"
        )

    def test_falls_back_to_client_ip(self):
        request = _request("/api/v1/admin/enrollments")
        assert staff_action_rate_limit(request).endswith("10.0.0.1:/api/v1/admin/enrollments")
