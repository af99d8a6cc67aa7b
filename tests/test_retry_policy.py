"""Tests for the retry policy.

Test Categories:
1. Error classification (recoverable vs fatal)
2. Backoff computation
3. Retry loop behavior (attempt counting, exhaustion, fatal errors)
"""

from __future__ import annotations

import asyncio
import random
from unittest.mock import AsyncMock

import pytest

from qsign.core.config import SigningSettings
from qsign.services.errors import (
    PayloadMismatchError,
    QtspUnauthorizedError,
    RemoteSignatureError,
    RetriesExhaustedError,
    SadMissingError,
)
from qsign.services.retry_policy import RetryPolicy, is_recoverable
from tests.factories import make_connect_error, make_status_error, make_timeout_error


# =============================================================================
# TEST CLASS: is_recoverable
# =============================================================================


class TestIsRecoverable:
    """Tests for error classification."""

    def test_connect_error_is_recoverable(self):
        assert is_recoverable(make_connect_error())

    def test_timeout_is_recoverable(self):
        assert is_recoverable(make_timeout_error())

    def test_builtin_connection_and_timeout_errors_are_recoverable(self):
        assert is_recoverable(ConnectionRefusedError("refused"))
        assert is_recoverable(TimeoutError())

    @pytest.mark.parametrize("status", [500, 502, 503, 504, 599])
    def test_5xx_is_recoverable(self, status):
        assert is_recoverable(make_status_error(status))

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 409, 499])
    def test_4xx_is_fatal(self, status):
        assert not is_recoverable(make_status_error(status))

    def test_business_errors_are_fatal(self):
        assert not is_recoverable(ValueError("bad"))
        assert not is_recoverable(PayloadMismatchError("mismatch"))
        assert not is_recoverable(SadMissingError("SAD missing in response"))

    def test_wrapped_5xx_is_recoverable(self):
        error = RemoteSignatureError("signDoc failed")
        error.__cause__ = make_status_error(503)
        assert is_recoverable(error)

    def test_wrapped_4xx_is_fatal(self):
        error = QtspUnauthorizedError("Unauthorized")
        error.__cause__ = make_status_error(401)
        assert not is_recoverable(error)

    def test_cause_cycle_terminates(self):
        first = RemoteSignatureError("a")
        second = RemoteSignatureError("b")
        first.__cause__ = second
        second.__cause__ = first
        assert not is_recoverable(first)


# =============================================================================
# TEST CLASS: Backoff
# =============================================================================


class TestComputeBackoff:
    """Tests for delay computation."""

    def test_without_jitter_doubles_and_caps(self):
        policy = RetryPolicy(jitter=0.0)
        assert policy.compute_backoff(1) == 1.0
        assert policy.compute_backoff(2) == 2.0
        assert policy.compute_backoff(3) == 4.0
        assert policy.compute_backoff(4) == 5.0

    def test_jitter_stays_within_bounds(self):
        policy = RetryPolicy(rng=random.Random(7))
        for _ in range(200):
            delay = policy.compute_backoff(2)
            assert 1.0 <= delay <= 3.0

    def test_jittered_delay_never_exceeds_max(self):
        policy = RetryPolicy(rng=random.Random(3))
        for _ in range(200):
            assert policy.compute_backoff(3) <= 5.0

    def test_from_settings(self):
        settings = SigningSettings(max_retries=5, min_backoff=0.5, max_backoff=2.0, jitter=0.1)
        policy = RetryPolicy.from_settings(settings)
        assert policy.max_retries == 5
        assert policy.max_attempts == 6
        assert policy.min_backoff == 0.5
        assert policy.max_backoff == 2.0


# =============================================================================
# TEST CLASS: run()
# =============================================================================


class TestRun:
    """Tests for the retry loop."""

    @pytest.mark.asyncio
    async def test_success_on_first_attempt(self, retry_policy, mock_sleep):
        operation = AsyncMock(return_value="signed")

        assert await retry_policy.run(operation, "sign") == "signed"
        assert operation.await_count == 1
        mock_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_three_failures_then_success(self, retry_policy, mock_sleep):
        operation = AsyncMock(
            side_effect=[
                make_connect_error(),
                make_timeout_error(),
                make_status_error(503),
                "signed",
            ]
        )

        assert await retry_policy.run(operation, "sign") == "signed"
        assert operation.await_count == 4
        assert mock_sleep.await_count == 3

    @pytest.mark.asyncio
    async def test_exhaustion_wraps_last_error(self, retry_policy):
        errors = [make_status_error(500) for _ in range(3)] + [make_connect_error()]
        operation = AsyncMock(side_effect=errors)

        with pytest.raises(RetriesExhaustedError) as exc_info:
            await retry_policy.run(operation, "sign")

        assert operation.await_count == 4
        assert exc_info.value.attempts == 4
        assert exc_info.value.operation == "sign"
        assert exc_info.value.__cause__ is errors[-1]
        assert exc_info.value.cause is errors[-1]

    @pytest.mark.asyncio
    async def test_fatal_error_is_not_retried(self, retry_policy, mock_sleep):
        error = make_status_error(400)
        operation = AsyncMock(side_effect=error)

        with pytest.raises(type(error)) as exc_info:
            await retry_policy.run(operation, "sign")

        assert exc_info.value is error
        assert operation.await_count == 1
        mock_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fatal_error_after_recoverable_stops_retrying(self, retry_policy):
        operation = AsyncMock(
            side_effect=[make_connect_error(), PayloadMismatchError("mismatch")]
        )

        with pytest.raises(PayloadMismatchError):
            await retry_policy.run(operation, "sign")
        assert operation.await_count == 2

    @pytest.mark.asyncio
    async def test_delays_follow_backoff_plan(self, mock_sleep):
        policy = RetryPolicy(jitter=0.0, sleep=mock_sleep)
        operation = AsyncMock(side_effect=[make_connect_error()] * 4)

        with pytest.raises(RetriesExhaustedError):
            await policy.run(operation, "sign")

        delays = [call.args[0] for call in mock_sleep.await_args_list]
        assert delays == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_cancellation_stops_retrying(self):
        sleep = AsyncMock(side_effect=asyncio.CancelledError())
        policy = RetryPolicy(sleep=sleep)
        operation = AsyncMock(side_effect=make_connect_error())

        with pytest.raises(asyncio.CancelledError):
            await policy.run(operation, "sign")
        assert operation.await_count == 1
