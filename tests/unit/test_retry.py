"""Unit tests for retry helpers."""

import pytest

from assembly.errors import DownloadError, ValidationFailure
from utils.retry import is_retryable, retry_api_call


class TestIsRetryable:
    def test_flags(self):
        assert is_retryable(DownloadError("x"))
        assert not is_retryable(DownloadError("x", retryable=False))
        assert not is_retryable(ValidationFailure("x"))
        assert not is_retryable(KeyError("x"))


class TestRetryApiCall:
    def test_retries_retryable_sync_errors(self):
        calls = []

        @retry_api_call(max_retries=2, base_delay=0)
        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise DownloadError("transient")
            return "ok"

        assert flaky() == "ok"
        assert len(calls) == 3

    def test_reraises_after_exhaustion(self):
        calls = []

        @retry_api_call(max_retries=1, base_delay=0)
        def always_fails():
            calls.append(1)
            raise DownloadError("still down")

        with pytest.raises(DownloadError, match="still down"):
            always_fails()
        assert len(calls) == 2

    def test_non_retryable_propagates_immediately(self):
        calls = []

        @retry_api_call(max_retries=5, base_delay=0)
        def invalid():
            calls.append(1)
            raise ValidationFailure("bad input")

        with pytest.raises(ValidationFailure):
            invalid()
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_async_callables(self):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise DownloadError("transient")
            return 7

        assert await retry_api_call(max_retries=1, base_delay=0)(flaky)() == 7
        assert len(calls) == 2
