"""Tests for cancellation tokens, resource release and timeouts."""

import threading

import pytest

from ssh_chain.common.cancellation import CancellationToken, check_cancelled
from ssh_chain.common.context import run_with_timeout
from ssh_chain.common.exceptions import OperationCancelledError, TeardownError
from ssh_chain.common.resources import release_quietly


class TestCancellationToken:
    """Test cooperative cancellation."""

    def test_fresh_token_is_not_cancelled(self):
        token = CancellationToken()
        assert not token.is_cancelled
        token.raise_if_cancelled("connecting hop 0")

    def test_cancel_raises_with_step_and_reason(self):
        token = CancellationToken()
        token.cancel("user closed the dialog")

        with pytest.raises(OperationCancelledError, match="before connecting hop 1: user closed"):
            token.raise_if_cancelled("connecting hop 1")

    def test_first_reason_wins(self):
        token = CancellationToken()
        token.cancel("first")
        token.cancel("second")
        assert token.reason == "first"

    def test_check_cancelled_accepts_none(self):
        check_cancelled(None, "anything")

    def test_wait_returns_once_cancelled(self):
        token = CancellationToken()
        threading.Timer(0.05, token.cancel).start()
        assert token.wait(timeout=2)


class TestReleaseQuietly:
    """Test guarded release steps."""

    def test_release_quietly(self):
        assert release_quietly("ok", lambda: None) is None

        def fail():
            raise OSError("socket closed")

        error = release_quietly("socket", fail)
        assert isinstance(error, TeardownError)
        assert "Error releasing socket: socket closed" in str(error)


class TestRunWithTimeout:
    """Test bounded waits on blocking teardown."""

    def test_fast_function_finishes(self):
        calls = []
        assert run_with_timeout(lambda: calls.append(1), timeout=1, name="fast")
        assert calls == [1]

    def test_errors_count_as_finished(self):
        def fail():
            raise RuntimeError("dispose failed")

        assert run_with_timeout(fail, timeout=1, name="failing")

    def test_slow_function_is_abandoned(self):
        release = threading.Event()
        try:
            assert not run_with_timeout(lambda: release.wait(5), timeout=0.05, name="slow")
        finally:
            release.set()
