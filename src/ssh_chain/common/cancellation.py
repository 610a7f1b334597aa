"""Cooperative cancellation checked between discrete steps."""

import threading

from .exceptions import OperationCancelledError


class CancellationToken:
    """Flag that long running operations poll between steps.

    Cancellation is cooperative: a step already running (a blocking connect,
    for example) finishes or times out before the token is observed.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: str | None = None

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        """Request cancellation. Later calls keep the first reason."""
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    def raise_if_cancelled(self, step: str | None = None) -> None:
        """Raise OperationCancelledError if cancellation was requested.

        Args:
            step: Name of the step about to run, used in the error message
        """
        if self._event.is_set():
            where = f" before {step}" if step else ""
            reason = f": {self._reason}" if self._reason else ""
            raise OperationCancelledError(f"Operation cancelled{where}{reason}")

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)


def check_cancelled(token: "CancellationToken | None", step: str | None = None) -> None:
    """Null-safe ``token.raise_if_cancelled``."""
    if token is not None:
        token.raise_if_cancelled(step)
