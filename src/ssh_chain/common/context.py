"""Timeout helpers for blocking teardown work."""

import threading
from collections.abc import Callable

from .logging import get_logger

logger = get_logger(__name__)


def run_with_timeout(func: Callable[[], None], timeout: float, name: str) -> bool:
    """Run ``func`` on a daemon worker and wait at most ``timeout`` seconds.

    The worker is abandoned, not killed, when the deadline passes; an orphaned
    transport resource is preferred over blocking the caller.

    Args:
        func: Blocking callable to run
        timeout: Grace period in seconds
        name: Thread name, also used in log events

    Returns:
        True if ``func`` returned (successfully or not) before the deadline
    """
    errors: list[BaseException] = []

    def runner() -> None:
        try:
            func()
        except Exception as exc:
            errors.append(exc)

    worker = threading.Thread(target=runner, name=name, daemon=True)
    worker.start()
    worker.join(timeout)

    if worker.is_alive():
        logger.warning("Operation timed out", operation=name, timeout=timeout)
        return False

    for error in errors:
        logger.warning("Operation failed", operation=name, error=str(error))
    return True
