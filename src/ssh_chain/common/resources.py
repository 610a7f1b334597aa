"""Failure-tolerant release of owned resources."""

from collections.abc import Callable

from .exceptions import TeardownError
from .logging import get_logger

logger = get_logger(__name__)


def release_quietly(
    name: str, release: Callable[[], None], owner: str | None = None
) -> TeardownError | None:
    """Run one release step, logging and returning any failure instead of raising."""
    try:
        release()
    except Exception as exc:
        logger.debug("Error releasing resource", owner=owner, resource=name, error=str(exc))
        return TeardownError(name, exc)
    return None
