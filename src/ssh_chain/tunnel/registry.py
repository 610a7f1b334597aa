"""Registry of active tunnels keyed by profile id."""

import threading

from ..common.exceptions import TunnelRegistryError
from ..common.logging import get_logger
from .models import ActiveTunnel, TunnelStatusInfo

logger = get_logger(__name__)


class ActiveTunnelRegistry:
    """Thread-safe map of profile id to running tunnel.

    Presence in the map is what "active" means. Callers never lock; every
    operation is atomic on its own.
    """

    def __init__(self, max_tunnels: int = 50) -> None:
        self.max_tunnels = max_tunnels
        self._tunnels: dict[str, ActiveTunnel] = {}
        self._lock = threading.Lock()

    def try_add(self, profile_id: str, tunnel: ActiveTunnel) -> bool:
        """Add ``tunnel`` unless the profile already has one.

        Returns:
            False if an entry for ``profile_id`` exists

        Raises:
            TunnelRegistryError: If the registry is full
        """
        with self._lock:
            if profile_id in self._tunnels:
                return False
            if len(self._tunnels) >= self.max_tunnels:
                raise TunnelRegistryError(
                    f"Maximum active tunnel limit ({self.max_tunnels}) reached"
                )
            self._tunnels[profile_id] = tunnel

        logger.info("Registered active tunnel", profile_id=profile_id, session_id=tunnel.session_id)
        return True

    def remove(self, profile_id: str) -> ActiveTunnel | None:
        """Detach and return the entry, or None if there is none."""
        with self._lock:
            tunnel = self._tunnels.pop(profile_id, None)
        if tunnel is not None:
            logger.info("Removed active tunnel", profile_id=profile_id, session_id=tunnel.session_id)
        return tunnel

    def get(self, profile_id: str) -> ActiveTunnel | None:
        with self._lock:
            return self._tunnels.get(profile_id)

    def snapshot(self) -> dict[str, TunnelStatusInfo]:
        """Status of every active tunnel at one instant."""
        with self._lock:
            tunnels = dict(self._tunnels)
        return {profile_id: tunnel.status_info() for profile_id, tunnel in tunnels.items()}

    def profile_ids(self) -> list[str]:
        with self._lock:
            return list(self._tunnels)

    def __contains__(self, profile_id: object) -> bool:
        with self._lock:
            return profile_id in self._tunnels

    def __len__(self) -> int:
        with self._lock:
            return len(self._tunnels)
