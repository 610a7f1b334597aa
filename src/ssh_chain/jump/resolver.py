"""Connection chains for hosts reached through a jump profile."""

from collections import Counter
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field

from ..common.exceptions import HostNotFoundError
from ..common.logging import get_logger
from ..hosts.models import HopConnectionInfo, HostRecord, ProxyJumpProfile
from ..hosts.store import HostStore, ProxyJumpProfileStore

logger = get_logger(__name__)


class JumpValidationResult(BaseModel):
    """Outcome of validating a jump profile."""

    model_config = ConfigDict(frozen=True)

    message: str | None = None
    issues: tuple[str, ...] = Field(default=())

    @property
    def is_valid(self) -> bool:
        return not self.issues

    @classmethod
    def success(cls) -> "JumpValidationResult":
        return cls()

    @classmethod
    def failure(cls, message: str, issues: list[str]) -> "JumpValidationResult":
        return cls(message=message, issues=tuple(issues))


class JumpChainResolver:
    """Turns a host's jump profile into an ordered connection chain."""

    def __init__(self, profile_store: ProxyJumpProfileStore, host_store: HostStore) -> None:
        self.profile_store = profile_store
        self.host_store = host_store

    def resolve_connection_chain(
        self, target_host: HostRecord, passwords: Mapping[str, str] | None = None
    ) -> list[HopConnectionInfo]:
        """Resolve the hops needed to reach ``target_host``.

        Args:
            target_host: Host to connect to
            passwords: Decrypted passwords by host id

        Returns:
            Jump hosts in ``sort_order`` followed by the target, or an empty
            list when the host has no usable jump profile (none set, missing,
            disabled or without hops)

        Raises:
            HostNotFoundError: If a jump host of the profile does not exist
        """
        passwords = passwords or {}
        profile_id = target_host.proxy_jump_profile_id
        if not profile_id:
            logger.debug("No jump profile configured", host_id=target_host.id)
            return []

        profile = self.profile_store.get_by_id(profile_id)
        if profile is None:
            logger.warning("Jump profile not found", profile_id=profile_id, host_id=target_host.id)
            return []
        if not profile.is_enabled:
            logger.info("Jump profile disabled, connecting directly", profile=profile.display_name)
            return []

        hops = profile.ordered_hops()
        if not hops:
            logger.debug("Jump profile has no hops", profile=profile.display_name)
            return []

        chain: list[HopConnectionInfo] = []
        for hop in hops:
            jump_host = self.host_store.get_by_id(hop.jump_host_id)
            if jump_host is None:
                logger.error("Jump host not found", jump_host_id=hop.jump_host_id, hop_id=hop.id)
                raise HostNotFoundError(
                    hop.jump_host_id, "jump host; the proxy chain cannot be established"
                )
            chain.append(HopConnectionInfo.from_host(jump_host, passwords.get(jump_host.id)))

        chain.append(HopConnectionInfo.from_host(target_host, passwords.get(target_host.id)))
        logger.info(
            "Resolved jump chain",
            host_id=target_host.id,
            chain=" -> ".join(f"{hop.hostname}:{hop.port}" for hop in chain),
        )
        return chain

    def validate_profile(self, profile: ProxyJumpProfile) -> JumpValidationResult:
        issues: list[str] = []

        if not profile.hops:
            issues.append("The jump chain is empty. At least one jump host is required.")

        counts = Counter(hop.jump_host_id for hop in profile.hops)
        if any(count > 1 for count in counts.values()):
            issues.append(
                "The chain contains duplicate hosts. Each host can only appear once in the chain."
            )

        for hop in profile.hops:
            if self.host_store.get_by_id(hop.jump_host_id) is None:
                issues.append(
                    f"Jump host with ID {hop.jump_host_id} (hop {hop.sort_order + 1}) does not exist."
                )

        if issues:
            logger.warning("Jump profile validation failed", profile=profile.display_name, issues=issues)
            return JumpValidationResult.failure(
                f"Profile validation failed with {len(issues)} issue(s).", issues
            )
        return JumpValidationResult.success()

    def validate_profile_for_host(
        self, profile: ProxyJumpProfile, target_host_id: str
    ) -> JumpValidationResult:
        """Validate ``profile`` as the jump profile of ``target_host_id``.

        On top of ``validate_profile`` this rejects a target inside its own
        chain and cycles through nested jump profiles: every jump host with a
        jump profile of its own is followed transitively.
        """
        base = self.validate_profile(profile)
        if not base.is_valid:
            return base

        issues: list[str] = []
        if any(hop.jump_host_id == target_host_id for hop in profile.hops):
            issues.append("The target host cannot be part of its own proxy jump chain.")

        for hop in profile.hops:
            jump_host = self.host_store.get_by_id(hop.jump_host_id)
            if jump_host is None or not jump_host.proxy_jump_profile_id:
                continue
            problem = self._nested_chain_problem(
                jump_host.proxy_jump_profile_id, target_host_id, {profile.id}
            )
            if problem is not None:
                issues.append(f"Jump host '{jump_host.name}' has a nested proxy chain that {problem}.")

        if issues:
            logger.warning(
                "Jump profile validation for host failed", host_id=target_host_id, issues=issues
            )
            return JumpValidationResult.failure("Profile validation for this host failed.", issues)
        return JumpValidationResult.success()

    def _nested_chain_problem(
        self, profile_id: str, target_host_id: str, stack: set[str]
    ) -> str | None:
        if profile_id in stack:
            return "loops back to a profile already in the chain, which would create a circular reference"

        profile = self.profile_store.get_by_id(profile_id)
        if profile is None:
            return None

        if any(hop.jump_host_id == target_host_id for hop in profile.hops):
            return "contains the target host, which would create a circular reference"

        stack.add(profile_id)
        try:
            for hop in profile.hops:
                jump_host = self.host_store.get_by_id(hop.jump_host_id)
                if jump_host is None or not jump_host.proxy_jump_profile_id:
                    continue
                problem = self._nested_chain_problem(
                    jump_host.proxy_jump_profile_id, target_host_id, stack
                )
                if problem is not None:
                    return problem
        finally:
            stack.discard(profile_id)
        return None

    def build_chain_display_string(
        self, profile: ProxyJumpProfile, target_name: str | None = None
    ) -> str:
        """Render ``You → jump1 → jump2 → target`` for display."""
        parts = ["You"]
        for hop in profile.ordered_hops():
            jump_host = self.host_store.get_by_id(hop.jump_host_id)
            if jump_host is not None:
                parts.append(jump_host.name)
            else:
                parts.append(f"Host {hop.jump_host_id}")
        parts.append(target_name.strip() if target_name and target_name.strip() else "[Target]")
        return " → ".join(parts)
