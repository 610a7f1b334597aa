"""Jump-chain resolution for hosts behind jump profiles."""

from .resolver import JumpChainResolver, JumpValidationResult

__all__ = ["JumpChainResolver", "JumpValidationResult"]
