"""Tests for exception messages and hierarchy."""

from ssh_chain.common.exceptions import (
    ConfigurationError,
    ConnectionError,
    GraphValidationError,
    HostKeyVerificationError,
    HostNotFoundError,
    SSHChainError,
    UnsafeIdentifierError,
)
from ssh_chain.graph.validator import ValidationResult


class TestExceptions:
    """Test custom exceptions."""

    def test_connection_error_names_the_hop(self):
        cause = OSError("Connection refused")
        error = ConnectionError(2, "db.internal", cause)

        assert error.hop_index == 2
        assert error.cause is cause
        assert str(error) == "Failed to connect hop 2 (db.internal): Connection refused"

    def test_graph_validation_error_lists_errors(self):
        result = ValidationResult(errors=("first problem", "second problem"))
        error = GraphValidationError(result)

        assert error.result is result
        assert "first problem, second problem" in str(error)
        assert isinstance(error, ConfigurationError)

    def test_host_not_found_with_context(self):
        error = HostNotFoundError("host-1", "jump hop 2")
        assert str(error) == "Host not found: host-1 (jump hop 2)"

    def test_host_key_error(self):
        error = HostKeyVerificationError("bastion", 22, "SHA256:abc")
        assert error.fingerprint == "SHA256:abc"
        assert "bastion:22" in str(error)

    def test_hierarchy(self):
        for error in (
            UnsafeIdentifierError("a;b", ";"),
            HostNotFoundError("x"),
            ConnectionError(0),
        ):
            assert isinstance(error, SSHChainError)
