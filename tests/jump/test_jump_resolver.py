"""Tests for jump profile resolution and validation."""

import pytest

from ssh_chain.common.exceptions import HostNotFoundError
from ssh_chain.hosts.models import HostRecord, ProxyJumpHop, ProxyJumpProfile
from ssh_chain.hosts.store import InMemoryHostStore, InMemoryProxyJumpProfileStore
from ssh_chain.jump.resolver import JumpChainResolver


def jump_profile(profile_id, *host_ids, enabled=True):
    return ProxyJumpProfile(
        id=profile_id,
        display_name=profile_id,
        is_enabled=enabled,
        hops=tuple(
            ProxyJumpHop(jump_host_id=host_id, sort_order=order)
            for order, host_id in enumerate(host_ids)
        ),
    )


def host(host_id, profile_id=None, **fields):
    return HostRecord(
        id=host_id,
        hostname=fields.pop("hostname", f"{host_id}.example.com"),
        username=fields.pop("username", "admin"),
        display_name=fields.pop("display_name", host_id),
        proxy_jump_profile_id=profile_id,
        **fields,
    )


def make_resolver(hosts, profiles):
    return JumpChainResolver(
        InMemoryProxyJumpProfileStore(profiles), InMemoryHostStore(hosts)
    )


class TestResolveConnectionChain:
    """Test JumpChainResolver.resolve_connection_chain."""

    def test_jump_hosts_then_target(self):
        profile = ProxyJumpProfile(
            id="jp",
            hops=(
                ProxyJumpHop(jump_host_id="b", sort_order=2),
                ProxyJumpHop(jump_host_id="a", sort_order=1),
            ),
        )
        target = host("t", "jp")
        resolver = make_resolver([host("a"), host("b"), target], [profile])

        chain = resolver.resolve_connection_chain(target)

        assert [hop.hostname for hop in chain] == ["a.example.com", "b.example.com", "t.example.com"]
        assert chain[-1].host_id == "t"

    def test_passwords_by_host_id(self):
        target = host("t", "jp")
        resolver = make_resolver([host("a"), target], [jump_profile("jp", "a")])

        chain = resolver.resolve_connection_chain(target, passwords={"a": "pw-a"})

        assert chain[0].password.get_secret_value() == "pw-a"
        assert chain[1].password is None

    @pytest.mark.parametrize(
        "target,profiles",
        [
            (host("t"), [jump_profile("jp", "a")]),
            (host("t", "missing"), [jump_profile("jp", "a")]),
            (host("t", "jp"), [jump_profile("jp", "a", enabled=False)]),
            (host("t", "jp"), [jump_profile("jp")]),
        ],
        ids=["no-profile", "profile-missing", "profile-disabled", "no-hops"],
    )
    def test_direct_connection_cases(self, target, profiles):
        resolver = make_resolver([host("a"), target], profiles)
        assert resolver.resolve_connection_chain(target) == []

    def test_missing_jump_host(self):
        target = host("t", "jp")
        resolver = make_resolver([target], [jump_profile("jp", "ghost")])

        with pytest.raises(HostNotFoundError, match="ghost"):
            resolver.resolve_connection_chain(target)


class TestValidateProfile:
    """Test jump profile validation."""

    def test_valid(self):
        resolver = make_resolver([host("a"), host("b")], [])
        result = resolver.validate_profile(jump_profile("jp", "a", "b"))

        assert result.is_valid
        assert result.message is None

    def test_empty_chain(self):
        result = make_resolver([], []).validate_profile(jump_profile("jp"))

        assert not result.is_valid
        assert result.issues == ("The jump chain is empty. At least one jump host is required.",)
        assert result.message == "Profile validation failed with 1 issue(s)."

    def test_duplicates_and_missing_hosts(self):
        resolver = make_resolver([host("a")], [])
        result = resolver.validate_profile(jump_profile("jp", "a", "a", "ghost"))

        assert result.issues == (
            "The chain contains duplicate hosts. Each host can only appear once in the chain.",
            "Jump host with ID ghost (hop 3) does not exist.",
        )
        assert result.message == "Profile validation failed with 2 issue(s)."


class TestValidateProfileForHost:
    """Test target-specific and nested cycle checks."""

    def test_target_in_its_own_chain(self):
        resolver = make_resolver([host("a"), host("t")], [])
        result = resolver.validate_profile_for_host(jump_profile("jp", "a", "t"), "t")

        assert "The target host cannot be part of its own proxy jump chain." in result.issues

    def test_nested_chain_containing_target(self):
        resolver = make_resolver(
            [host("a", "inner"), host("t")],
            [jump_profile("inner", "t")],
        )
        result = resolver.validate_profile_for_host(jump_profile("outer", "a"), "t")

        assert result.issues == (
            "Jump host 'a' has a nested proxy chain that contains the target host, "
            "which would create a circular reference.",
        )

    def test_transitive_nesting_is_followed(self):
        resolver = make_resolver(
            [host("a", "p2"), host("b", "p3"), host("t")],
            [jump_profile("p2", "b"), jump_profile("p3", "t")],
        )
        result = resolver.validate_profile_for_host(jump_profile("p1", "a"), "t")

        assert not result.is_valid
        assert "contains the target host" in result.issues[0]

    def test_nested_loop_back_to_profile(self):
        resolver = make_resolver(
            [host("a", "p2"), host("b", "p1"), host("t")],
            [jump_profile("p2", "b")],
        )
        result = resolver.validate_profile_for_host(jump_profile("p1", "a"), "t")

        assert result.issues == (
            "Jump host 'a' has a nested proxy chain that loops back to a profile already "
            "in the chain, which would create a circular reference.",
        )

    def test_independent_nesting_is_fine(self):
        resolver = make_resolver(
            [host("a", "p2"), host("b"), host("t")],
            [jump_profile("p2", "b")],
        )
        assert resolver.validate_profile_for_host(jump_profile("p1", "a"), "t").is_valid

    def test_base_validation_runs_first(self):
        result = make_resolver([], []).validate_profile_for_host(jump_profile("jp"), "t")
        assert result.message == "Profile validation failed with 1 issue(s)."


class TestChainDisplayString:
    def test_display(self):
        resolver = make_resolver([host("a", display_name="Bastion"), host("b", display_name="Inner")], [])
        profile = jump_profile("jp", "a", "b")

        assert resolver.build_chain_display_string(profile) == "You → Bastion → Inner → [Target]"
        assert resolver.build_chain_display_string(profile, " db ") == "You → Bastion → Inner → db"

    def test_missing_host_is_named_by_id(self):
        resolver = make_resolver([], [])
        assert (
            resolver.build_chain_display_string(jump_profile("jp", "x"), "db")
            == "You → Host x → db"
        )
