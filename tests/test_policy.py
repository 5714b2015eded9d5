"""
tests/test_policy.py -- Unit tests for DomainPolicy.

Covers:
  - classify() for none / blacklist / whitelist snapshots
  - case and trailing-dot normalization
  - blocks_mx_host(): exact and subdomain matches, toggle, whitelist no-op
  - from_settings(): list selection and the both-lists configuration error
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Settings
from verify.policy import DomainPolicy, PolicyKind

_KEY = "k" * 40


class TestClassify:
    def test_no_policy(self) -> None:
        decision = DomainPolicy.none().classify("anything.example")
        assert decision.kind is PolicyKind.NONE
        assert decision.matched is False

    def test_blacklist_match(self) -> None:
        decision = DomainPolicy.blacklist(["spam.example"]).classify("spam.example")
        assert decision.kind is PolicyKind.BLACKLIST
        assert decision.matched is True

    def test_blacklist_miss(self) -> None:
        decision = DomainPolicy.blacklist(["spam.example"]).classify("good.example")
        assert decision.kind is PolicyKind.BLACKLIST
        assert decision.matched is False

    def test_whitelist_match_and_miss(self) -> None:
        policy = DomainPolicy.whitelist(["corp.example"])
        assert policy.classify("corp.example").matched is True
        assert policy.classify("other.example").matched is False

    def test_case_and_root_dot_are_ignored(self) -> None:
        policy = DomainPolicy.blacklist(["Spam.Example."])
        assert policy.classify("SPAM.example").matched is True
        assert policy.classify("spam.example.").matched is True

    def test_blank_entries_are_dropped(self) -> None:
        policy = DomainPolicy.blacklist(["", "  ", "spam.example"])
        assert policy.domains == frozenset({"spam.example"})


class TestBlocksMxHost:
    def test_exact_and_subdomain(self) -> None:
        policy = DomainPolicy.blacklist(["relay.example"])
        assert policy.blocks_mx_host("relay.example")
        assert policy.blocks_mx_host("mx1.relay.example")
        assert policy.blocks_mx_host("MX1.Relay.Example.")

    def test_suffix_without_label_boundary_is_not_blocked(self) -> None:
        policy = DomainPolicy.blacklist(["relay.example"])
        assert not policy.blocks_mx_host("notrelay.example")

    def test_toggle_off(self) -> None:
        policy = DomainPolicy.blacklist(["relay.example"], check_mx_hosts=False)
        assert not policy.blocks_mx_host("mx1.relay.example")

    def test_whitelist_never_blocks_mx(self) -> None:
        policy = DomainPolicy.whitelist(["relay.example"])
        assert not policy.blocks_mx_host("relay.example")


class TestFromSettings:
    def test_empty_lists_mean_no_policy(self) -> None:
        policy = DomainPolicy.from_settings(Settings(secret_key=_KEY))
        assert policy.kind is PolicyKind.NONE

    def test_blacklist_carries_mx_toggle(self) -> None:
        settings = Settings(secret_key=_KEY, domain_blacklist=["spam.example"], policy_check_mx_hosts=False)
        policy = DomainPolicy.from_settings(settings)
        assert policy.kind is PolicyKind.BLACKLIST
        assert policy.check_mx_hosts is False

    def test_whitelist(self) -> None:
        policy = DomainPolicy.from_settings(Settings(secret_key=_KEY, domain_whitelist=["corp.example"]))
        assert policy.kind is PolicyKind.WHITELIST
        assert "corp.example" in policy.domains

    def test_both_lists_is_a_configuration_error(self) -> None:
        with pytest.raises(ValidationError, match="not both"):
            Settings(secret_key=_KEY, domain_blacklist=["a.example"], domain_whitelist=["b.example"])
