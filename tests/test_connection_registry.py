"""Tests for chatter.services.connection_registry."""

from __future__ import annotations

from chatter.services.connection_registry import ConnectionRegistry, MultiConnectionRegistry


class TestConnectionRegistry:
    def test_register_and_lookup(self):
        registry = ConnectionRegistry()
        registry.register(1, "c1")
        assert registry.lookup(1) == "c1"
        assert 1 in registry
        assert len(registry) == 1

    def test_lookup_unknown_user(self):
        assert ConnectionRegistry().lookup(42) is None
        assert ConnectionRegistry().connections_for(42) == []

    def test_latest_connection_wins(self):
        registry = ConnectionRegistry()
        registry.register(1, "c1")
        registry.register(1, "c2")
        assert registry.lookup(1) == "c2"
        assert registry.connections_for(1) == ["c2"]
        assert len(registry) == 1

    def test_unregister_current_connection(self):
        registry = ConnectionRegistry()
        registry.register(1, "c1")
        assert registry.unregister(1, "c1") is True
        assert registry.lookup(1) is None
        assert 1 not in registry

    def test_stale_unregister_leaves_newer_entry(self):
        """A late disconnect from a replaced connection must not evict the new one."""
        registry = ConnectionRegistry()
        registry.register(1, "c1")
        registry.register(1, "c2")

        assert registry.unregister(1, "c1") is False
        assert registry.lookup(1) == "c2"

    def test_unregister_unknown_user(self):
        assert ConnectionRegistry().unregister(7, "c1") is False

    def test_users_are_isolated(self):
        registry = ConnectionRegistry()
        registry.register(1, "c1")
        registry.register(2, "c2")
        registry.unregister(1, "c1")
        assert registry.lookup(2) == "c2"


class TestMultiConnectionRegistry:
    def test_keeps_every_connection(self):
        registry = MultiConnectionRegistry()
        registry.register(1, "c1")
        registry.register(1, "c2")
        assert registry.connections_for(1) == ["c1", "c2"]
        assert registry.lookup(1) == "c2"

    def test_unregister_newest_falls_back_to_previous(self):
        registry = MultiConnectionRegistry()
        registry.register(1, "c1")
        registry.register(1, "c2")

        assert registry.unregister(1, "c2") is True
        assert registry.lookup(1) == "c1"
        assert registry.connections_for(1) == ["c1"]

    def test_unregister_last_removes_user(self):
        registry = MultiConnectionRegistry()
        registry.register(1, "c1")
        registry.unregister(1, "c1")
        assert 1 not in registry
        assert registry.connections_for(1) == []

    def test_unregister_unknown_connection(self):
        registry = MultiConnectionRegistry()
        registry.register(1, "c1")
        assert registry.unregister(1, "zzz") is False
        assert registry.connections_for(1) == ["c1"]

    def test_reregister_moves_to_newest(self):
        registry = MultiConnectionRegistry()
        registry.register(1, "c1")
        registry.register(1, "c2")
        registry.register(1, "c1")
        assert registry.connections_for(1) == ["c2", "c1"]
        assert registry.lookup(1) == "c1"
