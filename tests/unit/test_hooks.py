"""
Unit tests for the filter/action registry.
"""

import pytest

from sitesync.core.hooks import HookRegistry


@pytest.mark.unit
class TestHookRegistry:
    """Tests for HookRegistry."""

    def test_filter_without_callbacks_returns_value(self):
        hooks = HookRegistry()
        assert hooks.apply_filters("missing", 5) == 5

    def test_filters_chain_in_priority_order(self):
        hooks = HookRegistry()
        hooks.add_filter("name", lambda v: v + "-late", priority=20)
        hooks.add_filter("name", lambda v: v + "-first")
        hooks.add_filter("name", lambda v: v + "-second")
        assert hooks.apply_filters("name", "x") == "x-first-second-late"

    def test_filters_receive_extra_args(self):
        hooks = HookRegistry()
        hooks.add_filter("path", lambda path, record: f"{path}/{record}")
        assert hooks.apply_filters("path", "base", "post-1") == "base/post-1"

    def test_failing_action_does_not_stop_others(self):
        hooks = HookRegistry()
        calls = []

        def broken(*args):
            raise RuntimeError("boom")

        hooks.add_action("saved", broken)
        hooks.add_action("saved", lambda *args: calls.append(args))
        hooks.do_action("saved", 1, 2)
        assert calls == [(1, 2)]

    def test_has_and_remove(self):
        hooks = HookRegistry()
        hooks.add_action("saved", lambda: None)
        hooks.add_filter("saved", lambda v: v)
        assert hooks.has_action("saved") and hooks.has_filter("saved")
        hooks.remove_all("saved")
        assert not hooks.has_action("saved")
        assert not hooks.has_filter("saved")
