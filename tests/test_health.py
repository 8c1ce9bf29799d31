"""Tests for the session health probe."""

import pytest

from rig_architect.errors import TmuxError
from rig_architect.health import SessionState, probe


class TestProbe:
    async def test_absent(self, fake_tmux):
        assert await probe(fake_tmux, "gt-x-architect") is SessionState.ABSENT

    async def test_zombie(self, fake_tmux):
        fake_tmux.add_session("gt-x-architect", pane_command="zsh")
        assert await probe(fake_tmux, "gt-x-architect") is SessionState.ZOMBIE

    async def test_healthy(self, fake_tmux):
        fake_tmux.add_session("gt-x-architect", pane_command="node")
        assert await probe(fake_tmux, "gt-x-architect") is SessionState.HEALTHY

    async def test_read_only(self, fake_tmux):
        fake_tmux.add_session("gt-x-architect", pane_command="bash")
        await probe(fake_tmux, "gt-x-architect")
        assert "gt-x-architect" in fake_tmux.sessions
        assert all(c[0] == "has_session" for c in fake_tmux.calls)

    async def test_driver_error_propagates(self, fake_tmux):
        fake_tmux.fail["has_session"] = TmuxError(("has-session",), 1, "broken")
        with pytest.raises(TmuxError):
            await probe(fake_tmux, "gt-x-architect")

    async def test_never_cached(self, fake_tmux):
        assert await probe(fake_tmux, "gt-x-architect") is SessionState.ABSENT
        fake_tmux.add_session("gt-x-architect")
        assert await probe(fake_tmux, "gt-x-architect") is SessionState.HEALTHY
