"""Tests for the startup beacon and PID tracking."""

from datetime import datetime

from rig_architect.session import (
    BeaconConfig,
    build_startup_prompt,
    pid_dir,
    track_session_pid,
    tracked_pid,
    untrack_session_pid,
)


class TestStartupPrompt:
    def test_format(self):
        beacon = BeaconConfig(recipient="copperhead/architect", sender="mayor", topic="review")
        prompt = build_startup_prompt(beacon, "Check your mail.", now=datetime(2026, 1, 2, 3, 4))
        header, blank, body = prompt.split("\n")
        assert header == "[GAS TOWN] copperhead/architect <- mayor • 2026-01-02 03:04 • review"
        assert blank == ""
        assert body == "Check your mail."


class TestPidTracking:
    async def test_track_and_untrack(self, town, fake_tmux):
        session = fake_tmux.add_session("gt-copperhead-architect")
        pid = await track_session_pid(town, "gt-copperhead-architect", fake_tmux)
        assert pid == session.pid
        assert tracked_pid(town, "gt-copperhead-architect") == session.pid

        untrack_session_pid(town, "gt-copperhead-architect")
        assert tracked_pid(town, "gt-copperhead-architect") is None

    def test_untrack_missing_is_fine(self, town):
        untrack_session_pid(town, "gt-nothing-architect")

    def test_unreadable_file_is_untracked(self, town):
        d = pid_dir(town)
        d.mkdir(parents=True)
        (d / "gt-bad-architect.pid").write_text("not a pid")
        (d / "gt-good-architect.pid").write_text("42\n")
        assert tracked_pid(town, "gt-bad-architect") is None
        assert tracked_pid(town, "gt-good-architect") == 42
        assert tracked_pid(town, "gt-missing-architect") is None
