"""Tests for the software transport and the sixteenth-note clock adapter."""
import pytest

from timeline.clock import TransportClock
from timeline.transport import PAUSED, RUNNING, STOPPED, Part, Transport


@pytest.fixture
def transport(clock):
    return Transport(120.0, clock=clock)


def _recorder():
    fired = []
    return fired, (lambda t, v: fired.append((t, v)))


# ── Transport ─────────────────────────────────────────────────────────


class TestTransport:
    def test_state_machine(self, transport, clock):
        assert transport.state == STOPPED
        transport.start()
        clock.advance(1.0)
        assert transport.state == RUNNING
        assert transport.seconds == pytest.approx(1.0)
        transport.pause()
        clock.advance(5.0)
        assert transport.state == PAUSED
        assert transport.seconds == pytest.approx(1.0)
        transport.start()
        clock.advance(0.5)
        assert transport.seconds == pytest.approx(1.5)
        transport.stop()
        assert transport.seconds == 0.0

    def test_part_events_fire_once_in_order(self, transport, clock):
        fired, cb = _recorder()
        transport.add_part(Part(cb, [(1.0, "b"), (0.0, "a"), (2.0, "c")]))
        transport.start()
        transport.pump()
        clock.advance(0.5)   # 1 beat at 120 bpm
        transport.pump()
        transport.pump()
        assert [v for _, v in fired] == ["a", "b"]
        assert fired[1][0] == pytest.approx(0.5)

    def test_nothing_fires_when_stopped(self, transport, clock):
        fired, cb = _recorder()
        transport.add_part(Part(cb, [(0.0, "a")]))
        assert transport.pump() == 0
        assert fired == []

    def test_part_added_mid_play_skips_past(self, transport, clock):
        fired, cb = _recorder()
        transport.start()
        clock.advance(0.5)
        transport.pump()
        transport.add_part(Part(cb, [(0.0, "old"), (1.0, "edge"), (1.25, "next")]))
        clock.advance(0.125)
        transport.pump()
        assert [v for _, v in fired] == ["next"]

    def test_stop_rewinds_parts(self, transport, clock):
        fired, cb = _recorder()
        transport.add_part(Part(cb, [(0.0, "a")]))
        transport.start()
        transport.pump()
        transport.stop()
        transport.start()
        transport.pump()
        assert [v for _, v in fired] == ["a", "a"]

    def test_repeat_every_interval(self, transport, clock):
        ticks = []
        transport.schedule_repeat(ticks.append, 0.25)
        transport.start()
        transport.pump()
        clock.advance(0.3)   # 0.6 beats
        transport.pump()
        assert ticks == pytest.approx([0.0, 0.125, 0.25])

    def test_clear_repeat(self, transport, clock):
        ticks = []
        rid = transport.schedule_repeat(ticks.append, 0.25)
        transport.clear(rid)
        transport.clear(rid)
        transport.start()
        transport.pump()
        assert ticks == []

    def test_tempo_change_not_retroactive(self, transport, clock):
        transport.start()
        clock.advance(1.0)                 # 2 beats at 120
        assert transport.beats == pytest.approx(2.0)
        transport.bpm = 60
        assert transport.beats == pytest.approx(2.0)
        clock.advance(1.0)                 # +1 beat at 60
        assert transport.beats == pytest.approx(3.0)

    def test_to_seconds(self, transport):
        assert transport.to_seconds("quarter") == pytest.approx(0.5)
        assert transport.to_seconds("whole") == pytest.approx(2.0)

    def test_draws_run_after_audio(self, transport, clock):
        order = []
        transport.add_part(Part(lambda t, v: order.append("audio"), [(0.0, None)]))
        transport.schedule_repeat(lambda t: transport.schedule_draw(lambda: order.append("draw"), t), 0.25)
        transport.start()
        transport.pump()
        assert order == ["audio", "draw"]

    def test_failing_draw_is_logged(self, transport, caplog):
        def boom():
            raise RuntimeError("x")
        seen = []
        transport.schedule_draw(boom, 0.0)
        transport.schedule_draw(lambda: seen.append(1), 0.0)
        transport.pump()
        assert seen == [1]
        assert "draw callback" in caplog.text


# ── TransportClock ────────────────────────────────────────────────────


class TestTransportClock:
    def test_publishes_steps_and_auto_stops(self, transport, clock):
        tc = TransportClock(transport)
        tc.attach()
        tc.max_step = 4
        seen = []
        tc.subscribe(seen.append)
        tc.play()
        transport.pump()
        assert tc.step == 0
        clock.advance(0.5)
        transport.pump()
        assert seen == [0, 1, 2, 3, None]
        assert transport.state == STOPPED
        assert tc.step is None

    def test_runs_on_without_bound(self, transport, clock):
        tc = TransportClock(transport)
        tc.attach()
        tc.play()
        clock.advance(10.0)
        transport.pump()
        assert transport.state == RUNNING
        assert tc.step == 80

    def test_step_formula(self, transport):
        tc = TransportClock(transport)
        assert tc.step_at(0.5) == 4
        assert tc.step_at(0.37) == 2
        transport.bpm = 90
        assert tc.step_at(2.0) == 12

    def test_pause_keeps_cursor_stop_clears(self, transport, clock):
        tc = TransportClock(transport)
        tc.attach()
        tc.play()
        clock.advance(0.25)
        transport.pump()
        tc.pause()
        assert tc.step == 2
        tc.stop()
        assert tc.step is None

    def test_toggle(self, transport):
        tc = TransportClock(transport)
        tc.toggle()
        assert transport.state == RUNNING
        tc.toggle()
        assert transport.state == PAUSED
        tc.toggle()
        assert transport.state == RUNNING

    def test_dispose_idempotent(self, transport, clock):
        tc = TransportClock(transport)
        tc.attach()
        tc.dispose()
        tc.dispose()
        tc.play()
        transport.pump()
        assert tc.step is None
