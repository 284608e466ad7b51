"""Tests for schedule building and (re)installation into the transport."""
import pytest

from notes.model import Note
from timeline.clock import TransportClock
from timeline.scheduler import ScheduleBuilder, build_schedule
from timeline.transport import Transport


class RecordingEngine:
    def __init__(self, fail_on=None):
        self.plays = []
        self.loads = []
        self.fail_on = fail_on

    def load_instrument(self, name):
        self.loads.append(name)
        return _Handle(self, name)


class _Handle:
    def __init__(self, engine, name):
        self.engine = engine
        self.name = name

    def play(self, note_name, duration, gain, release=0.0, late=0.0):
        if self.engine.fail_on == note_name:
            raise RuntimeError("boom")
        self.engine.plays.append((self.name, note_name, late, duration, gain))


@pytest.fixture
def rig(store, presets, clock):
    transport = Transport(120.0, clock=clock)
    tc = TransportClock(transport)
    tc.attach()
    engine = RecordingEngine()
    builder = ScheduleBuilder(store, presets, transport, tc, engine, master_volume=0.5)
    store.subscribe(builder.invalidate)
    presets.subscribe(builder.invalidate)
    return transport, tc, engine, builder


# ── build_schedule ────────────────────────────────────────────────────


class TestBuildSchedule:
    def test_entries_resolve_preset(self, store, presets):
        presets.update(presets.active_id, {"volume": 0.8, "instrument": "marimba"})
        store.place(60, 4)
        store.place(64, 0)
        entries = build_schedule(store, presets, master_volume=0.5)
        assert [e.step for e in entries] == [0, 4]
        e = entries[1]
        assert (e.note_name, e.duration, e.instrument, e.end) == ("C4", "quarter", "marimba", 8)
        assert e.gain == pytest.approx(0.4)
        assert e.beats == 1.0

    def test_dangling_preset_uses_first(self, presets):
        notes = [Note("n1", 60, 0, "deleted", "eighth")]
        (e,) = build_schedule(notes, presets)
        assert e.instrument == presets.first.instrument

    def test_same_step_keeps_creation_order(self, store, presets):
        a = store.place(64, 0)
        b = store.place(60, 0)
        assert [e.note_id for e in build_schedule(store, presets)] == [a, b]


# ── ScheduleBuilder ───────────────────────────────────────────────────


class TestScheduleBuilder:
    def test_invalidations_collapse_into_one_install(self, rig, store):
        _, _, _, builder = rig
        builder.flush()
        base = builder.installs
        store.place(60, 0)
        store.place(62, 0)
        store.place(64, 0)
        assert builder.flush()
        assert not builder.flush()
        assert builder.installs == base + 1
        assert len(builder.entries) == 3

    def test_old_part_disposed_before_install(self, rig, store):
        transport, _, _, builder = rig
        store.place(60, 0)
        builder.flush()
        old = transport.parts[0]
        store.place(62, 0)
        builder.flush()
        assert old.disposed
        assert transport.parts == [builder._part]

    def test_max_step_follows_notes(self, rig, store):
        _, tc, _, builder = rig
        builder.flush()
        assert tc.max_step is None
        store.place(60, 10)
        builder.flush()
        assert tc.max_step == 14

    def test_instrument_change_applies_after_rebuild(self, rig, store, presets, clock):
        transport, tc, engine, builder = rig
        store.place(60, 0)
        store.place(62, 8)
        builder.flush()
        tc.play()
        transport.pump()
        presets.update(presets.active_id, {"instrument": "flute"})
        builder.flush()
        clock.advance(1.0)
        transport.pump()
        assert [(i, n) for i, n, *_ in engine.plays] == [("piano", "C4"), ("flute", "D4")]

    def test_rebuild_mid_play_does_not_refire(self, rig, store, clock):
        transport, tc, engine, builder = rig
        store.place(60, 0)
        store.place(60, 12)
        builder.flush()
        tc.play()
        transport.pump()
        store.place(72, 0)      # behind the playhead now
        builder.flush()
        clock.advance(0.1)
        transport.pump()
        assert [n for _, n, *_ in engine.plays] == ["C4"]

    def test_engine_failure_is_contained(self, rig, store, caplog):
        transport, tc, engine, builder = rig
        engine.fail_on = "C4"
        store.place(60, 0)
        store.place(62, 0)
        builder.flush()
        tc.play()
        transport.pump()
        assert [n for _, n, *_ in engine.plays] == ["D4"]
        assert "C4" in caplog.text

    def test_gain_and_duration(self, rig, store, presets):
        transport, tc, engine, builder = rig
        presets.update(presets.active_id, {"options": {"envelope": {"gate": 0.5}}})
        store.place(60, 0)
        builder.flush()
        tc.play()
        transport.pump()
        (_, _, late, duration, gain), = engine.plays
        assert late == 0.0
        assert duration == pytest.approx(0.25)
        assert gain == pytest.approx(0.5)

    def test_late_pump_reports_lateness(self, rig, store, clock):
        transport, tc, engine, builder = rig
        store.place(60, 2)      # 0.25 s at 120 bpm
        builder.flush()
        tc.play()
        transport.pump()
        clock.advance(0.3)
        transport.pump()
        (_, _, late, _, _), = engine.plays
        assert late == pytest.approx(0.05)

    def test_dispose_is_idempotent(self, rig, store):
        transport, _, _, builder = rig
        store.place(60, 0)
        builder.flush()
        builder.dispose()
        builder.dispose()
        assert transport.parts == []
