# timeline/scheduler.py
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from notes.model import STEPS_PER_BEAT, Note
from notes.presets import PresetStore
from timeline.clock import TransportClock
from timeline.transport import Part, Transport


@dataclass(frozen=True)
class ScheduleEntry:
    note_id: str
    step: int
    note_name: str
    duration: str
    gain: float
    instrument: str
    end: int
    hold: float = 1.0       # 0..1，note 長度實際按住的比例
    release: float = 0.0    # 秒

    @property
    def beats(self) -> float:
        return self.step / STEPS_PER_BEAT


def build_schedule(notes: Iterable[Note], presets: PresetStore, master_volume: float = 1.0) -> List[ScheduleEntry]:
    """One entry per note, ordered by step then creation order."""
    out: List[ScheduleEntry] = []
    for n in notes:
        p = presets.resolve(n.preset_id)
        out.append(ScheduleEntry(
            note_id=n.id,
            step=n.step,
            note_name=n.name,
            duration=n.duration,
            gain=max(0.0, p.volume * master_volume),
            instrument=p.instrument,
            end=n.end,
            hold=p.gate,
            release=p.release,
        ))
    out.sort(key=lambda e: e.step)
    return out


class ScheduleBuilder:
    """Owns the single Part installed in the transport.

    ``invalidate()`` only marks the schedule stale; ``flush()`` does at most one
    rebuild for any number of invalidations. A rebuild always disposes the old
    part before installing the new one.
    """
    def __init__(self, notes, presets: PresetStore, transport: Transport, clock: TransportClock,
                 engine, master_volume: float = 1.0):
        self.notes = notes
        self.presets = presets
        self.transport = transport
        self.clock = clock
        self.engine = engine
        self.master_volume = master_volume
        self.entries: List[ScheduleEntry] = []
        self.installs = 0
        self._part: Optional[Part] = None
        self._dirty = True
        self._building = False

    @property
    def dirty(self) -> bool:
        return self._dirty

    def invalidate(self):
        self._dirty = True

    def flush(self) -> bool:
        if not self._dirty or self._building:
            return False
        self.rebuild()
        return True

    def rebuild(self):
        self._building = True
        try:
            # 重建途中再被 invalidate 的話 _dirty 會留著，下一次 flush 再處理
            self._dirty = False
            entries = build_schedule(self.notes, self.presets, self.master_volume)
            self._teardown()
            for name in sorted({e.instrument for e in entries}):
                self._load(name)
            part = Part(self._trigger, [(e.beats, e) for e in entries])
            self.transport.add_part(part)
            self._part = part
            self.entries = entries
            self.clock.max_step = max((e.end for e in entries), default=None)
            self.installs += 1
            logging.debug("schedule installed: %d entries, max_step=%r", len(entries), self.clock.max_step)
        finally:
            self._building = False

    def dispose(self):
        self._teardown()
        self.entries = []

    def _teardown(self):
        if self._part is not None:
            self.transport.remove_part(self._part)
            self._part.dispose()
            self._part = None

    def _load(self, name: str):
        try:
            return self.engine.load_instrument(name)
        except Exception:
            logging.exception("載入音色 %r 失敗", name)
            return None

    def _trigger(self, time_s: float, entry: ScheduleEntry):
        try:
            inst = self.engine.load_instrument(entry.instrument)
            length = self.transport.to_seconds(entry.duration) * entry.hold
            late = max(0.0, self.transport.seconds - time_s)
            inst.play(entry.note_name, duration=length, gain=entry.gain,
                      release=entry.release, late=late)
        except Exception:
            # 少一個聲音不是致命錯誤
            logging.exception("觸發 %s (%s) 失敗", entry.note_name, entry.instrument)
