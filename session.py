# session.py
import logging, time
from typing import Callable, Optional

from config import AppConfig
from notes.presets import PresetStore
from notes.selection import SelectionManager
from notes.store import NoteStore
from storage.state_file import StateRecord
from timeline.clock import TransportClock
from timeline.grow import AutoGrowPolicy
from timeline.scheduler import ScheduleBuilder
from timeline.transport import Transport

COMMANDS = ("undo", "redo", "delete", "lengthen", "shorten", "toggle_play", "stop")


class Session:
    """Editing + playback engine behind the window.

    Owns the stores and wires them to the transport. No pygame in here; the
    sound engine is passed in and its lifecycle stays with the caller.
    """
    def __init__(self, cfg: AppConfig, engine, clock: Callable[[], float] = time.perf_counter):
        self.cfg = cfg
        self.engine = engine
        self.grow = AutoGrowPolicy(cfg.grid.default_steps, cfg.grid.grow_increment)
        self.presets = PresetStore()
        self.notes = NoteStore(self.presets, cfg.grid.min_midi, cfg.grid.max_midi, on_extend=self.grow.fit)
        self.selection = SelectionManager(self.notes)
        self.transport = Transport(cfg.transport.bpm, clock=clock)
        self.clock = TransportClock(self.transport)
        self.builder = ScheduleBuilder(self.notes, self.presets, self.transport, self.clock,
                                       engine, master_volume=cfg.audio.master_volume)
        self.preview_on_hover = cfg.audio.preview_on_hover
        self.preview_on_place = cfg.audio.preview_on_place
        self._closed = False

        # 任何變動都只標記 dirty，pump() 時才重建一次
        self.notes.subscribe(self.builder.invalidate)
        self.presets.subscribe(self.builder.invalidate)
        self.clock.attach()

    # ---------- 狀態 ----------
    @property
    def master_volume(self) -> float:
        return self.builder.master_volume

    @property
    def bpm(self) -> float:
        return self.transport.bpm

    @property
    def cursor(self) -> Optional[int]:
        return self.clock.step

    @property
    def steps(self) -> int:
        return self.grow.steps

    # ---------- 使用者輸入 ----------
    def cell_click(self, midi: int, step: int, union: bool = False) -> Optional[str]:
        nid = self.selection.click(midi, step, union=union)
        if nid is not None and self.preview_on_place:
            self.audition(nid)
        return nid

    def secondary_click(self, midi: int, step: int) -> bool:
        return self.notes.remove(midi, step)

    def hover_enter(self, midi: int, step: int):
        self.selection.hover_enter(midi, step)
        if self.preview_on_hover:
            n = self.notes.covering(midi, step)
            if n is not None:
                self.audition(n.id)

    def hover_leave(self, midi: Optional[int] = None, step: Optional[int] = None):
        self.selection.hover_leave(midi, step)

    def toggle_hover_preview(self) -> bool:
        self.preview_on_hover = not self.preview_on_hover
        logging.info("滑過試聽：%s", "開" if self.preview_on_hover else "關")
        return self.preview_on_hover

    def command(self, name: str) -> bool:
        if name == "undo":
            return self.notes.undo()
        if name == "redo":
            return self.notes.redo()
        if name == "delete":
            return self.selection.delete() > 0
        if name == "lengthen":
            return self.selection.lengthen() > 0
        if name == "shorten":
            return self.selection.shorten() > 0
        if name == "toggle_play":
            self.builder.flush()
            self.clock.toggle()
            return True
        if name == "stop":
            self.stop()
            return True
        logging.warning("未知的指令 %r", name)
        return False

    def viewport(self, last_visible_step: int) -> bool:
        return self.grow.viewport(last_visible_step)

    def clear_all(self) -> int:
        self.selection.clear()
        return self.notes.clear_all()

    def audition(self, note_id: str):
        """Play one note right now, outside the transport."""
        n = self.notes.get(note_id)
        if n is None:
            return
        p = self.presets.resolve(n.preset_id)
        try:
            inst = self.engine.load_instrument(p.instrument)
            inst.play(n.name,
                      duration=self.transport.to_seconds(n.duration) * p.gate,
                      gain=p.volume * self.master_volume, release=p.release)
        except Exception:
            logging.exception("試聽 %s 失敗", n.name)

    # ---------- presets ----------
    def add_preset(self):
        return self.presets.add()

    def update_preset(self, preset_id: str, **fields):
        return self.presets.update(preset_id, fields)

    def set_active_preset(self, preset_id: str) -> bool:
        return self.presets.set_active(preset_id)

    def remove_preset(self, preset_id: str) -> bool:
        if not self.presets.remove(preset_id):
            return False
        self.notes.reassign_preset(preset_id, self.presets.first.id)
        return True

    # ---------- 播放 ----------
    def play(self):
        self.builder.flush()
        self.clock.play()

    def pause(self):
        self.clock.pause()

    def resume(self):
        self.builder.flush()
        self.clock.resume()

    def stop(self):
        self.clock.stop()
        self.engine.all_notes_off()

    def set_bpm(self, bpm: float):
        t = self.cfg.transport
        self.transport.bpm = max(t.min_bpm, min(t.max_bpm, float(bpm)))
        self.builder.invalidate()

    def set_master_volume(self, volume: float):
        self.builder.master_volume = max(0.0, float(volume))
        self.builder.invalidate()

    def pump(self) -> int:
        """One main-loop step: rebuild if stale, run due events, release notes."""
        if self._closed:
            return 0
        self.builder.flush()
        fired = self.transport.pump()
        self.engine.update()
        return fired

    # ---------- 存檔 ----------
    def to_record(self) -> StateRecord:
        return StateRecord(
            notes=self.notes.notes,
            presets=self.presets.presets,
            active_preset_id=self.presets.active_id,
            master_volume=self.master_volume,
            bpm=self.bpm,
        )

    def from_record(self, rec: StateRecord):
        self.stop()
        self.selection.clear()
        self.presets.load(rec.presets, rec.active_preset_id)
        self.notes.load(rec.notes)
        self.set_master_volume(rec.master_volume)
        self.set_bpm(rec.bpm)

    def close(self):
        if self._closed:
            return
        self._closed = True
        self.clock.stop()
        self.clock.dispose()
        self.builder.dispose()
        try:
            self.engine.all_notes_off()
        except Exception:
            logging.exception("all_notes_off 失敗")
