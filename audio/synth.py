# audio/synth.py
import heapq, logging, time
from typing import Callable, Dict, List, Optional, Tuple

import mido
import pygame.midi

from notes.model import note_name_to_midi

DRUM_CH = 9  # GM: ch10(索引9)為打擊，避免使用

# preset.instrument -> General MIDI program
GM_PROGRAMS: Dict[str, int] = {
    "piano": 0,
    "bright_piano": 1,
    "electric_piano": 4,
    "harpsichord": 6,
    "celesta": 8,
    "glockenspiel": 9,
    "music_box": 10,
    "vibraphone": 11,
    "marimba": 12,
    "xylophone": 13,
    "organ": 19,
    "accordion": 21,
    "guitar": 24,
    "electric_guitar": 27,
    "bass": 33,
    "violin": 40,
    "cello": 42,
    "strings": 48,
    "choir": 52,
    "trumpet": 56,
    "brass": 61,
    "sax": 65,
    "clarinet": 71,
    "flute": 73,
    "square_lead": 80,
    "saw_lead": 81,
    "pad": 88,
}


class _MidoOutput:
    """mido 的 output port 包成和 pygame.midi.Output 相同的介面。"""
    def __init__(self, port):
        self.port = port

    def note_on(self, note: int, velocity: int, channel: int = 0):
        self.port.send(mido.Message("note_on", note=note, velocity=velocity, channel=channel))

    def note_off(self, note: int, velocity: int = 0, channel: int = 0):
        self.port.send(mido.Message("note_off", note=note, velocity=velocity, channel=channel))

    def set_instrument(self, program: int, channel: int = 0):
        self.port.send(mido.Message("program_change", program=program, channel=channel))

    def close(self):
        self.port.close()


class Instrument:
    """Handle returned by ``Synth.load_instrument``; triggers on one channel."""
    def __init__(self, synth: "Synth", name: str, program: Optional[int], channel: Optional[int]):
        self.synth = synth
        self.name = name
        self.program = program
        self.channel = channel

    @property
    def loaded(self) -> bool:
        return self.channel is not None and self.synth.ready

    def play(self, note_name: str, duration: float = 0.25, gain: float = 1.0,
             release: float = 0.0, late: float = 0.0):
        """Note-on now; ``late`` is how far past its scheduled onset we already are,
        taken off the hold so the note-off still lands on time."""
        if not self.loaded:
            logging.debug("instrument %r 尚未載入，略過 %s", self.name, note_name)
            return None
        pitch = note_name_to_midi(note_name)
        if pitch is None:
            logging.warning("無法解析音名 %r", note_name)
            return None
        vel = max(0, min(127, int(round(min(gain, 1.0) * 127))))
        if vel == 0:
            return None
        hold = max(0.0, duration) + max(0.0, release) - max(0.0, late)
        return self.synth.note_on(pitch, vel, self.channel, hold=max(0.0, hold))


class Synth:
    """
    MIDI 音源（pygame.midi 預設輸出，或 mido 指定的 port）：
    - load_instrument(name) -> Instrument，同名只載入一次
    - note_on(p, v, ch, hold) 排一個 note-off 到 hold 秒後
    - update() 放掉到期的音
    """
    def __init__(self, cfg, output=None, clock: Callable[[], float] = time.perf_counter):
        self.cfg = cfg
        self.clock = clock
        self.midi_out = output
        self._owns_pygame = False
        self.channels = [ch for ch in range(16) if ch != DRUM_CH]
        self._rr_index = 0
        self._instruments: Dict[str, Instrument] = {}
        self._next_token = 1
        self._pending: List[Tuple[float, int, int, int]] = []  # (off_at, token, ch, pitch)

        if self.midi_out is None:
            self.midi_out = self._open_output(getattr(cfg, "midi_port", None))

    @property
    def ready(self) -> bool:
        return self.midi_out is not None

    def _open_output(self, port_name: Optional[str]):
        if port_name:
            try:
                out = _MidoOutput(mido.open_output(port_name))
                logging.info("[Synth] Using MIDI port %r", port_name)
                return out
            except Exception:
                logging.warning("[Synth] 無法開啟 MIDI port %r，改用系統預設", port_name, exc_info=True)
        try:
            pygame.midi.init()
            self._owns_pygame = True
            dev = pygame.midi.get_default_output_id()
            if dev == -1:
                logging.warning("[Synth] No MIDI output device found")
                return None
            logging.info("[Synth] Using system MIDI out (device %d)", dev)
            return pygame.midi.Output(dev)
        except Exception:
            logging.warning("[Synth] MIDI init failed", exc_info=True)
            return None

    def close(self):
        try:
            if self.midi_out is not None:
                self.all_notes_off()
                if hasattr(self.midi_out, "close"):
                    self.midi_out.close()
        except Exception:
            logging.debug("[Synth] close 失敗", exc_info=True)
        if self._owns_pygame:
            pygame.midi.quit()
            self._owns_pygame = False
        self.midi_out = None
        self._instruments.clear()

    # ---------- instruments ----------
    def _alloc_channel(self) -> int:
        ch = self.channels[self._rr_index % len(self.channels)]
        self._rr_index += 1
        return ch

    def load_instrument(self, name: str) -> Instrument:
        inst = self._instruments.get(name)
        if inst is not None:
            return inst
        program = GM_PROGRAMS.get(name)
        channel = None
        if program is None:
            logging.warning("[Synth] 未知的音色 %r", name)
        elif self.ready:
            if len(self._instruments) >= len(self.channels):
                logging.warning("[Synth] 音色超過 %d 個，channel 會被共用", len(self.channels))
            channel = self._alloc_channel()
            try:
                self.midi_out.set_instrument(program, channel)
            except Exception:
                logging.warning("[Synth] set_instrument(%d, %d) 失敗", program, channel, exc_info=True)
                channel = None
        inst = Instrument(self, name, program, channel)
        self._instruments[name] = inst
        return inst

    # ---------- notes ----------
    def note_on(self, pitch: int, vel: int, channel: int, hold: float) -> Optional[int]:
        if not self.ready:
            return None
        pitch = int(pitch)
        # 同一聲道同一音高還在響：先收掉舊的，後來的音說了算
        kept = [p for p in self._pending if not (p[2] == channel and p[3] == pitch)]
        if len(kept) != len(self._pending):
            self._pending = kept
            heapq.heapify(self._pending)
            self.midi_out.note_off(pitch, 0, channel)
        self.midi_out.note_on(pitch, int(vel), channel)
        token = self._next_token; self._next_token += 1
        heapq.heappush(self._pending, (self.clock() + hold, token, channel, pitch))
        return token

    def update(self) -> int:
        """Send note-offs whose time has come; returns how many were released."""
        now = self.clock()
        n = 0
        while self._pending and self._pending[0][0] <= now:
            _, _, ch, pitch = heapq.heappop(self._pending)
            n += 1
            if not self.ready:
                continue
            try:
                self.midi_out.note_off(pitch, 0, ch)
            except Exception:
                logging.debug("[Synth] note_off 失敗", exc_info=True)
        return n

    def all_notes_off(self):
        pending, self._pending = self._pending, []
        if not self.ready:
            return
        for _, _, ch, pitch in pending:
            try:
                self.midi_out.note_off(pitch, 0, ch)
            except Exception:
                pass
