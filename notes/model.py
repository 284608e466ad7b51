# notes/model.py
import re
import uuid
from dataclasses import dataclass, field
from typing import Optional

# duration token -> 佔用的 step 數（1 step = 十六分音符）
DURATION_SPANS = {
    "whole": 16,
    "half": 8,
    "quarter": 4,
    "eighth": 2,
    "sixteenth": 1,
}
# lengthen/shorten 用的順序：長 -> 短
DURATION_ORDER = ["whole", "half", "quarter", "eighth", "sixteenth"]
STEPS_PER_BEAT = 4

NOTE_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]
NOTE_NAME_PATTERN = re.compile(r"^([A-G])(#?)(-?\d+)$")


def span_of(token: str) -> int:
    try:
        return DURATION_SPANS[token]
    except KeyError:
        raise ValueError(f"Unknown duration token: {token!r}")


def step_token(token: str, delta: int) -> str:
    """Move ``token`` along DURATION_ORDER; delta < 0 is longer. Clamped at both ends."""
    i = DURATION_ORDER.index(token) + delta
    i = max(0, min(len(DURATION_ORDER) - 1, i))
    return DURATION_ORDER[i]


def midi_to_note_name(midi: int) -> str:
    octave, idx = divmod(int(midi), 12)
    return f"{NOTE_NAMES[idx]}{octave - 1}"


def note_name_to_midi(name: str) -> Optional[int]:
    if not isinstance(name, str):
        return None
    m = NOTE_NAME_PATTERN.match(name.strip().upper())
    if not m:
        return None
    letter, sharp, octave = m.groups()
    midi = (int(octave) + 1) * 12 + NOTE_NAMES.index(letter + sharp)
    if midi < 0 or midi > 127:
        return None
    return midi


def new_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass(frozen=True)
class Note:
    id: str
    midi: int       # MIDI note number
    step: int       # grid column
    preset_id: str
    duration: str   # DURATION_SPANS key

    @property
    def span(self) -> int:
        return span_of(self.duration)

    @property
    def end(self) -> int:
        return self.step + self.span

    @property
    def name(self) -> str:
        return midi_to_note_name(self.midi)


@dataclass(frozen=True)
class Preset:
    id: str
    name: str
    color: str = "#4f8cff"
    duration: str = "quarter"
    instrument: str = "piano"
    volume: float = 1.0
    options: dict = field(default_factory=dict)  # 巢狀設定，例如 {"envelope": {"release": 0.1}}

    @property
    def release(self) -> float:
        env = self.options.get("envelope") or {}
        try:
            return max(0.0, float(env.get("release", 0.0)))
        except (TypeError, ValueError):
            return 0.0

    @property
    def gate(self) -> float:
        env = self.options.get("envelope") or {}
        try:
            return min(1.0, max(0.05, float(env.get("gate", 1.0))))
        except (TypeError, ValueError):
            return 1.0
