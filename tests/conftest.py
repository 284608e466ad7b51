from pathlib import Path
import sys

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from config import AppConfig  # noqa: E402
from audio.synth import Synth  # noqa: E402
from notes.presets import PresetStore  # noqa: E402
from notes.store import NoteStore  # noqa: E402
from session import Session  # noqa: E402


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeOutput:
    """Stands in for pygame.midi.Output; records what was sent."""

    def __init__(self):
        self.sent = []

    def note_on(self, note, velocity, channel=0):
        self.sent.append(("on", note, velocity, channel))

    def note_off(self, note, velocity=0, channel=0):
        self.sent.append(("off", note, velocity, channel))

    def set_instrument(self, program, channel=0):
        self.sent.append(("program", program, channel))

    def close(self):
        self.sent.append(("close",))

    def of(self, kind):
        return [m for m in self.sent if m[0] == kind]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def output():
    return FakeOutput()


@pytest.fixture
def cfg():
    c = AppConfig()
    c.audio.master_volume = 1.0
    return c


@pytest.fixture
def synth(cfg, output, clock):
    return Synth(cfg.audio, output=output, clock=clock)


@pytest.fixture
def session(cfg, synth, clock):
    s = Session(cfg, synth, clock=clock)
    yield s
    s.close()


@pytest.fixture
def presets():
    return PresetStore()


@pytest.fixture
def store(presets):
    return NoteStore(presets)
