# ========================= config.py =========================
from dataclasses import dataclass, field
from typing import Optional

@dataclass
class RenderConfig:
    window_w: int = 1400
    window_h: int = 820
    cell_w: int = 22
    cell_h: int = 14
    keys_w: int = 56          # pitch labels on the left
    fps: int = 60

@dataclass
class GridConfig:
    min_midi: int = 21
    max_midi: int = 108
    default_steps: int = 64   # 4 bars of sixteenths
    grow_increment: int = 16

@dataclass
class TransportConfig:
    bpm: float = 120.0
    min_bpm: float = 30.0
    max_bpm: float = 300.0

@dataclass
class AudioConfig:
    midi_port: Optional[str] = None   # None -> pygame.midi default output
    master_volume: float = 0.8
    preview_on_hover: bool = False
    preview_on_place: bool = False    # 新增音符時先試聽

@dataclass
class AppConfig:
    render: RenderConfig = field(default_factory=RenderConfig)
    grid: GridConfig = field(default_factory=GridConfig)
    transport: TransportConfig = field(default_factory=TransportConfig)
    audio: AudioConfig = field(default_factory=AudioConfig)
    state_path: Optional[str] = None  # None -> logs 旁邊的 state/stepgrid.json
