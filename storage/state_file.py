# storage/state_file.py
import json, logging, os
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from notes.model import DURATION_SPANS, Note, Preset
from notes.presets import default_preset

STATE_VERSION = 1


@dataclass
class StateRecord:
    """Flat, JSON-friendly view of everything the editor persists."""
    notes: List[Note] = field(default_factory=list)
    presets: List[Preset] = field(default_factory=list)
    active_preset_id: Optional[str] = None
    master_volume: float = 0.8
    bpm: float = 120.0


def default_record() -> StateRecord:
    p = default_preset()
    return StateRecord(presets=[p], active_preset_id=p.id)


def dump_record(rec: StateRecord) -> Dict[str, Any]:
    return {
        "version": STATE_VERSION,
        "notes": [asdict(n) for n in rec.notes],
        "presets": [asdict(p) for p in rec.presets],
        "active_preset_id": rec.active_preset_id,
        "master_volume": rec.master_volume,
        "bpm": rec.bpm,
    }


def _note(obj: Dict[str, Any]) -> Note:
    duration = str(obj["duration"])
    if duration not in DURATION_SPANS:
        raise ValueError(f"bad duration {duration!r}")
    step = int(obj["step"])
    if step < 0:
        raise ValueError(f"bad step {step}")
    midi = int(obj["midi"])
    if not 0 <= midi <= 127:
        raise ValueError(f"bad midi {midi}")
    return Note(id=str(obj["id"]), midi=midi, step=step,
                preset_id=str(obj["preset_id"]), duration=duration)


def _preset(obj: Dict[str, Any]) -> Preset:
    duration = str(obj.get("duration", "quarter"))
    if duration not in DURATION_SPANS:
        raise ValueError(f"bad duration {duration!r}")
    options = obj.get("options") or {}
    if not isinstance(options, dict):
        raise ValueError("preset options must be an object")
    return Preset(
        id=str(obj["id"]),
        name=str(obj.get("name", "Preset")),
        color=str(obj.get("color", "#4f8cff")),
        duration=duration,
        instrument=str(obj.get("instrument", "piano")),
        volume=max(0.0, float(obj.get("volume", 1.0))),
        options=options,
    )


def parse_record(obj: Any) -> StateRecord:
    """Validate a decoded JSON object; raises ValueError on anything malformed."""
    if not isinstance(obj, dict):
        raise ValueError("state must be a JSON object")
    try:
        notes = [_note(n) for n in obj.get("notes", [])]
        presets = [_preset(p) for p in obj.get("presets", [])]
        master = max(0.0, float(obj.get("master_volume", 0.8)))
        bpm = float(obj.get("bpm", 120.0))
    except (KeyError, TypeError, AttributeError) as e:
        raise ValueError(f"malformed state: {e}") from e
    ids = [n.id for n in notes]
    if len(set(ids)) != len(ids):
        raise ValueError("duplicate note id")
    if bpm <= 0:
        raise ValueError(f"bad bpm {bpm}")
    if not presets:
        presets = [default_preset()]
    active = obj.get("active_preset_id")
    if active not in {p.id for p in presets}:
        active = presets[0].id
    return StateRecord(notes=notes, presets=presets, active_preset_id=active,
                       master_volume=master, bpm=bpm)


def load_state(path: Optional[str]) -> StateRecord:
    """Read ``path``; missing or corrupt files fall back to defaults."""
    if not path or not os.path.exists(path):
        return default_record()
    try:
        with open(path, "r", encoding="utf-8") as f:
            return parse_record(json.load(f))
    except (OSError, ValueError) as e:
        logging.warning("讀取狀態檔 %s 失敗，改用預設值：%s", path, e)
        return default_record()


def save_state(path: str, rec: StateRecord) -> bool:
    tmp = path + ".tmp"
    try:
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(dump_record(rec), f, ensure_ascii=False, indent=2)
        os.replace(tmp, path)
        return True
    except OSError:
        logging.exception("寫入狀態檔 %s 失敗", path)
        return False
