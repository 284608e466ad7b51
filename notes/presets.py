# notes/presets.py
import copy
import logging
from dataclasses import replace
from typing import Callable, Dict, List, Optional

from notes.model import DURATION_SPANS, Preset, new_id

# 新增 preset 時依數量輪流取色
PALETTE = [
    "#4f8cff", "#ff6b6b", "#51cf66", "#fcc419",
    "#cc5de8", "#22b8cf", "#ff922b", "#94d82d",
]

DEFAULT_PRESET = {
    "name": "Piano",
    "duration": "quarter",
    "instrument": "piano",
    "volume": 1.0,
    "options": {"envelope": {"gate": 1.0, "release": 0.1}},
}

_FIELDS = {"name", "color", "duration", "instrument", "volume", "options"}


def deep_merge(base: dict, patch: dict) -> dict:
    """Return ``base`` updated with ``patch``; nested dicts merge instead of being replaced."""
    out = copy.deepcopy(base)
    for k, v in patch.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = deep_merge(out[k], v)
        else:
            out[k] = copy.deepcopy(v)
    return out


def default_preset(index: int = 0, preset_id: Optional[str] = None) -> Preset:
    fields = copy.deepcopy(DEFAULT_PRESET)
    if index:
        fields["name"] = f"Preset {index + 1}"
    return Preset(id=preset_id or new_id(), color=PALETTE[index % len(PALETTE)], **fields)


class PresetStore:
    """Ordered, never-empty collection of presets with one active entry."""

    def __init__(self, presets: Optional[List[Preset]] = None, active_id: Optional[str] = None):
        self._presets: Dict[str, Preset] = {}
        self._active_id = ""
        self._listeners: List[Callable[[], None]] = []
        self.load(presets or [], active_id)

    # ---------- 查詢 ----------
    def __len__(self):
        return len(self._presets)

    def __iter__(self):
        return iter(list(self._presets.values()))

    def __contains__(self, preset_id):
        return preset_id in self._presets

    @property
    def presets(self) -> List[Preset]:
        return list(self._presets.values())

    @property
    def first(self) -> Preset:
        return next(iter(self._presets.values()))

    @property
    def active_id(self) -> str:
        return self._active_id

    @property
    def active(self) -> Preset:
        return self._presets[self._active_id]

    def get(self, preset_id: str) -> Optional[Preset]:
        return self._presets.get(preset_id)

    def resolve(self, preset_id: str) -> Preset:
        """Preset by id; dangling references fall back to the first preset."""
        p = self._presets.get(preset_id)
        if p is None:
            logging.debug("preset %r 不存在，改用第一個 preset", preset_id)
            return self.first
        return p

    # ---------- 通知 ----------
    def subscribe(self, callback: Callable[[], None]):
        self._listeners.append(callback)

    def _changed(self):
        for cb in list(self._listeners):
            cb()

    # ---------- 變更 ----------
    def load(self, presets: List[Preset], active_id: Optional[str] = None):
        """Replace the whole collection (persistence restore)."""
        self._presets = {p.id: p for p in presets}
        if not self._presets:
            p = default_preset()
            self._presets[p.id] = p
        self._active_id = active_id if active_id in self._presets else self.first.id
        self._changed()

    def add(self) -> Preset:
        p = default_preset(len(self._presets))
        self._presets[p.id] = p
        self._active_id = p.id
        logging.info("新增 preset %s (%s)", p.name, p.color)
        self._changed()
        return p

    def update(self, preset_id: str, fields: dict) -> Optional[Preset]:
        cur = self._presets.get(preset_id)
        if cur is None:
            logging.warning("update: 找不到 preset %r", preset_id)
            return None
        unknown = set(fields) - _FIELDS
        if unknown:
            raise ValueError(f"Unknown preset fields: {sorted(unknown)}")
        if "duration" in fields and fields["duration"] not in DURATION_SPANS:
            raise ValueError(f"Unknown duration token: {fields['duration']!r}")

        changes = dict(fields)
        if "options" in changes:
            changes["options"] = deep_merge(cur.options, changes["options"] or {})
        if "volume" in changes:
            changes["volume"] = max(0.0, float(changes["volume"]))
        new = replace(cur, **changes)
        self._presets[preset_id] = new
        self._changed()
        return new

    def set_active(self, preset_id: str) -> bool:
        if preset_id not in self._presets or preset_id == self._active_id:
            return False
        self._active_id = preset_id
        self._changed()
        return True

    def cycle_active(self) -> Preset:
        ids = list(self._presets)
        i = (ids.index(self._active_id) + 1) % len(ids)
        self.set_active(ids[i])
        return self.active

    def remove(self, preset_id: str) -> bool:
        """Drop a preset; the last remaining one is never removed.

        Notes still pointing at the removed id are reassigned by the caller
        (see Session.remove_preset).
        """
        if preset_id not in self._presets:
            return False
        if len(self._presets) == 1:
            logging.info("remove: 保留最後一個 preset，不刪除")
            return False
        del self._presets[preset_id]
        if self._active_id == preset_id:
            self._active_id = self.first.id
        self._changed()
        return True
