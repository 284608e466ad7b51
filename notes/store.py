# notes/store.py
import logging
from dataclasses import replace
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from notes.history import HistoryManager
from notes.model import DURATION_SPANS, Note, new_id, step_token
from notes.presets import PresetStore

Snapshot = Tuple[Note, ...]


class NoteStore:
    """Sparse grid content: at most one Note per (midi, step).

    Every state-changing call records one history snapshot first; calls that
    turn out to be no-ops record nothing. Notes keep creation order, which is
    also the order snapshots restore them in.
    """
    def __init__(self, presets: PresetStore, min_midi: int = 21, max_midi: int = 108,
                 on_extend: Optional[Callable[[int], None]] = None):
        self.presets = presets
        self.min_midi = min_midi
        self.max_midi = max_midi
        self.on_extend = on_extend
        self._notes: Dict[str, Note] = {}
        self._cells: Dict[Tuple[int, int], str] = {}
        self._listeners: List[Callable[[], None]] = []
        self.history = HistoryManager(self.snapshot, self.restore)

    # ---------- 查詢 ----------
    def __len__(self):
        return len(self._notes)

    def __iter__(self):
        return iter(list(self._notes.values()))

    def __contains__(self, note_id):
        return note_id in self._notes

    @property
    def notes(self) -> List[Note]:
        return list(self._notes.values())

    def get(self, note_id: str) -> Optional[Note]:
        return self._notes.get(note_id)

    def at(self, midi: int, step: int) -> Optional[Note]:
        nid = self._cells.get((midi, step))
        return self._notes[nid] if nid is not None else None

    def covering(self, midi: int, step: int) -> Optional[Note]:
        """Note sounding at (midi, step); with overlaps the most recently created wins."""
        hit = None
        for n in self._notes.values():
            if n.midi == midi and n.step <= step < n.end:
                hit = n
        return hit

    def end_step(self) -> Optional[int]:
        if not self._notes:
            return None
        return max(n.end for n in self._notes.values())

    # ---------- snapshot ----------
    def snapshot(self) -> Snapshot:
        return tuple(self._notes.values())

    def restore(self, snap: Snapshot):
        self._notes = {n.id: n for n in snap}
        self._cells = {(n.midi, n.step): n.id for n in snap}
        self._changed()

    def load(self, notes: Iterable[Note]):
        """Replace content without history (persistence restore)."""
        kept: List[Note] = []
        seen = set()
        seen_ids = set()
        for n in notes:
            if (n.midi, n.step) in seen:
                logging.warning("load: 重複的格子 (%d, %d)，略過 %s", n.midi, n.step, n.id)
                continue
            if n.id in seen_ids:
                logging.warning("load: 重複的 id %s，略過 (%d, %d)", n.id, n.midi, n.step)
                continue
            seen.add((n.midi, n.step))
            seen_ids.add(n.id)
            kept.append(n)
        self.history.clear()
        self.restore(tuple(kept))
        end = self.end_step()
        if end is not None and self.on_extend:
            self.on_extend(end)

    # ---------- 通知 ----------
    def subscribe(self, callback: Callable[[], None]):
        self._listeners.append(callback)

    def _changed(self):
        for cb in list(self._listeners):
            cb()

    def _extend(self, end: int):
        if self.on_extend:
            self.on_extend(end)

    # ---------- 變更 ----------
    def place(self, midi: int, step: int) -> Optional[str]:
        if not (self.min_midi <= midi <= self.max_midi) or step < 0:
            logging.debug("place: (%r, %r) 超出範圍", midi, step)
            return None
        if (midi, step) in self._cells:
            return None
        preset = self.presets.active
        note = Note(id=new_id(), midi=int(midi), step=int(step),
                    preset_id=preset.id, duration=preset.duration)
        self.history.record_before_mutation()
        self._notes[note.id] = note
        self._cells[(note.midi, note.step)] = note.id
        self._changed()
        self._extend(note.end)
        return note.id

    def remove(self, midi: int, step: int) -> bool:
        nid = self._cells.get((midi, step))
        if nid is None:
            return False
        self.history.record_before_mutation()
        self._drop(nid)
        self._changed()
        return True

    def remove_many(self, ids: Iterable[str]) -> int:
        doomed = [i for i in dict.fromkeys(ids) if i in self._notes]
        if not doomed:
            return 0
        self.history.record_before_mutation()
        for nid in doomed:
            self._drop(nid)
        self._changed()
        return len(doomed)

    def clear_all(self) -> int:
        n = len(self._notes)
        if not n:
            return 0
        self.history.record_before_mutation()
        self._notes.clear()
        self._cells.clear()
        self._changed()
        return n

    def set_duration(self, ids: Iterable[str], token: str) -> int:
        if token not in DURATION_SPANS:
            raise ValueError(f"Unknown duration token: {token!r}")
        return self._retime(ids, lambda n: token)

    def step_duration(self, ids: Iterable[str], delta: int) -> int:
        """Shift durations along the ordered list; -1 lengthens, +1 shortens."""
        return self._retime(ids, lambda n: step_token(n.duration, delta))

    def reassign_preset(self, old_id: str, new_id_: str) -> int:
        hits = [n for n in self._notes.values() if n.preset_id == old_id]
        if not hits:
            return 0
        self.history.record_before_mutation()
        for n in hits:
            self._notes[n.id] = replace(n, preset_id=new_id_)
        self._changed()
        return len(hits)

    def undo(self) -> bool:
        return self.history.undo()

    def redo(self) -> bool:
        return self.history.redo()

    # ---------- 內部 ----------
    def _drop(self, nid: str):
        n = self._notes.pop(nid)
        self._cells.pop((n.midi, n.step), None)

    def _retime(self, ids: Iterable[str], pick: Callable[[Note], str]) -> int:
        updates = {}
        for nid in dict.fromkeys(ids):
            n = self._notes.get(nid)
            if n is None:
                continue
            token = pick(n)
            if token != n.duration:
                updates[nid] = replace(n, duration=token)
        if not updates:
            return 0
        # 批次只記一筆 history
        self.history.record_before_mutation()
        self._notes.update(updates)
        self._changed()
        self._extend(max(n.end for n in updates.values()))
        return len(updates)
