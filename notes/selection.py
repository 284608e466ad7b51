# notes/selection.py
from typing import Optional, Set, Tuple

from notes.store import NoteStore

class SelectionManager:
    """Selected note ids plus the last hovered cell; drives batch edits.

    Ids of notes that no longer exist are pruned lazily on read.
    """
    def __init__(self, notes: NoteStore):
        self.notes = notes
        self._ids: Set[str] = set()
        self.hovered: Optional[Tuple[int, int]] = None

    @property
    def ids(self) -> Set[str]:
        self._ids = {i for i in self._ids if i in self.notes}
        return set(self._ids)

    def __contains__(self, note_id):
        return note_id in self.ids

    def __len__(self):
        return len(self.ids)

    def clear(self):
        self._ids.clear()

    def select_only(self, note_id: str):
        self._ids = {note_id}

    # ---------- 滑鼠 ----------
    def click(self, midi: int, step: int, union: bool = False) -> Optional[str]:
        """Apply grid click semantics; returns the id of a newly created note, if any."""
        note = self.notes.at(midi, step)
        if note is not None:
            if note.id in self.ids:
                self._ids.discard(note.id)
            elif union:
                self._ids.add(note.id)
            else:
                self._ids = {note.id}
            return None

        nid = self.notes.place(midi, step)
        if nid is None:
            return None
        if union:
            self._ids.add(nid)
        else:
            self._ids = {nid}
        return nid

    def hover_enter(self, midi: int, step: int):
        self.hovered = (midi, step)

    def hover_leave(self, midi: Optional[int] = None, step: Optional[int] = None):
        # 只清掉目前這格；晚到的 leave 不蓋掉新的 enter
        if midi is None or self.hovered == (midi, step):
            self.hovered = None

    # ---------- 鍵盤 ----------
    def delete(self) -> int:
        sel = self.ids
        if sel:
            n = self.notes.remove_many(sel)
            self._ids.clear()
            return n
        if self.hovered is not None:
            return 1 if self.notes.remove(*self.hovered) else 0
        return 0

    def lengthen(self) -> int:
        return self.notes.step_duration(self.ids, -1)

    def shorten(self) -> int:
        return self.notes.step_duration(self.ids, +1)
