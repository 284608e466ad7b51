# notes/history.py
from typing import Any, Callable, List

class HistoryManager:
    """Snapshot-based undo/redo.

    ``capture`` returns an immutable snapshot of the owner's state and
    ``restore`` puts one back. Stacks are ordered oldest first.
    """
    def __init__(self, capture: Callable[[], Any], restore: Callable[[Any], None]):
        self._capture = capture
        self._restore = restore
        self.undo_stack: List[Any] = []
        self.redo_stack: List[Any] = []

    @property
    def can_undo(self) -> bool:
        return bool(self.undo_stack)

    @property
    def can_redo(self) -> bool:
        return bool(self.redo_stack)

    def record_before_mutation(self):
        # 每個使用者動作只呼叫一次（批次編輯也是一次）
        self.undo_stack.append(self._capture())
        self.redo_stack.clear()

    def undo(self) -> bool:
        if not self.undo_stack:
            return False
        snap = self.undo_stack.pop()
        self.redo_stack.append(self._capture())
        self._restore(snap)
        return True

    def redo(self) -> bool:
        if not self.redo_stack:
            return False
        snap = self.redo_stack.pop()
        self.undo_stack.append(self._capture())
        self._restore(snap)
        return True

    def clear(self):
        self.undo_stack.clear()
        self.redo_stack.clear()
