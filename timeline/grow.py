# timeline/grow.py
import logging

class AutoGrowPolicy:
    """Visible/schedulable step range that only ever grows.

    Growth rounds the needed column up to a multiple of ``increment`` and adds
    one more increment of headroom.
    """
    def __init__(self, default_steps: int = 64, increment: int = 16):
        if increment <= 0:
            raise ValueError("increment must be positive")
        self.increment = increment
        self.steps = max(int(default_steps), increment)

    def _grown(self, col: int) -> int:
        inc = self.increment
        return -(-col // inc) * inc + inc

    def fit(self, end_step: int) -> bool:
        """Grow so a note ending at ``end_step`` fits; True when the range changed."""
        if end_step <= self.steps:
            return False
        old = self.steps
        self.steps = self._grown(end_step)
        logging.debug("timeline grow %d -> %d (end=%d)", old, self.steps, end_step)
        return True

    def viewport(self, last_visible_step: int) -> bool:
        # 捲動接近右邊界（剩不到一個 increment）就先長一段
        if last_visible_step + self.increment < self.steps:
            return False
        old = self.steps
        self.steps = max(old + self.increment, self._grown(last_visible_step))
        logging.debug("timeline grow %d -> %d (viewport=%d)", old, self.steps, last_visible_step)
        return True
