# timeline/clock.py
import logging, math
from typing import Callable, List, Optional

from notes.model import STEPS_PER_BEAT
from timeline.transport import PAUSED, RUNNING, Transport

class TransportClock:
    """Sixteenth-note tick that turns transport time into the cursor step.

    Cursor updates go through the transport's draw queue so they land after
    all audio callbacks of the same pump.
    """
    def __init__(self, transport: Transport):
        self.transport = transport
        self.max_step: Optional[int] = None   # 最遠的 note 結束欄位
        self.step: Optional[int] = None       # 目前游標，None = 不顯示
        self._listeners: List[Callable[[Optional[int]], None]] = []
        self._repeat_id: Optional[int] = None

    @property
    def state(self) -> str:
        return self.transport.state

    def subscribe(self, callback: Callable[[Optional[int]], None]):
        self._listeners.append(callback)

    def attach(self):
        if self._repeat_id is None:
            self._repeat_id = self.transport.schedule_repeat(self._tick, 1.0 / STEPS_PER_BEAT)

    def dispose(self):
        if self._repeat_id is not None:
            self.transport.clear(self._repeat_id)
            self._repeat_id = None

    def step_at(self, time_s: float) -> int:
        # 等速時即 floor(seconds * bpm / 60 * 4)
        return int(math.floor(self.transport.beats_at(time_s) * STEPS_PER_BEAT + 1e-9))

    def _tick(self, time_s: float):
        step = self.step_at(time_s)
        if self.max_step is not None and step >= self.max_step:
            logging.info("播放到結尾 (step %d)，自動停止", step)
            self.transport.stop()
            self.transport.schedule_draw(lambda: self._publish(None), time_s)
            return
        self.transport.schedule_draw(lambda: self._publish(step), time_s)

    def _publish(self, step: Optional[int]):
        if step == self.step:
            return
        self.step = step
        for cb in list(self._listeners):
            cb(step)

    # ---------- 控制 ----------
    def play(self):
        self.transport.stop()
        self.transport.start()

    def pause(self):
        self.transport.pause()

    def resume(self):
        if self.transport.state == PAUSED:
            self.transport.start()

    def toggle(self):
        if self.transport.state == RUNNING:
            self.pause()
        elif self.transport.state == PAUSED:
            self.resume()
        else:
            self.play()

    def stop(self):
        self.transport.stop()
        self._publish(None)
