# timeline/transport.py
import itertools, logging, math, time
from bisect import bisect_right
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from notes.model import STEPS_PER_BEAT, span_of

STOPPED, RUNNING, PAUSED = "stopped", "running", "paused"
_EPS = 1e-9


class Part:
    """A fixed list of ``(beats, value)`` events, each fired once via ``callback(time, value)``.

    The transport decides *when*; the part only remembers how far it got.
    """
    def __init__(self, callback: Callable[[float, Any], None], events: Iterable[Tuple[float, Any]]):
        self.callback = callback
        self.events = sorted(events, key=lambda e: e[0])
        self._beats = [e[0] for e in self.events]
        self.index = 0
        self.disposed = False

    def __len__(self):
        return len(self.events)

    def seek(self, horizon: Optional[float]):
        # horizon 之前（含）都已經處理過了
        self.index = 0 if horizon is None else bisect_right(self._beats, horizon)

    def next_beat(self) -> Optional[float]:
        if self.disposed or self.index >= len(self._beats):
            return None
        return self._beats[self.index]

    def fire(self, time_s: float):
        _, value = self.events[self.index]
        self.index += 1
        self.callback(time_s, value)

    def dispose(self):
        self.disposed = True
        self.events = []
        self._beats = []


class _Repeat:
    def __init__(self, callback: Callable[[float], None], interval: float, start: float):
        self.callback = callback
        self.interval = interval
        self.start = start
        self.count = 0

    def seek(self, horizon: Optional[float]):
        if horizon is None or horizon < self.start:
            self.count = 0
        else:
            self.count = int(math.floor((horizon - self.start) / self.interval + _EPS)) + 1

    def next_beat(self) -> float:
        return self.start + self.count * self.interval

    def fire(self, time_s: float):
        self.count += 1
        self.callback(time_s)


class Transport:
    """Software transport: position in seconds, musical time in beats.

    Nothing fires on its own; ``pump()`` is called from the main loop and runs
    every due part event and repeat in time order, exactly once, then flushes
    the draw queue (the safe point for display-state updates).
    """
    def __init__(self, bpm: float = 120.0, clock: Callable[[], float] = time.perf_counter):
        self._clock = clock
        self._bpm = float(bpm)
        self.state = STOPPED
        self._started_at = 0.0                # clock() at position 0 while running
        self._position = 0.0                  # seconds, while stopped/paused
        self._anchor = (0.0, 0.0)             # (seconds, beats) where the current tempo began
        self._horizon: Optional[float] = None # last processed beat
        self._ids = itertools.count(1)
        self._repeats: Dict[int, _Repeat] = {}
        self._parts: List[Part] = []
        self._draws: List[Tuple[float, Callable[[], None]]] = []

    # ---------- time ----------
    @property
    def seconds(self) -> float:
        if self.state == RUNNING:
            return max(0.0, self._clock() - self._started_at)
        return self._position

    @seconds.setter
    def seconds(self, value: float):
        value = max(0.0, float(value))
        if self.state == RUNNING:
            self._started_at = self._clock() - value
        else:
            self._position = value
        self._anchor = (value, value * self._bpm / 60.0)
        self._seek(None if value == 0 else self._anchor[1] - _EPS)

    @property
    def bpm(self) -> float:
        return self._bpm

    @bpm.setter
    def bpm(self, value: float):
        # 新速度只影響之後的時間，已經走過的拍數不變
        now = self.seconds
        self._anchor = (now, self.beats_at(now))
        self._bpm = float(value)

    @property
    def beats(self) -> float:
        return self.beats_at(self.seconds)

    def beats_at(self, seconds: float) -> float:
        s0, b0 = self._anchor
        return b0 + (seconds - s0) * self._bpm / 60.0

    def seconds_at(self, beats: float) -> float:
        s0, b0 = self._anchor
        return s0 + (beats - b0) * 60.0 / self._bpm

    def to_seconds(self, token: str) -> float:
        return span_of(token) / STEPS_PER_BEAT * 60.0 / self._bpm

    # ---------- state ----------
    def start(self):
        if self.state == RUNNING:
            return
        self._started_at = self._clock() - self._position
        self.state = RUNNING
        logging.debug("transport start @ %.3fs", self._position)

    def pause(self):
        if self.state != RUNNING:
            return
        self._position = self.seconds
        self.state = PAUSED
        logging.debug("transport pause @ %.3fs", self._position)

    def stop(self):
        self.state = STOPPED
        self._position = 0.0
        self._anchor = (0.0, 0.0)
        self._seek(None)
        logging.debug("transport stop")

    def _seek(self, horizon: Optional[float]):
        self._horizon = horizon
        for p in self._parts:
            p.seek(horizon)
        for r in self._repeats.values():
            r.seek(horizon)

    # ---------- scheduling ----------
    def schedule_repeat(self, callback: Callable[[float], None], interval: float, start: float = 0.0) -> int:
        if interval <= 0:
            raise ValueError("repeat interval must be positive")
        rid = next(self._ids)
        r = _Repeat(callback, float(interval), float(start))
        r.seek(self._horizon)
        self._repeats[rid] = r
        return rid

    def clear(self, repeat_id: int):
        self._repeats.pop(repeat_id, None)

    def add_part(self, part: Part):
        part.seek(self._horizon)
        self._parts.append(part)

    def remove_part(self, part: Part):
        try:
            self._parts.remove(part)
        except ValueError:
            pass

    @property
    def parts(self) -> List[Part]:
        return list(self._parts)

    def schedule_draw(self, callback: Callable[[], None], time_s: float):
        self._draws.append((time_s, callback))

    # ---------- pump ----------
    def pump(self) -> int:
        fired = 0
        if self.state == RUNNING:
            now = self.beats
            while self.state == RUNNING:
                due = self._next_due(now)
                if due is None:
                    break
                beat, target = due
                target.fire(self.seconds_at(beat))
                fired += 1
                if self.state == RUNNING:
                    self._horizon = beat
            if self.state == RUNNING:
                self._horizon = now
        self._flush_draws()
        return fired

    def _next_due(self, now: float):
        best = None
        for p in self._parts:
            b = p.next_beat()
            if b is not None and b <= now + _EPS and (best is None or b < best[0]):
                best = (b, p)
        # 同一拍：先發聲，再跑 repeat（游標）
        for r in self._repeats.values():
            b = r.next_beat()
            if b <= now + _EPS and (best is None or b < best[0] - _EPS):
                best = (b, r)
        return best

    def _flush_draws(self):
        draws, self._draws = self._draws, []
        for _, cb in sorted(draws, key=lambda d: d[0]):
            try:
                cb()
            except Exception:
                logging.exception("draw callback 失敗")
