"""
Playback position tracking independent of the audio process.
"""
import time
from typing import Callable, Optional

from .logging_config import get_logger

logger = get_logger('clock')


class SessionClock:
    """Elapsed time of the active track across pauses and speed changes.

    The clock keeps a start timestamp, the pause state and the total time
    spent paused. ``rate`` is the playback speed factor: one second of
    wall time at rate 1.36 advances the track position by 1.36 seconds.
    """

    def __init__(self, now: Callable[[], float] = time.monotonic):
        self._now = now
        self.start: Optional[float] = None
        self.paused: bool = False
        self.pause_start: Optional[float] = None
        self.paused_total: float = 0.0
        self.rate: float = 1.0

    @property
    def started(self) -> bool:
        return self.start is not None

    def elapsed(self) -> float:
        """Effective elapsed seconds of the current track, never negative."""
        if self.start is None:
            return 0.0
        end = self.pause_start if self.paused and self.pause_start is not None else self._now()
        return max(0.0, (end - self.start - self.paused_total) * self.rate)

    def pause(self) -> bool:
        """Freeze the clock. Returns False if it is stopped or already paused."""
        if self.start is None or self.paused:
            return False
        self.paused = True
        self.pause_start = self._now()
        return True

    def resume(self) -> bool:
        """Unfreeze the clock. Returns False if it wasn't paused."""
        if not self.paused:
            return False
        if self.pause_start is not None:
            self.paused_total += max(0.0, self._now() - self.pause_start)
        self.paused = False
        self.pause_start = None
        return True

    def reset(self, offset: float = 0.0, rate: Optional[float] = None) -> None:
        """Restart the clock so that it reads ``offset`` right away."""
        if rate is not None:
            if rate <= 0:
                raise ValueError(f"Clock rate must be positive, got {rate}")
            self.rate = rate
        self.start = self._now() - max(0.0, offset) / self.rate
        self.paused = False
        self.pause_start = None
        self.paused_total = 0.0
        logger.debug(f"Clock reset to {offset:.2f}s at rate {self.rate:.2f}")

    def advance(self, seconds: float) -> None:
        """Move the start forward so elapsed drops by ``seconds``."""
        if self.start is not None:
            self.start += seconds / self.rate

    def stop(self) -> None:
        """Forget the current track entirely."""
        self.start = None
        self.paused = False
        self.pause_start = None
        self.paused_total = 0.0
