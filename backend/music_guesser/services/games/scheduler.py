import time
from typing import Callable

CANCEL_POLL_SEC = 1.0


class TimerHandle:
    """A scheduled one-shot callback. Cancelling is idempotent."""

    def __init__(self, label: str, delay: float):
        self.label = label
        self.delay = delay
        self.deadline = time.time() + delay
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def __repr__(self):
        state = 'cancelled' if self.cancelled else 'pending'
        return f'<TimerHandle {self.label} {self.delay}s {state}>'


class BackgroundScheduler:
    """Run one-shot callbacks on Socket.IO background tasks.

    - Uses socketio.sleep so the wait cooperates with whatever async mode
      the server runs under (threading, eventlet, gevent)
    - The callback receives its own handle; owners compare it against the
      handle they currently hold to drop superseded timers
    - Cancelled handles never call back
    """

    def __init__(self, socketio, logger, heartbeat_sec: int = 0):
        self.socketio = socketio
        self.logger = logger
        self.heartbeat_sec = heartbeat_sec

    def schedule(self, delay: float, callback: Callable[[TimerHandle], None], label: str = '') -> TimerHandle:
        handle = TimerHandle(label, delay)
        self.logger.info(f"[timer-set] timer={label} delay={delay}s")
        self.socketio.start_background_task(self._worker, handle, callback)
        return handle

    def _worker(self, handle: TimerHandle, callback: Callable[[TimerHandle], None]) -> None:
        hb = self.heartbeat_sec if self.heartbeat_sec and self.heartbeat_sec > 0 else 0
        # Wake up periodically so a cancelled timer frees its task early
        poll = hb or CANCEL_POLL_SEC
        slept = 0.0
        while slept < handle.delay and not handle.cancelled:
            step = min(poll, handle.delay - slept)
            self.socketio.sleep(step)
            slept += step
            if hb:
                self.logger.info(f"[timer-heartbeat] timer={handle.label} remaining={max(0.0, handle.delay - slept):.0f}s")

        if handle.cancelled:
            self.logger.info(f"[timer-abort] timer={handle.label} cancelled")
            return
        try:
            callback(handle)
        except Exception:
            # Background tasks have no caller to report to
            self.logger.exception(f"[timer-error] timer={handle.label}")
