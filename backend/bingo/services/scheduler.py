import threading
from typing import Callable, Optional


def _spawn_thread(target, *args):
    worker = threading.Thread(target=target, args=args, daemon=True)
    worker.start()
    return worker


class TimerHandle:
    """A periodic background task that can be cancelled.

    Each handle runs at most one worker. ``spawn`` starts the worker; the app
    passes ``socketio.start_background_task`` so the worker matches the
    server's async mode.
    """

    def __init__(self, spawn: Optional[Callable] = None):
        self._spawn = spawn or _spawn_thread
        self._stopped = threading.Event()
        self._started = False
        self.interval: Optional[float] = None

    @property
    def cancelled(self) -> bool:
        return self._stopped.is_set()

    @property
    def running(self) -> bool:
        return self._started and not self.cancelled

    def start(self, interval: float, callback: Callable[['TimerHandle'], None]) -> 'TimerHandle':
        if self._started:
            raise RuntimeError('timer already started')
        self._started = True
        self.interval = float(interval)
        self._spawn(self._run, callback)
        return self

    def cancel(self) -> None:
        self._stopped.set()

    def _run(self, callback):
        # wait() returns True once cancelled, ending the loop
        while not self._stopped.wait(self.interval):
            callback(self)
