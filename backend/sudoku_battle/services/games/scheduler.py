import threading


class TimerHandle:
    """Cancellation token for a scheduled callback."""

    def __init__(self):
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()


class BackgroundScheduler:
    """Runs delayed callbacks as Socket.IO background tasks.

    Callbacks fire on a worker, so they must take the session lock and
    re-check the session state before acting.
    """

    def __init__(self, socketio, logger=None):
        self.socketio = socketio
        self.logger = logger

    def call_later(self, delay, callback, *args) -> TimerHandle:
        handle = TimerHandle()

        def _worker():
            if delay > 0:
                self.socketio.sleep(delay)
            if handle.cancelled:
                return
            try:
                callback(*args)
            except Exception:
                if self.logger:
                    self.logger.exception(f"[timer-error] callback={getattr(callback, '__name__', callback)}")

        self.socketio.start_background_task(_worker)
        return handle


def start_sweeper(app, socketio, registry) -> None:
    """Purge expired sessions every SWEEP_INTERVAL_SEC.

    - No-ops in TESTING mode
    - Stops once the registry is closed
    """
    if app.config.get('TESTING'):
        return
    interval = int(app.config.get('SWEEP_INTERVAL_SEC', 600))

    def _loop():
        while not registry.closed:
            socketio.sleep(interval)
            if registry.closed:
                return
            try:
                registry.sweep()
            except Exception:
                app.logger.exception('[sweep] failed')

    socketio.start_background_task(_loop)
