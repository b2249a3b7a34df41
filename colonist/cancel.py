import threading


class CancelToken:
    """Threaded into every runner call of a run.

    `cancelled` means no new executions are to be started; `forced` additionally asks the
    runner to terminate subprocesses already in flight
    """

    def __init__(self) -> None:
        self._cancelled = threading.Event()
        self._forced = threading.Event()

    def cancel(self, force: bool = False) -> None:
        self._cancelled.set()
        if force:
            self._forced.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def forced(self) -> bool:
        return self._forced.is_set()

    def wait_forced(self, timeout: float | None = None) -> bool:
        return self._forced.wait(timeout)
