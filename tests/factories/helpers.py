"""
Test helpers shared across unit tests.
"""

import threading
from contextlib import contextmanager

from core.models import ExternalTaskState, TaskProgress


def progress(state: ExternalTaskState, processed: int = 10, errors: int = 0, **extra) -> TaskProgress:
    """Progress report as the external task service would send it."""
    return TaskProgress(state=state, processed_records=processed, errors=errors, **extra)


@contextmanager
def held_elsewhere(lock_service, name: str):
    """Hold a lock from another live thread for the duration of the block."""
    acquired, release = threading.Event(), threading.Event()

    def _holder():
        lock_service.lock(name)
        acquired.set()
        release.wait(5)
        lock_service.unlock(name)

    thread = threading.Thread(target=_holder)
    thread.start()
    acquired.wait(5)
    try:
        yield
    finally:
        release.set()
        thread.join(5)
