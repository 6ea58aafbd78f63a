"""Time-bounded calls into external collaborators."""

import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Callable, TypeVar

from .errors import CollaboratorTimeoutError

T = TypeVar("T")

WORKER_NAME_PREFIX = "daychain-collab"


def call_with_timeout(
    func: Callable[..., T],
    timeout_seconds: float | None,
    *args,
    description: str = "collaborator",
    **kwargs,
) -> T:
    """
    Run func(*args, **kwargs), giving up after timeout_seconds.

    Exceptions raised by func propagate unchanged. A call that runs past the
    bound raises CollaboratorTimeoutError. The call runs on its own daemon
    thread: a hung collaborator is abandoned and can delay neither the caller
    nor interpreter exit (a ThreadPoolExecutor worker would be joined at exit).

    Args:
        timeout_seconds: Bound in seconds, or None to call inline
        description: Name used in the timeout message
    """
    if timeout_seconds is None:
        return func(*args, **kwargs)

    future: Future = Future()

    def run():
        if not future.set_running_or_notify_cancel():
            return
        try:
            result = func(*args, **kwargs)
        except Exception as exc:
            future.set_exception(exc)
        else:
            future.set_result(result)

    worker = threading.Thread(
        target=run, name=f"{WORKER_NAME_PREFIX}-{description}", daemon=True
    )
    worker.start()
    try:
        return future.result(timeout=timeout_seconds)
    except FuturesTimeoutError as exc:
        if future.done():
            # The collaborator itself raised TimeoutError
            raise
        raise CollaboratorTimeoutError(
            f"{description} did not respond within {timeout_seconds}s"
        ) from exc
