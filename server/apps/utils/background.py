import logging
from concurrent.futures import ThreadPoolExecutor

from django.conf import settings

logger = logging.getLogger(__name__)

_executor = None


def _get_executor():
    global _executor
    if _executor is None:
        _executor = ThreadPoolExecutor(
            max_workers=getattr(settings, "BACKGROUND_MAX_WORKERS", 4),
            thread_name_prefix="coordinator-bg",
        )
    return _executor


def _log_failure(name, future):
    exc = future.exception()
    if exc is not None:
        logger.error(f"Background task {name} failed: {exc}", exc_info=exc)


def run_in_background(func, *args, **kwargs):
    """
    Fire-and-forget a side effect (notification, gateway call).

    Failures are logged and never reach the caller. With
    BACKGROUND_TASKS_EAGER the task runs inline, which keeps tests
    deterministic.
    """
    name = getattr(func, "__qualname__", repr(func))

    if getattr(settings, "BACKGROUND_TASKS_EAGER", False):
        try:
            func(*args, **kwargs)
        except Exception as e:
            logger.error(f"Background task {name} failed: {str(e)}", exc_info=True)
        return None

    future = _get_executor().submit(func, *args, **kwargs)
    future.add_done_callback(lambda f: _log_failure(name, f))
    return future
