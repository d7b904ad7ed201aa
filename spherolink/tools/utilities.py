#!/usr/bin/env python3

from typing import Callable
import functools
import logging


def log_exceptions(func: Callable) -> Callable:
    """
    Decorator that logs exceptions with full traceback and re-raises them.

    Used on the bodies of the driver's background threads so that a bug in a
    reader, writer or timer loop leaves a traceback in the log instead of
    disappearing with the thread.

    Example:
    >>> from spherolink.tools import log_exceptions
    >>>
    >>> class Worker:
    ...
    ...     @log_exceptions
    ...     def _run(self):
    ...         ...
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            logger = logging.getLogger(func.__module__)
            logger.error(
                f"Exception in {func.__qualname__}: {e}",
                exc_info=True
            )
            raise

    return wrapper


def notify_safely(logger: logging.Logger, callback: Callable, *args) -> None:
    """Invoke a user callback, logging instead of propagating its exceptions."""
    try:
        callback(*args)
    except Exception:
        logger.exception(f"Listener callback {callback!r} raised")
