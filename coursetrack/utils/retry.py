# ==============================================================================
# utils/retry.py - Retry policy for optimistic store writes
# ==============================================================================

import logging

from tenacity import Retrying, before_sleep_log, retry_if_exception_type, stop_after_attempt

from coursetrack.exceptions import ConcurrentModificationError


def optimistic_write(attempts: int, logger: logging.Logger) -> Retrying:
    """
    Retry a read-validate-write block while the store reports a version conflict.

    Usage::

        for attempt in optimistic_write(settings.WRITE_RETRIES, logger):
            with attempt:
                ...

    The block always runs at least once; the last ConcurrentModificationError
    is re-raised once ``attempts`` are used up. Any other exception stops
    immediately.
    """
    return Retrying(
        stop=stop_after_attempt(attempts),
        retry=retry_if_exception_type(ConcurrentModificationError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
