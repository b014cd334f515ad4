"""Caller-side retry for receiver commands using tenacity.

The transport never retries on its own: a refused connection usually
means the game is still booting, and only the caller knows whether that
is worth waiting for.

Examples:
    Keep trying while the receiver comes up::

        >>> @with_retry(max_attempts=5, min_wait=0.5, max_wait=4)
        ... async def ping() -> object:
        ...     return await manager.send({"type": "ping"})
"""

from collections.abc import Callable

from tenacity import (
    retry,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from godot_session.lib.errors import ReceiverConnectionError, SessionEndedError


def with_retry[T](
    max_attempts: int = 3,
    min_wait: float = 0.5,
    max_wait: float = 5,
    extra_exceptions: tuple[type[Exception], ...] = (),
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Retry on receiver connection errors with exponential backoff.

    A session that was torn down (``SessionEndedError``) is never retried.

    Args:
        max_attempts: Maximum number of attempts, including the first.
        min_wait: Minimum wait between attempts in seconds.
        max_wait: Maximum wait between attempts in seconds.
        extra_exceptions: Additional exception types to retry on.
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=min_wait, min=min_wait, max=max_wait),
        retry=(
            retry_if_exception_type((ReceiverConnectionError, *extra_exceptions))
            & retry_if_not_exception_type(SessionEndedError)
        ),
        reraise=True,
    )
