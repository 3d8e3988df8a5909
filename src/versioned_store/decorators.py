from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Literal, Protocol

from .exceptions import ConcurrencyConflict

logger = logging.getLogger(__name__)

Mode = Literal["raise", "return_none", "callable"]


class ConflictHandler(Protocol):
    """
    Called when every attempt ended in a concurrency conflict.
    """
    def __call__(self, *args: Any, **kwargs: Any) -> Any: ...


@dataclass(frozen=True)
class ConflictPolicy:
    """
    Defines what to do once the retry budget is spent.

    - "raise": re-raise the last ConcurrencyConflict (default)
    - "return_none": return None (useful for best-effort operations)
    - "callable": call user-provided handler and return its result
    """
    mode: Mode = "raise"
    handler: ConflictHandler | None = None


def retry_on_conflict(
    *,
    attempts: int = 3,
    backoff: float = 0.05,
    on_conflict: Mode | ConflictHandler = "raise",
):
    """
    Decorator re-running a whole read-modify-write function on conflict.

    The store never retries by itself: a blind retry of just the write would
    overwrite whatever the concurrent writer changed. The wrapped function
    must therefore perform the read as well, so every attempt starts from a
    fresh version.

    Examples
    --------
    @retry_on_conflict(attempts=5)
    def take_one(item_id):
        item = get(item_id)
        return compare_and_update(item.id, item.version, {"quantity": item.quantity - 1})

    Retry behavior
    --------------
    Between attempts the wrapper sleeps ``backoff * attempt`` seconds
    (linear backoff). ``backoff=0`` retries immediately.

    Conflict behavior
    -----------------
    - on_conflict="raise" (default): re-raise ConcurrencyConflict
    - on_conflict="return_none": return None
    - on_conflict=<callable>: call it with the original arguments and return its result
    """
    if attempts < 1:
        raise ValueError(f"versioned_store: attempts must be >= 1, got {attempts}")

    policy = (
        ConflictPolicy(mode=on_conflict) if isinstance(on_conflict, str)
        else ConflictPolicy(mode="callable", handler=on_conflict)
    )

    def decorator(fn: Callable[..., Any]):
        @wraps(fn)
        def wrapper(*args: Any, **kwargs: Any):
            for attempt in range(1, attempts + 1):
                try:
                    return fn(*args, **kwargs)
                except ConcurrencyConflict as exc:
                    if attempt == attempts:
                        logger.warning(
                            "%s: giving up after %d conflicting attempt(s) on id=%s",
                            fn.__qualname__, attempts, exc.item_id,
                        )
                        if policy.mode == "return_none":
                            return None
                        if policy.mode == "callable" and policy.handler is not None:
                            return policy.handler(*args, **kwargs)
                        raise

                    logger.info(
                        "%s: conflict on id=%s, retrying (attempt %d/%d)",
                        fn.__qualname__, exc.item_id, attempt + 1, attempts,
                    )
                    if backoff:
                        time.sleep(backoff * attempt)

        return wrapper

    return decorator
