import asyncio
import functools
import threading
import time
from typing import Any, Callable, Dict, List, Optional, TypeVar

F = TypeVar("F", bound=Callable[..., Any])


class AsyncRateLimiter:
    """
    Async Token Bucket Rate Limiter.
    Ensures that no more than `max_calls` occur within `period` seconds.

    Example:
        limiter = AsyncRateLimiter(max_calls=5, period=1)
        await limiter.acquire()  # blocks until allowed
    """

    def __init__(self, max_calls: int, period: float) -> None:
        self.max_calls = max_calls
        self.period = period
        self._tokens: float = float(max_calls)
        self._lock = asyncio.Lock()
        self._last_refill = time.monotonic()

    def _refill(self) -> None:
        """Refill tokens based on elapsed time."""
        now = time.monotonic()
        elapsed = now - self._last_refill
        if elapsed > 0:
            refill_amount = (elapsed / self.period) * self.max_calls
            self._tokens = min(self.max_calls, self._tokens + refill_amount)
            self._last_refill = now

    async def acquire(self) -> None:
        """Wait until a token is available."""
        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1:
                    self._tokens -= 1
                    return
                await asyncio.sleep(0.01)


# Global registry for decorators
_rate_limiters: Dict[str, AsyncRateLimiter] = {}


def throttled(
    limit: int,
    period: float,
    name: Optional[str] = None,
) -> Callable[[F], F]:
    """
    Decorator for async throttling of outbound provider calls.

    Usage:
        @throttled(limit=5, period=1)
        async def search(...):
            ...
    """

    def decorator(func: F) -> F:
        limiter_name = name or func.__name__
        if limiter_name not in _rate_limiters:
            _rate_limiters[limiter_name] = AsyncRateLimiter(limit, period)

        limiter = _rate_limiters[limiter_name]

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            await limiter.acquire()
            return await func(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator


class SessionRateLimiter:
    """
    Per-session sliding window limiter for inbound verification requests.

    A request is allowed only if fewer than `max_requests` timestamps fall in
    the trailing `window` seconds. State is local to this process; several
    instances behind a load balancer each keep their own windows.
    """

    def __init__(
        self,
        max_requests: int = 5,
        window: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window = window
        self._clock = clock
        self._windows: Dict[str, List[float]] = {}
        self._lock = threading.Lock()

    def allow(self, session_id: str) -> bool:
        now = self._clock()
        with self._lock:
            recent = [ts for ts in self._windows.get(session_id, []) if now - ts < self.window]
            if len(recent) >= self.max_requests:
                self._windows[session_id] = recent
                return False
            recent.append(now)
            self._windows[session_id] = recent
            return True

    def sweep(self) -> int:
        """Drop sessions whose whole window has expired. Returns how many were removed."""
        now = self._clock()
        removed = 0
        with self._lock:
            for session_id in list(self._windows):
                valid = [ts for ts in self._windows[session_id] if now - ts < self.window]
                if valid:
                    self._windows[session_id] = valid
                else:
                    del self._windows[session_id]
                    removed += 1
        return removed

    @property
    def tracked_sessions(self) -> int:
        return len(self._windows)
