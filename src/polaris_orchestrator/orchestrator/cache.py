"""In-memory response cache and shared in-flight call registry."""

import asyncio
import hashlib
import time
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, Tuple, TypeVar

import orjson

from polaris_orchestrator.telemetry.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

KEY_VERSION = "v1"


def fingerprint(namespace: str, payload: Dict[str, Any]) -> str:
    """Deterministic key for a request payload."""
    key_bytes = orjson.dumps(payload, option=orjson.OPT_SORT_KEYS | orjson.OPT_NON_STR_KEYS, default=str)
    key_hash = hashlib.sha256(key_bytes).hexdigest()
    return f"{namespace}:{KEY_VERSION}:{key_hash}"


class ResponseCache(Generic[T]):
    """Dict with lazy time-based eviction. Last write wins."""

    def __init__(self, ttl_seconds: float = 300.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: Dict[str, Tuple[T, float]] = {}

    def get(self, key: str) -> Optional[T]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self.clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: T, ttl_seconds: Optional[float] = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        now = self.clock()
        self.prune(now)
        self._entries[key] = (value, now + ttl)

    def prune(self, now: Optional[float] = None) -> int:
        """Drop every expired entry and return how many were dropped."""
        now = self.clock() if now is None else now
        expired = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class InFlightRegistry(Generic[T]):
    """Maps a key to at most one piece of in-flight or retained work.

    Concurrent callers with the same key await the first caller's future.
    With ``retain_seconds`` set, a completed value keeps answering for that
    key until it expires; a failed call always releases the key. Expired
    entries are swept on every run and reported through ``on_expire``.
    """

    def __init__(
        self,
        retain_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        on_expire: Optional[Callable[[str, T], None]] = None,
    ):
        self.retain_seconds = retain_seconds
        self.clock = clock
        self.on_expire = on_expire
        self._pending: Dict[str, asyncio.Future] = {}
        self._completed: Dict[str, Tuple[T, float]] = {}

    def peek(self, key: str) -> Optional[T]:
        entry = self._completed.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self.clock() >= expires_at:
            self._expire(key)
            return None
        return value

    def _expire(self, key: str) -> None:
        value, _ = self._completed.pop(key)
        if self.on_expire:
            self.on_expire(key, value)

    def prune(self) -> int:
        """Release every retained value past its expiry."""
        now = self.clock()
        expired = [key for key, (_, expires_at) in self._completed.items() if now >= expires_at]
        for key in expired:
            self._expire(key)
        return len(expired)

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    async def run(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        self.prune()
        existing = self.peek(key)
        if existing is not None:
            return existing

        pending = self._pending.get(key)
        if pending is not None:
            logger.debug("Joining in-flight call", key=key)
            return await asyncio.shield(pending)

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[key] = future
        try:
            value = await factory()
        except BaseException as exc:
            if isinstance(exc, asyncio.CancelledError):
                future.cancel()
            else:
                future.set_exception(exc)
                # Mark retrieved so an unjoined failure does not warn at GC.
                future.exception()
            raise
        else:
            future.set_result(value)
            if self.retain_seconds:
                self._completed[key] = (value, self.clock() + self.retain_seconds)
            return value
        finally:
            self._pending.pop(key, None)

    def forget(self, key: str) -> None:
        if key in self._completed:
            self._expire(key)
