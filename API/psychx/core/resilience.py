import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from threading import Lock
from typing import AsyncIterator

from psychx.core.errors import GenerationFailedError, GenerationInProgressError
from psychx.core.settings import settings


async def retry_with_backoff(
    async_func,
    *,
    max_retries: int = 3,
    base_delay_seconds: float = 0.5,
    retryable_errors: tuple[type[Exception], ...] = (TimeoutError, ConnectionError, asyncio.TimeoutError),
):
    last_exception = None
    for attempt in range(max_retries):
        try:
            return await async_func()
        except retryable_errors as exc:  # type: ignore[misc]
            last_exception = exc
            if attempt == max_retries - 1:
                break
            await asyncio.sleep(base_delay_seconds * (2**attempt))
    if last_exception:
        raise last_exception


async def call_with_timeout(awaitable, *, timeout_seconds: float, operation: str):
    """Await a content-service call, turning a hang into a retryable failure."""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_seconds)
    except asyncio.TimeoutError as exc:
        raise GenerationFailedError(
            f"The AI coach took too long to respond ({operation}). Please try again.",
            details={"operation": operation, "timeout_seconds": timeout_seconds},
        ) from exc


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    name: str
    failure_threshold: int = 4
    recovery_timeout_seconds: float = 30.0
    half_open_max_calls: int = 1
    state: CircuitState = field(default=CircuitState.CLOSED)
    failure_count: int = field(default=0)
    last_failure_time: float = field(default=0.0)
    half_open_calls: int = field(default=0)
    _lock: Lock = field(default_factory=Lock)

    def can_execute(self) -> bool:
        with self._lock:
            if self.state == CircuitState.CLOSED:
                return True
            if self.state == CircuitState.OPEN:
                if time.time() - self.last_failure_time >= self.recovery_timeout_seconds:
                    self.state = CircuitState.HALF_OPEN
                    self.half_open_calls = 0
                    return True
                return False
            if self.half_open_calls < self.half_open_max_calls:
                self.half_open_calls += 1
                return True
            return False

    def record_success(self) -> None:
        with self._lock:
            self.state = CircuitState.CLOSED
            self.failure_count = 0
            self.half_open_calls = 0

    def record_failure(self) -> None:
        with self._lock:
            self.failure_count += 1
            self.last_failure_time = time.time()
            if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
                self.state = CircuitState.OPEN
                self.half_open_calls = 0


_registry: dict[str, CircuitBreaker] = {}
_registry_lock = Lock()


def get_breaker(name: str) -> CircuitBreaker:
    with _registry_lock:
        if name not in _registry:
            _registry[name] = CircuitBreaker(name=name)
        return _registry[name]


class KeyedLocks:
    """One asyncio.Lock per key, dropped again once nobody holds or waits on it."""

    def __init__(self):
        self._locks: dict[str, tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock, users = self._locks.get(key, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[key] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[key]
            if users <= 1:
                self._locks.pop(key, None)
            else:
                self._locks[key] = (lock, users - 1)

    def __len__(self) -> int:
        return len(self._locks)


class MemoryInFlightGuard:
    """Rejects a second generation request for a key while the first is still running."""

    def __init__(self):
        self._active: set[str] = set()
        self._lock = Lock()

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        with self._lock:
            if key in self._active:
                raise GenerationInProgressError(
                    "A request for this plan is already being processed. Please wait.",
                    details={"key": key},
                )
            self._active.add(key)
        try:
            yield
        finally:
            with self._lock:
                self._active.discard(key)

    async def is_held(self, key: str) -> bool:
        with self._lock:
            return key in self._active


class RedisInFlightGuard:
    """Same contract as MemoryInFlightGuard, shared across worker processes via SET NX EX."""

    def __init__(self, client, ttl_seconds: int):
        self._client = client
        self._ttl = ttl_seconds

    @staticmethod
    def _redis_key(key: str) -> str:
        return f"psychx:inflight:{key}"

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        token = uuid.uuid4().hex
        acquired = await self._client.set(self._redis_key(key), token, nx=True, ex=self._ttl)
        if not acquired:
            raise GenerationInProgressError(
                "A request for this plan is already being processed. Please wait.",
                details={"key": key},
            )
        try:
            yield
        finally:
            current = await self._client.get(self._redis_key(key))
            if current == token:
                await self._client.delete(self._redis_key(key))

    async def is_held(self, key: str) -> bool:
        return bool(await self._client.exists(self._redis_key(key)))


_guard = None


def get_inflight_guard():
    global _guard
    if _guard is None:
        if (settings.inflight_backend or "").lower() == "redis":
            import redis.asyncio as redis

            client = redis.from_url(settings.redis_url, decode_responses=True)
            _guard = RedisInFlightGuard(client, ttl_seconds=settings.inflight_ttl_seconds)
        else:
            _guard = MemoryInFlightGuard()
    return _guard
