"""In-memory fixed window rate limiting.

Counters live in a :class:`RateLimitStore` owned by the application instance
(``app.state.rate_limiter``). Each named policy keeps its own counters, so the
same caller has independent budgets for general, auth and upload traffic.
State is per process and is lost on restart.
"""
from __future__ import annotations

import asyncio
import hashlib
import logging
import math
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Iterable, Optional

from fastapi import HTTPException, Request, status

from family_health.config import Settings, settings

logger = logging.getLogger(__name__)

RATE_LIMIT_ERROR = "Rate limit exceeded"
UNKNOWN_IDENTIFIER = "unknown"

GENERAL = "general"
AUTH = "auth"
UPLOAD = "upload"
POLICY_NAMES = (GENERAL, AUTH, UPLOAD)


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RateLimitPolicy:
    """Window length, quota and rejection message for a class of endpoints."""

    name: str
    window_ms: int
    max_requests: int
    message: str = "Too many requests, please try again later."

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("policy name must be a non-empty string")
        if self.window_ms <= 0:
            raise ValueError(f"policy {self.name!r}: window_ms must be > 0")
        if self.max_requests <= 0:
            raise ValueError(f"policy {self.name!r}: max_requests must be > 0")


@dataclass
class RateWindow:
    window_start_ms: int
    window_ms: int
    count: int

    def is_expired(self, now_ms: int) -> bool:
        return now_ms - self.window_start_ms > self.window_ms


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_after_seconds: int = 0
    count: int = 0

    @classmethod
    def allow(cls, count: int) -> "RateLimitDecision":
        return cls(allowed=True, count=count)

    @classmethod
    def deny(cls, retry_after_seconds: int, count: int) -> "RateLimitDecision":
        return cls(allowed=False, retry_after_seconds=retry_after_seconds, count=count)


StoreKey = tuple[str, str]


class RateLimitStore:
    """Counting state keyed by ``(policy name, identifier)``.

    The lock only guards single-entry read-modify-write steps and never
    spans a scan, so callers with different identifiers do not wait on each
    other for more than a dict operation.
    """

    def __init__(self) -> None:
        self._windows: dict[StoreKey, RateWindow] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        return len(self._windows)

    def get(self, policy_name: str, identifier: str) -> Optional[RateWindow]:
        return self._windows.get((policy_name, identifier))

    def hit(self, policy: RateLimitPolicy, identifier: str, now_ms: int) -> RateLimitDecision:
        """Apply one request to the fixed window for ``identifier``."""
        key = (policy.name, identifier)
        with self._lock:
            window = self._windows.get(key)
            if window is None or window.is_expired(now_ms):
                self._windows[key] = RateWindow(
                    window_start_ms=now_ms, window_ms=policy.window_ms, count=1
                )
                return RateLimitDecision.allow(1)

            if window.count < policy.max_requests:
                window.count += 1
                return RateLimitDecision.allow(window.count)

            remaining_ms = window.window_start_ms + window.window_ms - now_ms
            retry_after = max(0, math.ceil(remaining_ms / 1000))
            return RateLimitDecision.deny(retry_after, window.count)

    def expired_keys(self, now_ms: int) -> list[StoreKey]:
        """Snapshot the keys whose window has run out."""
        with self._lock:
            items = list(self._windows.items())
        return [key for key, window in items if window.is_expired(now_ms)]

    def discard_if_expired(self, key: StoreKey, now_ms: int) -> bool:
        """Drop ``key`` only if it is still expired when the lock is held."""
        with self._lock:
            window = self._windows.get(key)
            if window is None or not window.is_expired(now_ms):
                return False
            del self._windows[key]
            return True

    def sweep(self, now_ms: int) -> int:
        """Synchronously remove every expired entry. Returns the number removed."""
        return sum(1 for key in self.expired_keys(now_ms) if self.discard_if_expired(key, now_ms))

    def clear(self) -> None:
        with self._lock:
            self._windows.clear()


class RateLimiter:
    """Admission control over a set of named policies."""

    def __init__(
        self,
        policies: Iterable[RateLimitPolicy],
        store: Optional[RateLimitStore] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self._policies: dict[str, RateLimitPolicy] = {}
        for policy in policies:
            if policy.name in self._policies:
                raise ValueError(f"duplicate rate limit policy {policy.name!r}")
            self._policies[policy.name] = policy
        self.store = store if store is not None else RateLimitStore()
        self.clock = clock or wall_clock_ms

    @property
    def policies(self) -> dict[str, RateLimitPolicy]:
        return dict(self._policies)

    def policy(self, name: str) -> RateLimitPolicy:
        try:
            return self._policies[name]
        except KeyError:
            raise KeyError(f"unknown rate limit policy {name!r}") from None

    def check(
        self,
        policy: RateLimitPolicy | str,
        identifier: str,
        now: Optional[int] = None,
    ) -> RateLimitDecision:
        """Decide whether a request from ``identifier`` may proceed.

        ``now`` is in milliseconds and defaults to the limiter's clock. An
        empty identifier is counted under a shared key.
        """
        if isinstance(policy, str):
            policy = self.policy(policy)
        now_ms = self.clock() if now is None else now
        return self.store.hit(policy, identifier or UNKNOWN_IDENTIFIER, now_ms)


def build_rate_limiter(
    config: Settings,
    store: Optional[RateLimitStore] = None,
    clock: Optional[Callable[[], int]] = None,
) -> RateLimiter:
    """Create a limiter with the general, auth and upload policies from settings."""
    policies = [
        RateLimitPolicy(
            name=GENERAL,
            window_ms=config.rate_limit_general_window_ms,
            max_requests=config.rate_limit_general_max,
            message=config.rate_limit_general_message,
        ),
        RateLimitPolicy(
            name=AUTH,
            window_ms=config.rate_limit_auth_window_ms,
            max_requests=config.rate_limit_auth_max,
            message=config.rate_limit_auth_message,
        ),
        RateLimitPolicy(
            name=UPLOAD,
            window_ms=config.rate_limit_upload_window_ms,
            max_requests=config.rate_limit_upload_max,
            message=config.rate_limit_upload_message,
        ),
    ]
    return RateLimiter(policies, store=store, clock=clock)


class RateLimitSweeper:
    """Recurring task that evicts expired windows from a store.

    Use as an async context manager; leaving the block cancels the task.
    """

    def __init__(
        self,
        store: RateLimitStore,
        interval_seconds: float = 300,
        clock: Optional[Callable[[], int]] = None,
        batch_size: int = 500,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.store = store
        self.interval_seconds = interval_seconds
        self.clock = clock or wall_clock_ms
        self.batch_size = batch_size
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep_once(self) -> int:
        now_ms = self.clock()
        removed = 0
        for index, key in enumerate(self.store.expired_keys(now_ms), start=1):
            if self.store.discard_if_expired(key, now_ms):
                removed += 1
            if index % self.batch_size == 0:
                await asyncio.sleep(0)
        if removed:
            logger.debug("Rate limit sweep removed %d expired windows", removed)
        return removed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.sweep_once()
            except Exception:
                logger.exception("Rate limit sweep failed")

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._run(), name="rate-limit-sweeper")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def __aenter__(self) -> "RateLimitSweeper":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()


# --- HTTP integration ---


class RateLimitExceeded(Exception):
    """A request was denied by a rate limit policy."""

    def __init__(self, policy: RateLimitPolicy, retry_after_seconds: int) -> None:
        super().__init__(policy.message)
        self.policy = policy
        self.message = policy.message
        self.retry_after_seconds = retry_after_seconds


def _hash_identifier(identifier: str) -> str:
    """Hash the identifier for logging without exposing client addresses."""
    return hashlib.sha256(identifier.encode()).hexdigest()[:16]


def _client_identifier(request: Request, missing: str) -> str:
    if request.client and request.client.host:
        return request.client.host
    if missing == "reject":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Client address unavailable",
        )
    return UNKNOWN_IDENTIFIER


def rate_limit(policy_name: str):
    """Build a FastAPI dependency enforcing the named policy.

    Unknown policy names raise ``KeyError`` here, when routes are declared,
    rather than on a request.
    """
    if policy_name not in POLICY_NAMES:
        raise KeyError(f"unknown rate limit policy {policy_name!r}")

    async def enforce_rate_limit(request: Request) -> None:
        limiter: RateLimiter = request.app.state.rate_limiter
        policy = limiter.policy(policy_name)
        identifier = _client_identifier(request, settings.rate_limit_missing_identifier)

        decision = limiter.check(policy, identifier)
        if decision.allowed:
            return

        logger.warning(
            "Rate limit exceeded: policy=%s client=%s retry_after=%ds",
            policy.name,
            _hash_identifier(identifier),
            decision.retry_after_seconds,
        )
        raise RateLimitExceeded(policy, decision.retry_after_seconds)

    enforce_rate_limit.__name__ = f"enforce_{policy_name}_rate_limit"
    return enforce_rate_limit
