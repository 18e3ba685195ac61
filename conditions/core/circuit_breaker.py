"""
Circuit breakers for outbound calls

Guards calls to the chat platforms and the geocoding API so that an outage
fails fast instead of stalling every recipient of a fan-out batch.

closed --(failure_threshold failures)--> open --(timeout)--> half_open
half_open --(success_threshold successes)--> closed, any failure --> open

A 4xx answer other than 429 is about one request (a blocked chat, a bad
recipient), not about the service, so it passes through without counting.
"""
import inspect
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from conditions.core.exceptions import CircuitBreakerOpenError, ExternalServiceException
from conditions.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    failure_threshold: int = 5
    success_threshold: int = 2
    timeout_seconds: float = 30.0
    # trial calls admitted after the one that moved the breaker to half_open
    half_open_max_calls: int = 3


@dataclass
class BreakerStats:
    failure_count: int = 0
    success_count: int = 0
    opened_at: float = 0.0
    trial_calls: int = 0


class CircuitBreaker:
    """
    One instance per service name, shared by the web process and by each
    worker task. The lock is a threading lock since Celery tasks each run
    their own event loop.
    """

    _instances: dict[str, "CircuitBreaker"] = {}
    _instances_lock = threading.Lock()

    def __init__(self, service_name: str, config: CircuitBreakerConfig | None = None):
        self.service_name = service_name
        self.config = config or CircuitBreakerConfig()
        self._circuit = CircuitState.CLOSED
        self._state = BreakerStats()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # registry

    @classmethod
    def get_instance(cls, service_name: str, config: CircuitBreakerConfig | None = None) -> "CircuitBreaker":
        with cls._instances_lock:
            breaker = cls._instances.get(service_name)
            if breaker is None:
                breaker = cls._instances[service_name] = cls(service_name, config)
            return breaker

    @classmethod
    def reset_all(cls) -> None:
        """Forget every breaker (tests)"""
        with cls._instances_lock:
            cls._instances.clear()

    @classmethod
    def snapshot_all(cls) -> dict[str, dict[str, Any]]:
        """State of every known breaker, for the health endpoint"""
        with cls._instances_lock:
            breakers = sorted(cls._instances.values(), key=lambda b: b.service_name)
        return {b.service_name: b.snapshot() for b in breakers}

    def snapshot(self) -> dict[str, Any]:
        return {
            "state": self._circuit.value,
            "failure_count": self._state.failure_count,
            "retry_after_seconds": round(self.get_retry_after(), 1),
        }

    # ------------------------------------------------------------------
    # state

    @property
    def state(self) -> CircuitState:
        return self._circuit

    @property
    def is_closed(self) -> bool:
        return self._circuit is CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        return self._circuit is CircuitState.OPEN

    @property
    def is_half_open(self) -> bool:
        return self._circuit is CircuitState.HALF_OPEN

    def get_retry_after(self) -> float:
        """Seconds until the breaker lets a trial call through"""
        if self._circuit is not CircuitState.OPEN:
            return 0.0
        elapsed = time.monotonic() - self._state.opened_at
        return max(0.0, self.config.timeout_seconds - elapsed)

    def _move(self, target: CircuitState) -> None:
        """Caller holds self._lock"""
        previous, self._circuit = self._circuit, target
        if target is CircuitState.OPEN:
            self._state.opened_at = time.monotonic()
        elif target is CircuitState.HALF_OPEN:
            self._state.success_count = 0
            self._state.trial_calls = 0
        else:
            self._state = BreakerStats()

        logger.info(
            f"Circuit breaker '{self.service_name}': {previous.value} -> {target.value}",
            extra_data={"service": self.service_name, "old_state": previous.value, "new_state": target.value}
        )

    async def can_execute(self) -> bool:
        with self._lock:
            if self._circuit is CircuitState.CLOSED:
                return True
            if self._circuit is CircuitState.OPEN:
                if self.get_retry_after() > 0:
                    return False
                self._move(CircuitState.HALF_OPEN)
                return True
            if self._state.trial_calls >= self.config.half_open_max_calls:
                return False
            self._state.trial_calls += 1
            return True

    async def record_success(self) -> None:
        with self._lock:
            if self._circuit is CircuitState.CLOSED:
                self._state.failure_count = 0
                return
            if self._circuit is CircuitState.HALF_OPEN:
                self._state.success_count += 1
                if self._state.success_count >= self.config.success_threshold:
                    self._move(CircuitState.CLOSED)

    async def record_failure(self, error: Exception | None = None) -> None:
        with self._lock:
            self._state.failure_count += 1
            logger.warning(
                f"Circuit breaker '{self.service_name}' recorded failure",
                extra_data={
                    "service": self.service_name,
                    "failure_count": self._state.failure_count,
                    "threshold": self.config.failure_threshold,
                    "error": str(error) if error else None,
                }
            )
            tripped = (
                self._circuit is CircuitState.HALF_OPEN
                or self._state.failure_count >= self.config.failure_threshold
            )
            if tripped:
                self._move(CircuitState.OPEN)

    async def execute(self, func: Callable[..., T | Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """
        Call func (sync or async) through the breaker.

        Client errors (see is_client_error) are re-raised but count as an
        answer from the service, not as a failure.

        Raises:
            CircuitBreakerOpenError: the breaker refuses the call
        """
        if not await self.can_execute():
            raise CircuitBreakerOpenError(self.service_name, self.get_retry_after())

        try:
            result = func(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            if is_client_error(e):
                await self.record_success()
            else:
                await self.record_failure(e)
            raise

        await self.record_success()
        return result


def response_status(error: BaseException) -> int | None:
    """HTTP status behind an error: ours keep it in details, pywa's on the error"""
    if isinstance(error, ExternalServiceException):
        return error.details.get("status_code")
    status = getattr(error, "status_code", None)
    return status if isinstance(status, int) else None


def is_client_error(error: BaseException) -> bool:
    """4xx other than 429 (rate limit)"""
    status = response_status(error)
    return status is not None and 400 <= status < 500 and status != 429


def get_telegram_circuit_breaker() -> CircuitBreaker:
    """Breaker for Telegram Bot API deliveries"""
    return CircuitBreaker.get_instance(
        "telegram",
        CircuitBreakerConfig(failure_threshold=5, success_threshold=2, timeout_seconds=30.0)
    )


def get_admin_alert_circuit_breaker() -> CircuitBreaker:
    """Breaker for operator alerts, separate from delivery traffic"""
    return CircuitBreaker.get_instance(
        "telegram_admin",
        CircuitBreakerConfig(failure_threshold=3, success_threshold=1, timeout_seconds=60.0)
    )


def get_whatsapp_circuit_breaker() -> CircuitBreaker:
    """Breaker for the WhatsApp Cloud API"""
    return CircuitBreaker.get_instance(
        "whatsapp",
        CircuitBreakerConfig(failure_threshold=5, success_threshold=2, timeout_seconds=30.0)
    )


def get_geocoding_circuit_breaker() -> CircuitBreaker:
    """Breaker for the Google geocoding API (paid, so open early)"""
    return CircuitBreaker.get_instance(
        "geocoding",
        CircuitBreakerConfig(failure_threshold=3, success_threshold=1, timeout_seconds=60.0)
    )
