"""
Shared HTTP clients for the agent's external HTTP services.

Each service (DataForSEO, the Slack webhook) gets its own HttpClientManager:
one pooled httpx.AsyncClient, one circuit breaker, and exponential-backoff
retries for 5xx responses and transport errors.

Circuit Breaker States:
- CLOSED: Normal operation, requests flow through
- OPEN: Too many failures, requests fail immediately
- HALF_OPEN: After cooldown, allow a probe request through

Usage:
    manager = HttpClientManager('dataforseo', base_url=..., auth=(login, password))
    resp = await manager.request('POST', '/serp/google/organic/live/advanced', json=[body])
    await manager.stop()
"""

import asyncio
import logging
import os
import random
import time
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import httpx

from .errors import CircuitBreakerOpenError

logger = logging.getLogger(__name__)

# -------------------------------------------------------------------
# Configuration
# -------------------------------------------------------------------

MAX_CONNECTIONS = int(os.environ.get('HTTP_MAX_CONNECTIONS', '20'))
MAX_KEEPALIVE = int(os.environ.get('HTTP_MAX_KEEPALIVE', '10'))
REQUEST_TIMEOUT = float(os.environ.get('HTTP_TIMEOUT_SECONDS', '60'))

CB_FAILURE_THRESHOLD = int(os.environ.get('CB_FAILURE_THRESHOLD', '5'))
CB_RECOVERY_TIMEOUT = int(os.environ.get('CB_RECOVERY_TIMEOUT_SECONDS', '60'))
CB_HALF_OPEN_MAX = int(os.environ.get('CB_HALF_OPEN_MAX_REQUESTS', '1'))

RETRY_MAX_ATTEMPTS = int(os.environ.get('HTTP_RETRY_MAX_ATTEMPTS', '2'))
RETRY_BASE_DELAY = float(os.environ.get('HTTP_RETRY_BASE_DELAY_SECONDS', '1.0'))
RETRY_MAX_DELAY = float(os.environ.get('HTTP_RETRY_MAX_DELAY_SECONDS', '30.0'))
RETRY_BACKOFF_FACTOR = float(os.environ.get('HTTP_RETRY_BACKOFF_FACTOR', '2.0'))


# -------------------------------------------------------------------
# Circuit Breaker
# -------------------------------------------------------------------

class CircuitState(Enum):
    CLOSED = 'closed'
    OPEN = 'open'
    HALF_OPEN = 'half_open'


class CircuitBreaker:
    """Fails fast while a service is unhealthy, then probes for recovery."""

    def __init__(
        self,
        name: str,
        failure_threshold: int = CB_FAILURE_THRESHOLD,
        recovery_timeout: float = CB_RECOVERY_TIMEOUT,
        half_open_max: int = CB_HALF_OPEN_MAX,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.half_open_max = half_open_max

        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._opened_at: float = 0
        self._probes = 0
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        if (
            self._state == CircuitState.OPEN
            and time.monotonic() - self._opened_at >= self.recovery_timeout
        ):
            return CircuitState.HALF_OPEN
        return self._state

    async def allow_request(self) -> bool:
        async with self._lock:
            current = self.state
            if current == CircuitState.CLOSED:
                return True
            if current == CircuitState.HALF_OPEN and self._probes < self.half_open_max:
                self._probes += 1
                return True
            return False

    async def record_success(self) -> None:
        async with self._lock:
            if self.state == CircuitState.HALF_OPEN:
                logger.info('Circuit breaker [%s]: CLOSED (recovered)', self.name)
            self._state = CircuitState.CLOSED
            self._failures = 0
            self._probes = 0
            self._successes += 1

    async def record_failure(self) -> None:
        async with self._lock:
            self._failures += 1
            probing = self.state == CircuitState.HALF_OPEN
            if probing or self._failures >= self.failure_threshold:
                self._state = CircuitState.OPEN
                self._opened_at = time.monotonic()
                self._probes = 0
                logger.warning(
                    'Circuit breaker [%s]: OPEN after %d failure(s), retry in %ds',
                    self.name, self._failures, self.recovery_timeout,
                )

    def get_health(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'state': self.state.value,
            'failure_count': self._failures,
            'success_count': self._successes,
            'failure_threshold': self.failure_threshold,
            'recovery_timeout_seconds': self.recovery_timeout,
        }


# -------------------------------------------------------------------
# Client Manager
# -------------------------------------------------------------------

class HttpClientManager:
    """A lazily started httpx.AsyncClient plus circuit breaker for one service."""

    def __init__(
        self,
        name: str,
        base_url: str = '',
        *,
        headers: Optional[Dict[str, str]] = None,
        auth: Optional[Tuple[str, str]] = None,
        timeout: float = REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        circuit: Optional[CircuitBreaker] = None,
    ):
        self.name = name
        self.base_url = base_url
        self.headers = {'Content-Type': 'application/json', **(headers or {})}
        self.auth = auth
        self.timeout = timeout
        self._transport = transport
        self._circuit = circuit or CircuitBreaker(name)
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def started(self) -> bool:
        return self._client is not None

    @property
    def circuit(self) -> CircuitBreaker:
        return self._circuit

    async def start(self) -> None:
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            auth=self.auth,
            limits=httpx.Limits(
                max_connections=MAX_CONNECTIONS,
                max_keepalive_connections=MAX_KEEPALIVE,
            ),
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            transport=self._transport,
        )
        logger.info('HTTP client [%s] started (base_url=%s)', self.name, self.base_url or '-')

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info('HTTP client [%s] stopped', self.name)

    async def request(
        self,
        method: str,
        url: str,
        *,
        json: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
        retries: int = RETRY_MAX_ATTEMPTS,
    ) -> httpx.Response:
        """
        Make an HTTP request with circuit breaker and exponential backoff.

        Client errors (4xx) are returned, not retried; callers decide what
        a non-2xx status means for them.

        Raises:
            CircuitBreakerOpenError: Circuit breaker is open
            httpx.RequestError: After all retries exhausted
        """
        if not await self._circuit.allow_request():
            raise CircuitBreakerOpenError(
                f'Circuit breaker [{self.name}] is open '
                f'(state={self._circuit.state.value})'
            )
        await self.start()
        assert self._client is not None

        last_error: Optional[Exception] = None
        for attempt in range(retries + 1):
            try:
                resp = await self._client.request(method, url, json=json, params=params)
            except httpx.RequestError as e:
                last_error = e
                await self._circuit.record_failure()
                logger.warning(
                    'HTTP [%s] %s %s: %s (attempt %d/%d)',
                    self.name, method, url, type(e).__name__, attempt + 1, retries + 1,
                )
            else:
                if resp.status_code < 500:
                    await self._circuit.record_success()
                    return resp
                await self._circuit.record_failure()
                if attempt == retries:
                    return resp
                logger.warning(
                    'HTTP [%s] %s %s: %d (attempt %d/%d, retrying)',
                    self.name, method, url, resp.status_code, attempt + 1, retries + 1,
                )
            if attempt < retries:
                await self._backoff_sleep(attempt + 1)

        logger.error(
            'HTTP [%s] %s %s: all %d attempts failed: %s',
            self.name, method, url, retries + 1, last_error,
        )
        raise last_error  # type: ignore[misc]

    async def _backoff_sleep(self, attempt: int) -> None:
        """Exponential backoff with jitter."""
        delay = min(
            RETRY_BASE_DELAY * (RETRY_BACKOFF_FACTOR ** (attempt - 1)),
            RETRY_MAX_DELAY,
        )
        await asyncio.sleep(delay + delay * 0.2 * random.random())

    def get_health(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'started': self.started,
            'base_url': self.base_url or None,
            'circuit_breaker': self._circuit.get_health(),
        }
