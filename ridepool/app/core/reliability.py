"""
Reliability Utilities.

Circuit Breaker guarding calls to the geocoding/routing collaborator.
The breaker never retries; it only short-circuits while the collaborator
is known to be failing.
"""

import time
import logging
from typing import Callable, Any

from ridepool.app.core.config import settings

logger = logging.getLogger(__name__)


class CircuitOpenError(Exception):
    pass


class CircuitBreaker:
    """
    Simple Circuit Breaker implementation.
    If 'failure_threshold' consecutive failures occur, the circuit opens
    and rejects calls for 'reset_timeout' seconds.
    """
    def __init__(self, name: str = "default", failure_threshold: int = 5, reset_timeout: int = 60):
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.failures = 0
        self.last_failure_time = 0
        self.state = "CLOSED" # CLOSED, OPEN, HALF_OPEN

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        if self.state == "OPEN":
            if time.time() - self.last_failure_time > self.reset_timeout:
                self.state = "HALF_OPEN"
            else:
                raise CircuitOpenError(f"Circuit '{self.name}' is OPEN")

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise

        if self.state != "CLOSED" or self.failures:
            self.reset_state()
        return result

    def record_failure(self):
        self.failures += 1
        self.last_failure_time = time.time()
        if self.failures >= self.failure_threshold and self.state != "OPEN":
            self.state = "OPEN"
            logger.warning("Circuit opened", extra={"circuit": self.name, "failures": self.failures})

    def reset_state(self):
        self.failures = 0
        self.state = "CLOSED"


# Global instance for geocoding/routing calls
geo_circuit_breaker = CircuitBreaker(
    name="geo",
    failure_threshold=settings.geo_circuit_failure_threshold,
    reset_timeout=settings.geo_circuit_reset_seconds,
)
