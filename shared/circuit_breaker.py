"""
Circuit Breaker Pattern Implementation.

This module provides circuit breaker protection for external service calls
to prevent cascade failures when services are down or degraded.

Circuit breaker states:
- CLOSED: Normal operation, requests pass through
- OPEN: Service is down, requests fail fast without calling the service
- HALF_OPEN: Testing if service recovered, limited requests allowed

Usage:
    from shared.circuit_breaker import get_circuit_breaker, call_in_thread
    import pybreaker

    breaker = get_circuit_breaker("payment_gateway")
    try:
        result = await call_in_thread(breaker, blocking_sdk_call, *args)
    except pybreaker.CircuitBreakerError:
        # Circuit is OPEN - provider is down, fail fast
        ...

Configuration:
    - fail_max: Number of consecutive failures before opening circuit
    - reset_timeout: Seconds to wait before trying again (half-open state)
"""

import asyncio
import logging
from typing import Any, Callable

import pybreaker

logger = logging.getLogger(__name__)


class CircuitBreakerLogger(pybreaker.CircuitBreakerListener):
    """
    Log circuit breaker state changes and failures.

    This listener provides visibility into circuit breaker behavior
    for debugging and monitoring purposes.
    """

    def state_change(self, cb: pybreaker.CircuitBreaker, old_state, new_state) -> None:
        """Log state transitions."""
        if new_state.name == "open":
            logger.warning(
                f"Circuit breaker '{cb.name}' OPENED - "
                f"service appears down, failing fast for {cb.reset_timeout}s"
            )
        elif new_state.name == "half-open":
            logger.info(
                f"Circuit breaker '{cb.name}' HALF-OPEN - "
                f"testing if service recovered"
            )
        elif new_state.name == "closed":
            logger.info(
                f"Circuit breaker '{cb.name}' CLOSED - "
                f"service recovered, resuming normal operation"
            )
        else:
            old_name = old_state.name if old_state else None
            logger.info(
                f"Circuit breaker '{cb.name}' state: {old_name} -> {new_state.name}"
            )

    def failure(self, cb: pybreaker.CircuitBreaker, exc: Exception) -> None:
        """Log failures that count toward opening the circuit."""
        logger.warning(
            f"Circuit breaker '{cb.name}' recorded failure: {type(exc).__name__}: {exc}"
        )

    def success(self, cb: pybreaker.CircuitBreaker) -> None:
        """Log successful calls (only in half-open state for debugging)."""
        if cb.current_state == pybreaker.STATE_HALF_OPEN:
            logger.info(f"Circuit breaker '{cb.name}' success in half-open state")


# Singleton registry of circuit breakers
_breakers: dict[str, pybreaker.CircuitBreaker] = {}
_logger_instance = CircuitBreakerLogger()


def get_circuit_breaker(
    name: str,
    fail_max: int = 5,
    reset_timeout: int = 30,
    exclude: list[type] | None = None,
) -> pybreaker.CircuitBreaker:
    """
    Get or create a circuit breaker for a service.

    Args:
        name: Unique identifier for the circuit breaker
        fail_max: Number of consecutive failures before opening circuit
        reset_timeout: Seconds before attempting recovery (half-open)
        exclude: Exception types that should NOT count as failures

    Returns:
        CircuitBreaker instance (singleton per name)
    """
    if name not in _breakers:
        _breakers[name] = pybreaker.CircuitBreaker(
            name=name,
            fail_max=fail_max,
            reset_timeout=reset_timeout,
            exclude=exclude or [],
            listeners=[_logger_instance],
        )
        logger.info(
            f"Created circuit breaker '{name}' | "
            f"fail_max={fail_max} | reset_timeout={reset_timeout}s"
        )
    return _breakers[name]


async def call_in_thread(
    breaker: pybreaker.CircuitBreaker,
    func: Callable[..., Any],
    *args,
    **kwargs,
) -> Any:
    """
    Run a blocking SDK call in a worker thread under circuit breaker protection.

    pybreaker's call_async() requires Tornado which we don't use. Provider SDKs
    (Stripe) are synchronous, so the call runs through the breaker's regular
    thread-safe ``call()`` inside ``asyncio.to_thread``. Failure counting,
    opening, half-open probing and excluded exceptions are all handled by
    pybreaker itself.

    Args:
        breaker: CircuitBreaker instance to use
        func: Blocking function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result from func

    Raises:
        pybreaker.CircuitBreakerError: If circuit is open
        Exception: Any exception raised by func
    """
    return await asyncio.to_thread(breaker.call, func, *args, **kwargs)


def get_breaker_status() -> dict[str, dict[str, Any]]:
    """
    Get status of all circuit breakers for monitoring/health checks.

    Returns:
        Dict of {name: {state, fail_counter, reset_timeout}}
    """
    return {
        name: {
            "state": breaker.current_state,
            "fail_counter": breaker.fail_counter,
            "reset_timeout": breaker.reset_timeout,
        }
        for name, breaker in _breakers.items()
    }
