# ================================================================================
# Wait Helpers Module
# ================================================================================
#
# Polling with exponential backoff for API tests.
#
# Key Features:
#   - Exponential backoff with jitter
#   - Timeouts taken from the suite configuration (milliseconds)
#   - API readiness check against the health endpoint
#   - Allure integration for step reporting
#
# Usage:
#   wait_until_api_ready(client, timeout_ms=settings.test_timeout)
#   result = wait_with_backoff(check_fn, description="user deleted")
#
# ================================================================================

import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple, TypeVar

import allure
from loguru import logger


T = TypeVar('T')


@dataclass
class WaitConfig:
    """
    Configuration for wait operations.

    Attributes:
        initial_interval: Initial wait interval in seconds
        multiplier: Multiplier for exponential backoff
        max_interval: Maximum interval between attempts
        timeout: Total timeout in seconds
        jitter: Add random jitter to prevent thundering herd
    """
    initial_interval: float = 0.2
    multiplier: float = 2.0
    max_interval: float = 2.0
    timeout: float = 10.0
    jitter: bool = True

    @classmethod
    def from_timeout_ms(cls, timeout_ms: int, **kwargs: Any) -> "WaitConfig":
        return cls(timeout=timeout_ms / 1000, **kwargs)


class WaitTimeoutError(Exception):
    """Raised when a wait operation times out."""
    pass


def calculate_next_interval(current_interval: float, config: WaitConfig) -> float:
    """Next interval with exponential backoff and +/- 25% jitter."""
    next_interval = min(current_interval * config.multiplier, config.max_interval)
    if config.jitter:
        next_interval = next_interval * (0.75 + random.random() * 0.5)
    return next_interval


@allure.step("Waiting with backoff: {description}")
def wait_with_backoff(
    check_fn: Callable[[], Tuple[bool, T]],
    description: str = "Waiting for condition",
    config: Optional[WaitConfig] = None,
) -> T:
    """
    Wait for a condition with exponential backoff.

    Args:
        check_fn: Function that returns (success: bool, result: T)
        description: Human-readable description for logging
        config: Wait configuration (defaults to WaitConfig())

    Returns:
        Result from check_fn when successful

    Raises:
        WaitTimeoutError: If timeout is reached without success

    Example:
        def user_gone():
            response = client.get(f"/users/{user_id}")
            return response.status == 404, response.status

        wait_with_backoff(user_gone, description="user deleted")
    """
    config = config or WaitConfig()

    start_time = time.monotonic()
    current_interval = config.initial_interval
    attempt = 0
    last_result = None
    last_error = None

    logger.debug(f"Starting wait: {description} (timeout={config.timeout}s)")

    while True:
        attempt += 1

        try:
            success, result = check_fn()
            last_result = result
            if success:
                logger.debug(f"Wait successful after {attempt} attempts: {description}")
                return result
        except Exception as e:
            last_error = f"{type(e).__name__}: {e}"
            logger.debug(f"Attempt {attempt} failed with error: {last_error}")

        elapsed = time.monotonic() - start_time
        if elapsed + current_interval > config.timeout:
            error_msg = (
                f"Timeout after {elapsed:.1f}s waiting for: {description}. "
                f"Last result: {last_result}, Last error: {last_error}"
            )
            logger.error(error_msg)
            raise WaitTimeoutError(error_msg)

        time.sleep(current_interval)
        current_interval = calculate_next_interval(current_interval, config)


def wait_until_api_ready(client: Any, timeout_ms: int, endpoint: str = "/health") -> Any:
    """
    Poll the health endpoint until it answers 200.

    Args:
        client: ApiClient bound to the service base URL
        timeout_ms: Total time budget in milliseconds
        endpoint: Health endpoint path

    Returns:
        The successful ApiResponse
    """
    def check():
        response = client.get(endpoint)
        return response.status == 200, response

    return wait_with_backoff(
        check,
        description=f"API ready at {client.build_url(endpoint)}",
        config=WaitConfig.from_timeout_ms(timeout_ms),
    )


__all__ = [
    "WaitConfig",
    "WaitTimeoutError",
    "calculate_next_interval",
    "wait_until_api_ready",
    "wait_with_backoff",
]
