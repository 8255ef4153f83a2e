import pytest

from testsuites.api_testing.framework.http_client import ApiResponse
from testsuites.api_testing.framework.wait_helpers import (
    WaitConfig,
    WaitTimeoutError,
    calculate_next_interval,
    wait_until_api_ready,
    wait_with_backoff,
)


FAST = WaitConfig(initial_interval=0.001, max_interval=0.002, timeout=0.5, jitter=False)


def test_returns_result_once_condition_holds():
    attempts = []

    def check():
        attempts.append(1)
        return len(attempts) >= 3, len(attempts)

    assert wait_with_backoff(check, "third attempt", FAST) == 3


def test_exceptions_are_retried():
    attempts = []

    def check():
        attempts.append(1)
        if len(attempts) < 2:
            raise ConnectionError("not yet")
        return True, "ready"

    assert wait_with_backoff(check, "recovers", FAST) == "ready"


def test_timeout_raises_with_last_result():
    config = WaitConfig(initial_interval=0.01, max_interval=0.01, timeout=0.05, jitter=False)

    with pytest.raises(WaitTimeoutError, match="never"):
        wait_with_backoff(lambda: (False, "pending"), "never", config)


def test_next_interval_is_capped():
    config = WaitConfig(multiplier=2.0, max_interval=1.0, jitter=False)

    assert calculate_next_interval(0.2, config) == 0.4
    assert calculate_next_interval(0.8, config) == 1.0


def test_jitter_stays_within_quarter():
    config = WaitConfig(multiplier=2.0, max_interval=10.0, jitter=True)

    for _ in range(50):
        assert 1.5 <= calculate_next_interval(1.0, config) <= 2.5


def test_from_timeout_ms():
    assert WaitConfig.from_timeout_ms(2500).timeout == 2.5


class FlakyHealthClient:
    def __init__(self, failures):
        self.failures = failures
        self.calls = 0

    def build_url(self, endpoint):
        return f"http://stub.test{endpoint}"

    def get(self, endpoint):
        self.calls += 1
        status = 503 if self.calls <= self.failures else 200
        return ApiResponse(status=status, data={"status": "ok"}, url=self.build_url(endpoint))


def test_wait_until_api_ready_polls_health(monkeypatch):
    monkeypatch.setattr(WaitConfig, "from_timeout_ms", classmethod(lambda cls, ms: FAST))
    client = FlakyHealthClient(failures=2)

    response = wait_until_api_ready(client, timeout_ms=500)

    assert response.status == 200
    assert client.calls == 3
