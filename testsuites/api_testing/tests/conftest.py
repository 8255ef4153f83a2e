"""
================================================================================
API Testing Pytest Configuration
================================================================================

Shared fixtures and configuration for API automation tests.

Fixtures:
    - settings: Validated, immutable run configuration
    - api_logger: Structured logger for the session
    - stub_api / transport: In-memory API when API_TARGET=stub
    - make_client: Factory for ApiClient instances bound to a base URL
    - auth_client / users_client / health_client: Ready-made clients
    - user_token / admin_token: Bearer tokens for the seeded accounts
    - factory / unique_email: Test data

Author: Automation Team
License: MIT
================================================================================
"""

from __future__ import annotations

import time
import uuid
from typing import Any, Callable, Dict, Generator, List, Optional

import allure
import httpx
import pytest
from loguru import logger

from ..framework import (
    ApiClient,
    DataFactory,
    Settings,
    StructuredLogger,
    StubApi,
    environment_flags,
    load_settings,
    validate_environment,
    wait_until_api_ready,
)


LIVE_TARGET = "live"


# =============================================================================
# Session-Scoped Fixtures (Shared across all tests)
# =============================================================================

@pytest.fixture(scope="session")
def settings() -> Settings:
    """
    Provide the validated run configuration.

    Session-scoped to ensure configuration is loaded only once.
    """
    validate_environment()
    return load_settings()


@pytest.fixture(scope="session")
def api_logger(settings: Settings) -> Generator[StructuredLogger, None, None]:
    """Structured logger shared by every client in the session."""
    structured = StructuredLogger.from_settings(settings)
    yield structured
    structured.close()


@pytest.fixture(scope="session")
def stub_api(settings: Settings) -> Optional[StubApi]:
    """In-memory API, or None when running against a live deployment."""
    if settings.api_target == LIVE_TARGET:
        return None
    return StubApi(settings)


@pytest.fixture(scope="session")
def transport(stub_api: Optional[StubApi]) -> Optional[httpx.BaseTransport]:
    """httpx transport for API clients (None means real network)."""
    return stub_api.transport() if stub_api is not None else None


@pytest.fixture(scope="session", autouse=True)
def _api_session(
    settings: Settings,
    api_logger: StructuredLogger,
    transport: Optional[httpx.BaseTransport],
) -> Generator[None, None, None]:
    """
    Session setup and teardown.

    Logs the run configuration and, for a live target, waits until the
    health endpoint answers before any test starts.
    """
    api_logger.info("Starting API test session", {
        "baseUrl": settings.base_url,
        "apiBaseUrl": settings.api_base_url,
        "target": settings.api_target,
        **environment_flags(settings),
    })

    if settings.api_target == LIVE_TARGET:
        with ApiClient(
            settings.base_url, settings=settings, logger=api_logger, transport=transport
        ) as client:
            wait_until_api_ready(client, timeout_ms=settings.test_timeout)
        api_logger.info("API is ready")

    yield

    api_logger.info("API test session finished")


# =============================================================================
# Function-Scoped Fixtures (Fresh for each test)
# =============================================================================

@pytest.fixture(autouse=True)
def _skip_external_unless_live(request, settings: Settings) -> None:
    """Third-party services are only called when running against a live target."""
    if request.node.get_closest_marker("requires_external") and settings.api_target != LIVE_TARGET:
        pytest.skip("requires_external: set API_TARGET=live to call third-party APIs")


@pytest.fixture(autouse=True)
def _log_test_lifecycle(request, api_logger: StructuredLogger) -> Generator[None, None, None]:
    """Log start, outcome and duration of every API test."""
    name = request.node.nodeid
    api_logger.log_test(name, "started")
    start = time.monotonic()

    yield

    report = getattr(request.node, "rep_call", None)
    if report is None:
        return
    duration_ms = (time.monotonic() - start) * 1000
    status = "failed" if report.failed else "skipped" if report.skipped else "passed"
    api_logger.log_test(name, status, duration_ms)


@pytest.fixture
def make_client(
    settings: Settings,
    api_logger: StructuredLogger,
    transport: Optional[httpx.BaseTransport],
) -> Generator[Callable[..., ApiClient], None, None]:
    """
    Factory for ApiClient instances; every client is closed after the test.

    Usage:
        def test_example(make_client, settings):
            client = make_client(settings.auth_base_url)
            response = client.post("/login", {...})

    Args (of the returned callable):
        base_url: Base URL for the client
        external: True for third-party hosts (never routed to the stub)
    """
    clients: List[ApiClient] = []

    def _make(base_url: str, external: bool = False) -> ApiClient:
        client = ApiClient(
            base_url,
            settings=settings,
            logger=api_logger,
            transport=None if external else transport,
        )
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.close()


@pytest.fixture
def health_client(make_client, settings: Settings) -> ApiClient:
    return make_client(settings.base_url)


@pytest.fixture
def auth_client(make_client, settings: Settings) -> ApiClient:
    return make_client(settings.auth_base_url)


@pytest.fixture
def users_client(make_client, settings: Settings) -> ApiClient:
    return make_client(settings.users_base_url)


def _login(client: ApiClient, email: str, password: str) -> str:
    response = client.post("/login", {"email": email, "password": password})
    assert response.status == 200, (
        f"Login failed for {email}: {response.status} {response.data}"
    )
    return response.data["token"]


@pytest.fixture
def user_token(make_client, settings: Settings) -> str:
    """Bearer token of the configured regular test user."""
    client = make_client(settings.auth_base_url)
    return _login(client, settings.test_user_email, settings.test_user_password)


@pytest.fixture
def admin_token(make_client, settings: Settings) -> str:
    """Bearer token of the configured admin user."""
    client = make_client(settings.auth_base_url)
    return _login(client, settings.admin_user_email, settings.admin_user_password)


@pytest.fixture
def admin_users_client(users_client: ApiClient, admin_token: str) -> ApiClient:
    """Users API client authenticated as admin."""
    users_client.set_auth_token(admin_token)
    return users_client


@pytest.fixture
def factory() -> DataFactory:
    """Fresh data factory (own random generator) per test."""
    return DataFactory()


@pytest.fixture
def unique_email() -> str:
    """
    Generate a unique email for test isolation.

    Use this to create users that won't conflict with other tests running
    in parallel.
    """
    return f"autotest_{uuid.uuid4().hex[:8]}@test.example.com"


# =============================================================================
# Cleanup Fixtures
# =============================================================================

@pytest.fixture
def cleanup_users(make_client, settings: Settings, admin_token: str):
    """
    Fixture to track and cleanup created users after test.

    Usage:
        def test_create_user(admin_users_client, cleanup_users):
            response = admin_users_client.post("/users", user_data)
            cleanup_users.append(response.data["user"]["id"])
    """
    created_user_ids: List[str] = []
    yield created_user_ids

    client = make_client(settings.users_base_url)
    client.set_auth_token(admin_token)
    for user_id in created_user_ids:
        try:
            client.delete(f"/users/{user_id}")
            logger.debug(f"Cleaned up user: {user_id}")
        except httpx.HTTPError as e:
            logger.warning(f"Failed to cleanup user {user_id}: {e}")


@pytest.fixture
def created_user(admin_users_client: ApiClient, factory: DataFactory, cleanup_users) -> Dict[str, Any]:
    """A user created through the API by the admin, removed after the test."""
    response = admin_users_client.post("/users", factory.user.create_minimal())
    assert response.status == 201, f"Setup failed: {response.status} {response.data}"
    user = response.data["user"]
    cleanup_users.append(user["id"])
    return user


# =============================================================================
# Reporting Hooks
# =============================================================================

@pytest.hookimpl(tryfirst=True, hookwrapper=True)
def pytest_runtest_makereport(item, call):
    """Keep each phase's report on the item for lifecycle logging."""
    outcome = yield
    report = outcome.get_result()
    setattr(item, f"rep_{report.when}", report)


def pytest_exception_interact(node, call, report):
    """Attach additional info on test failure."""
    if report.failed:
        # Add failure context
        allure.attach(
            str(call.excinfo.value),
            name="Error Details",
            attachment_type=allure.attachment_type.TEXT
        )
