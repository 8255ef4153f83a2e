"""
================================================================================
Root Pytest Configuration
================================================================================

This module provides the root pytest configuration for the entire test suite.
It sets up framework logging, registers common markers and tags tests by
the directory they live in.

================================================================================
"""

import pytest

from testsuites.api_testing.framework.structured_logger import setup_framework_logging


def pytest_configure(config):
    """Configure framework logging and project-wide custom markers."""
    setup_framework_logging()

    # Priority markers
    config.addinivalue_line(
        "markers", "P0: Critical priority tests - must pass for deployment"
    )
    config.addinivalue_line(
        "markers", "P1: High priority tests - important functionality"
    )
    config.addinivalue_line(
        "markers", "P2: Medium priority tests - edge cases and minor features"
    )
    config.addinivalue_line(
        "markers", "P3: Low priority tests - extensive validation"
    )

    # Test type markers
    config.addinivalue_line(
        "markers", "smoke: Quick verification tests"
    )
    config.addinivalue_line(
        "markers", "regression: Full regression test suite"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests simulating user flows"
    )
    config.addinivalue_line(
        "markers", "unit: Framework unit tests (no API target needed)"
    )

    # Domain markers
    config.addinivalue_line(
        "markers", "api: API-specific tests"
    )
    config.addinivalue_line(
        "markers", "health: Tests related to service health checks"
    )
    config.addinivalue_line(
        "markers", "auth: Tests related to authentication and registration"
    )
    config.addinivalue_line(
        "markers", "users: Tests related to user management"
    )

    # Dependency markers
    config.addinivalue_line(
        "markers", "requires_external: Tests calling third-party services (live target only)"
    )


def pytest_collection_modifyitems(config, items):
    """
    Modify collected test items.

    Adds markers from the directory layout so suites can be selected by tag.
    """
    for item in items:
        # Auto-add 'api' marker to tests in api_testing directory
        if "api_testing" in item.path.parts:
            item.add_marker(pytest.mark.api)

        # Auto-add 'unit' marker to framework unit tests
        if item.path.parent.name == "unit":
            item.add_marker(pytest.mark.unit)


def pytest_report_header(config):
    """Add custom header to pytest output."""
    return [
        "",
        "=" * 60,
        "REST API Automation Test Suite",
        "=" * 60,
        "",
    ]
