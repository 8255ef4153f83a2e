"""
================================================================================
API Testing Framework
================================================================================

Building blocks for the REST API test suite.

Modules:
    - config_loader: Environment-driven, immutable test configuration
    - sanitizer: Masking of sensitive headers and body fields
    - structured_logger: Leveled console + JSON-lines logging
    - http_client: API client with sanitized logging and Allure attachments
    - data_factory: Faker-backed test data factories
    - wait_helpers: Polling with exponential backoff
    - stub_api: In-memory API served through httpx.MockTransport

Author: Automation Team
License: MIT
================================================================================
"""

from .config_loader import (
    ConfigLoader,
    ConfigurationError,
    Settings,
    environment_flags,
    load_settings,
    validate_environment,
)
from .data_factory import DataFactory, UserFactory, generate_user
from .http_client import ApiClient, ApiResponse, HttpClientError
from .sanitizer import REDACTED, sanitize_body, sanitize_headers
from .structured_logger import LogLevel, StructuredLogger, setup_framework_logging
from .stub_api import StubApi
from .wait_helpers import WaitConfig, WaitTimeoutError, wait_until_api_ready, wait_with_backoff

__all__ = [
    "ApiClient",
    "ApiResponse",
    "ConfigLoader",
    "ConfigurationError",
    "DataFactory",
    "HttpClientError",
    "LogLevel",
    "REDACTED",
    "Settings",
    "StructuredLogger",
    "StubApi",
    "UserFactory",
    "WaitConfig",
    "WaitTimeoutError",
    "environment_flags",
    "generate_user",
    "load_settings",
    "sanitize_body",
    "sanitize_headers",
    "setup_framework_logging",
    "validate_environment",
    "wait_until_api_ready",
    "wait_with_backoff",
]
