"""
================================================================================
API Client with Structured Logging and Allure Integration
================================================================================

A thin REST client for API test specifications:
    - Absolute URL building from a base URL and an endpoint
    - JSON default headers, bearer token and custom default headers
    - One dispatch path for GET, POST, PUT, PATCH and DELETE
    - Normalized response envelope (status, data, headers, url)
    - Sanitized request/response logging and Allure attachments with cURL

Transport failures are logged once and re-raised unchanged. There is no
retry: the calling test decides what a failure means.

Author: Automation Team
License: MIT
================================================================================
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import allure
import httpx
from allure_commons.types import AttachmentType

from .config_loader import Settings, load_settings
from .sanitizer import sanitize_body, sanitize_headers
from .structured_logger import StructuredLogger


# Maximum response length to include in Allure reports
MAX_RESPONSE_LENGTH = 3000

SUPPORTED_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")


class HttpClientError(Exception):
    """Raised when the client is used incorrectly."""
    pass


@dataclass(frozen=True)
class RequestDescriptor:
    """Everything needed to dispatch one request. Built fresh per call."""

    method: str
    url: str
    headers: Dict[str, str]
    body: Any = None
    params: Optional[Dict[str, str]] = None
    timeout: int = 30000


@dataclass
class ApiResponse:
    """Normalized response envelope returned to tests."""

    status: int
    data: Any
    headers: Dict[str, str] = field(default_factory=dict)
    url: str = ""

    @property
    def ok(self) -> bool:
        return self.status < 400


def build_url(base_url: str, endpoint: str) -> str:
    """
    Join a base URL and an endpoint with exactly one slash.

    Endpoints that already carry a scheme are returned unchanged.

    Examples:
        >>> build_url("http://x/", "/y")
        'http://x/y'
        >>> build_url("http://x", "y")
        'http://x/y'
    """
    if _SCHEME_RE.match(endpoint):
        return endpoint
    return f"{base_url.rstrip('/')}/{endpoint.lstrip('/')}"


def merge_headers(*layers: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    """Merge header mappings left to right; names compare case-insensitively."""
    merged: Dict[str, str] = {}
    for layer in layers:
        for key, value in (layer or {}).items():
            for existing in [k for k in merged if k.lower() == key.lower()]:
                del merged[existing]
            merged[key] = str(value)
    return merged


def parse_json_body(response: httpx.Response) -> Any:
    """Decode a JSON body; anything undecodable (including empty) becomes None."""
    try:
        return response.json()
    except (ValueError, UnicodeDecodeError):
        return None


class ApiClient:
    """
    REST API client bound to one base URL and one httpx transport.

    Usage:
        >>> with ApiClient(settings.auth_base_url, settings=settings) as client:
        ...     response = client.post("/login", {"email": e, "password": p})
        ...     client.set_auth_token(response.data["token"])
        ...     me = client.get("/me")
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        settings: Optional[Settings] = None,
        logger: Optional[StructuredLogger] = None,
        transport: Optional[httpx.BaseTransport] = None,
        session: Optional[httpx.Client] = None,
    ) -> None:
        """
        Initialize API client.

        Args:
            base_url: Base URL for relative endpoints. Defaults to settings.base_url.
            settings: Resolved configuration. Loaded from the environment if None.
            logger: Structured logger. Built from settings if None.
            transport: httpx transport for a client created here
                       (e.g. httpx.MockTransport for a stub API).
            session: Existing httpx.Client to dispatch through; not closed here.
        """
        if settings is None:
            settings = load_settings()

        self.settings = settings
        self.base_url = base_url or settings.base_url
        self.timeout = settings.test_timeout
        self.logger = logger or StructuredLogger.from_settings(settings)

        self._owns_session = session is None
        self.session: Optional[httpx.Client] = session or httpx.Client(
            transport=transport,
            follow_redirects=True,
        )
        self._default_headers: Dict[str, str] = {}

    def __enter__(self) -> "ApiClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying httpx client if this instance created it."""
        if self.session is not None and self._owns_session:
            self.session.close()
        self.session = None

    # ------------------------------------------------------------------
    # Default headers and authentication
    # ------------------------------------------------------------------

    @property
    def default_headers(self) -> Dict[str, str]:
        return dict(self._default_headers)

    def set_auth_token(self, token: str) -> None:
        """Send 'Authorization: Bearer <token>' on subsequent requests."""
        self._default_headers = merge_headers(
            self._default_headers, {"Authorization": f"Bearer {token}"}
        )

    def clear_auth_token(self) -> None:
        """Stop sending the Authorization header."""
        self._default_headers = {
            k: v for k, v in self._default_headers.items()
            if k.lower() != "authorization"
        }

    def set_headers(self, headers: Mapping[str, Any]) -> None:
        """Replace the full set of default headers."""
        self._default_headers = merge_headers(headers)

    # ------------------------------------------------------------------
    # Request API
    # ------------------------------------------------------------------

    def build_url(self, endpoint: str) -> str:
        return build_url(self.base_url, endpoint)

    def build_request(
        self,
        method: str,
        endpoint: str,
        body: Any = None,
        *,
        headers: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, Any]] = None,
        timeout: Optional[int] = None,
    ) -> RequestDescriptor:
        """Snapshot headers, URL, body, params and timeout for one call."""
        method = method.upper()
        if method not in SUPPORTED_METHODS:
            raise HttpClientError(f"Unsupported HTTP method: {method}")

        query = None
        if params:
            query = {k: str(v) for k, v in params.items() if v is not None}

        return RequestDescriptor(
            method=method,
            url=self.build_url(endpoint),
            headers=merge_headers(DEFAULT_HEADERS, self._default_headers, headers),
            body=body,
            params=query or None,
            timeout=int(timeout or self.timeout),
        )

    def request(
        self,
        method: str,
        endpoint: str,
        body: Any = None,
        **options: Any,
    ) -> ApiResponse:
        """
        Execute one HTTP request and return the normalized envelope.

        Args:
            method: HTTP method (GET, POST, PUT, PATCH, DELETE)
            endpoint: Path relative to base_url, or an absolute URL
            body: JSON-serializable request body (sent when not None)
            **options: headers, params, timeout (milliseconds)

        Returns:
            ApiResponse

        Raises:
            HttpClientError: Unsupported method or closed client
            Exception: Any transport failure, re-raised unchanged
        """
        if self.session is None:
            raise HttpClientError("ApiClient is closed")

        descriptor = self.build_request(method, endpoint, body, **options)
        request = self.session.build_request(
            descriptor.method,
            descriptor.url,
            headers=descriptor.headers,
            params=descriptor.params,
            json=descriptor.body,
            timeout=descriptor.timeout / 1000,
        )
        request_url = str(request.url)

        self.logger.log_request(
            descriptor.method, request_url, descriptor.headers, descriptor.body
        )

        try:
            raw = self.session.send(request)
        except Exception as e:
            self.logger.error(
                f"Request failed: {descriptor.method} {request_url}",
                {"error": str(e), "type": type(e).__name__},
            )
            raise

        response = self._normalize(raw)
        self.logger.log_response(
            response.status, response.url, response.headers, response.data
        )
        self._log_to_allure(descriptor, request_url, raw, response)
        return response

    def get(self, endpoint: str, **options: Any) -> ApiResponse:
        """Execute GET request."""
        return self.request("GET", endpoint, **options)

    def post(self, endpoint: str, body: Any = None, **options: Any) -> ApiResponse:
        """Execute POST request."""
        return self.request("POST", endpoint, body, **options)

    def put(self, endpoint: str, body: Any = None, **options: Any) -> ApiResponse:
        """Execute PUT request."""
        return self.request("PUT", endpoint, body, **options)

    def patch(self, endpoint: str, body: Any = None, **options: Any) -> ApiResponse:
        """Execute PATCH request."""
        return self.request("PATCH", endpoint, body, **options)

    def delete(self, endpoint: str, body: Any = None, **options: Any) -> ApiResponse:
        """Execute DELETE request."""
        return self.request("DELETE", endpoint, body, **options)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _normalize(raw: httpx.Response) -> ApiResponse:
        return ApiResponse(
            status=raw.status_code,
            data=parse_json_body(raw),
            headers={k.lower(): v for k, v in raw.headers.items()},
            url=str(raw.url),
        )

    def _log_to_allure(
        self,
        descriptor: RequestDescriptor,
        full_url: str,
        raw: httpx.Response,
        response: ApiResponse,
    ) -> None:
        """
        Attach request/response details to the current Allure step.

        Attaches:
            - Request URL with query parameters
            - Request headers and body (sanitized)
            - cURL command for reproduction
            - Response status and body (truncated if too long)
        """
        marker = "PASS" if response.ok else "FAIL"
        step_title = f"{descriptor.method} {descriptor.url} -> {response.status}"

        safe_headers = sanitize_headers(descriptor.headers)
        safe_body = sanitize_body(descriptor.body)

        with allure.step(step_title):
            allure.attach(
                full_url,
                name="Request URL",
                attachment_type=AttachmentType.TEXT,
            )
            allure.attach(
                json.dumps(safe_headers, ensure_ascii=False, indent=2),
                name="Request Headers",
                attachment_type=AttachmentType.JSON,
            )
            if safe_body is not None:
                allure.attach(
                    json.dumps(safe_body, ensure_ascii=False, indent=2, default=str),
                    name="Request Body",
                    attachment_type=AttachmentType.JSON,
                )
            allure.attach(
                self._build_curl(descriptor.method, full_url, safe_headers, safe_body),
                name="cURL Command",
                attachment_type=AttachmentType.TEXT,
            )
            allure.attach(
                f"{marker} {response.status}",
                name="Response Status",
                attachment_type=AttachmentType.TEXT,
            )

            if response.data is not None:
                response_content = json.dumps(
                    sanitize_body(response.data), ensure_ascii=False, indent=2
                )
            else:
                response_content = raw.text or "<empty>"

            if len(response_content) > MAX_RESPONSE_LENGTH:
                response_content = (
                    f"{response_content[:MAX_RESPONSE_LENGTH]}\n\n"
                    f"... [Truncated, full length: {len(response_content)} chars] ..."
                )

            allure.attach(
                response_content,
                name="Response Body",
                attachment_type=AttachmentType.JSON,
            )

    @staticmethod
    def _build_curl(
        method: str,
        url: str,
        headers: Dict[str, Any],
        body: Any,
    ) -> str:
        """Build a copy-paste ready cURL command from sanitized parts."""
        parts = [f"curl -X {method}"]
        for key, value in headers.items():
            parts.append(f"-H '{key}: {value}'")
        if body is not None:
            parts.append(f"-d '{json.dumps(body, ensure_ascii=False, default=str)}'")
        parts.append(f"'{url}'")
        return " \\\n  ".join(parts)


__all__ = [
    "ApiClient",
    "ApiResponse",
    "HttpClientError",
    "RequestDescriptor",
    "build_url",
    "merge_headers",
    "parse_json_body",
]
