"""
================================================================================
Stub API
================================================================================

In-memory implementation of the REST API under test, served through
httpx.MockTransport so the suite runs without a deployed backend.

Routes are mounted under the configured base URLs:
    - {BASE_URL}/health
    - {AUTH_BASE_URL}/login, /register, /me, /refresh, /forgot-password,
      /change-password, /verify-email
    - {USERS_BASE_URL}/users, /users/{id}, /profile

The stub enforces the validation, authentication and uniqueness rules the
test specifications assert. All state lives behind one lock, so concurrent
requests (e.g. duplicate-email races) resolve deterministically.

Emails the real service would send (verification, password reset) are
recorded in StubApi.outbox.

Author: Automation Team
License: MIT
================================================================================
"""

from __future__ import annotations

import json
import re
import secrets
import threading
import uuid
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Pattern, Tuple
from urllib.parse import urlsplit

import httpx
from loguru import logger

from .config_loader import Settings
from .data_factory import paginate


STUB_SERVICE_NAME = "api-stub"
STUB_VERSION = "1.0.0"

# Tokens the stub accepts without a prior request
STATIC_RESET_TOKENS = frozenset({"valid-reset-token"})
STATIC_VERIFICATION_TOKENS = frozenset({"valid-verification-token"})

MAX_NAME_LENGTH = 100
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 20
SORTABLE_FIELDS = ("firstName", "lastName", "email", "createdAt")
REQUIRED_USER_FIELDS = ("email", "password", "firstName", "lastName")

EMAIL_RE = re.compile(
    r"^(?!\.)(?!.*\.\.)[A-Za-z0-9._%+-]+(?<!\.)"
    r"@[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?"
    r"(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?)+$"
)
PHONE_RE = re.compile(r"^\+?[0-9][0-9\s().-]{6,19}$")
SCRIPT_RE = re.compile(r"<script\b[^>]*>.*?</script\s*>", re.IGNORECASE | re.DOTALL)
TAG_RE = re.compile(r"<[^>]+>")

Handler = Callable[..., httpx.Response]


class ValidationFailed(Exception):
    """Raised inside the stub when a payload breaks a validation rule."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


# ================================================================================
# Helpers
# ================================================================================

def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def _error(status: int, code: str, message: str, **details: Any) -> httpx.Response:
    error = {"code": code, "message": message}
    if details:
        error["details"] = details
    return httpx.Response(status, json={"error": error})


def strip_html(value: str) -> str:
    """Remove script blocks and markup tags."""
    return TAG_RE.sub("", SCRIPT_RE.sub("", value))


def is_valid_email(value: Any) -> bool:
    return isinstance(value, str) and bool(EMAIL_RE.match(value))


def is_strong_password(value: Any) -> bool:
    """At least 8 chars with upper, lower, digit and special character."""
    if not isinstance(value, str) or len(value) < 8:
        return False
    return (
        any(c.isupper() for c in value)
        and any(c.islower() for c in value)
        and any(c.isdigit() for c in value)
        and any(not c.isalnum() for c in value)
    )


def is_valid_phone(value: Any) -> bool:
    if not isinstance(value, str) or not PHONE_RE.match(value):
        return False
    return 7 <= sum(c.isdigit() for c in value) <= 15


def is_valid_birth_date(value: Any) -> bool:
    if not isinstance(value, str) or not re.fullmatch(r"\d{4}-\d{2}-\d{2}", value):
        return False
    try:
        parsed = date.fromisoformat(value)
    except ValueError:
        return False
    return parsed < date.today()


def is_uuid(value: str) -> bool:
    try:
        return str(uuid.UUID(value)) == value.lower()
    except ValueError:
        return False


# ================================================================================
# Stub API
# ================================================================================

class StubApi:
    """
    Thread-safe in-memory API used as the default test target.

    Usage:
        >>> stub = StubApi(settings)
        >>> client = ApiClient(settings.auth_base_url, settings=settings,
        ...                    transport=stub.transport())
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._lock = threading.RLock()
        self._users: Dict[str, Dict[str, Any]] = {}
        self._tokens: Dict[str, str] = {}
        self._reset_tokens: Dict[str, str] = {}
        self._verification_tokens: Dict[str, str] = {}
        # Emails the API would have sent: {"to", "type", "token"}
        self.outbox: List[Dict[str, str]] = []

        self._routes = self._build_routes()
        self._seed_accounts()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def transport(self) -> httpx.MockTransport:
        """httpx transport that dispatches every request to this stub."""
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.rstrip("/") or "/"
        method = request.method.upper()

        with self._lock:
            path_matched = False
            for route_method, pattern, handler in self._routes:
                match = pattern.fullmatch(path)
                if not match:
                    continue
                path_matched = True
                if route_method != method:
                    continue
                try:
                    return handler(request, **match.groupdict())
                except ValidationFailed as e:
                    details = {"field": e.field} if e.field else {}
                    return _error(400, "VALIDATION_ERROR", str(e), **details)

        if path_matched:
            return _error(405, "METHOD_NOT_ALLOWED", f"Method not allowed: {method} {path}")
        logger.debug(f"Stub API has no route for {method} {path}")
        return _error(404, "NOT_FOUND", f"Route not found: {method} {path}")

    def _build_routes(self) -> List[Tuple[str, Pattern, Handler]]:
        root = urlsplit(self.settings.base_url).path.rstrip("/")
        auth = urlsplit(self.settings.auth_base_url).path.rstrip("/")
        users = urlsplit(self.settings.users_base_url).path.rstrip("/")
        user_id = r"(?P<user_id>[^/]+)"

        table = [
            ("GET", f"{root}/health", self._health),
            ("POST", f"{auth}/login", self._login),
            ("POST", f"{auth}/register", self._register),
            ("GET", f"{auth}/me", self._me),
            ("POST", f"{auth}/refresh", self._refresh),
            ("POST", f"{auth}/forgot-password", self._forgot_password),
            ("POST", f"{auth}/change-password", self._change_password),
            ("POST", f"{auth}/verify-email", self._verify_email),
            ("GET", f"{users}/users", self._list_users),
            ("POST", f"{users}/users", self._create_user),
            ("GET", f"{users}/users/{{id}}", self._get_user),
            ("PUT", f"{users}/users/{{id}}", self._update_user),
            ("PATCH", f"{users}/users/{{id}}", self._update_user),
            ("DELETE", f"{users}/users/{{id}}", self._delete_user),
            ("GET", f"{users}/profile", self._get_profile),
            ("PUT", f"{users}/profile", self._update_profile),
        ]
        placeholder = re.escape("{id}")
        return [
            (method, re.compile(re.escape(path).replace(placeholder, user_id)), handler)
            for method, path, handler in table
        ]

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    def _seed_accounts(self) -> None:
        self._insert_user({
            "email": self.settings.test_user_email,
            "password": self.settings.test_user_password,
            "firstName": "Test",
            "lastName": "User",
        }, role="user")
        self._insert_user({
            "email": self.settings.admin_user_email,
            "password": self.settings.admin_user_password,
            "firstName": "Admin",
            "lastName": "User",
        }, role="admin")

    def _insert_user(self, data: Dict[str, Any], role: str = "user") -> Dict[str, Any]:
        timestamp = _now()
        record = {
            "id": str(uuid.uuid4()),
            "isActive": True,
            "role": role,
            "emailVerified": False,
            "createdAt": timestamp,
            "updatedAt": timestamp,
        }
        record.update({k: v for k, v in data.items() if k not in ("id", "role")})
        record["email"] = record["email"].strip().lower()
        self._users[record["id"]] = record
        return record

    def _find_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        email = email.strip().lower()
        for user in self._users.values():
            if user["email"] == email:
                return user
        return None

    def _send_email(self, to: str, kind: str, token: str) -> None:
        self.outbox.append({"to": to, "type": kind, "token": token})

    def last_email(self, to: str, kind: str) -> Optional[Dict[str, str]]:
        """Most recent email of a kind sent to an address, if any."""
        with self._lock:
            for email in reversed(self.outbox):
                if email["to"] == to.lower() and email["type"] == kind:
                    return email
        return None

    def _issue_token(self, user_id: str) -> str:
        token = secrets.token_urlsafe(24)
        self._tokens[token] = user_id
        return token

    @staticmethod
    def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
        """User representation without credentials."""
        hidden = {"password", "passwordHash", "salt"}
        return {k: v for k, v in user.items() if k not in hidden}

    def _current_user(self, request: httpx.Request) -> Optional[Dict[str, Any]]:
        header = request.headers.get("authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token:
            return None
        user_id = self._tokens.get(token.strip())
        return self._users.get(user_id) if user_id else None

    @staticmethod
    def _json_body(request: httpx.Request) -> Any:
        if not request.content:
            return {}
        try:
            return json.loads(request.content)
        except ValueError:
            raise ValidationFailed("Request body must be valid JSON") from None

    def _object_body(self, request: httpx.Request) -> Dict[str, Any]:
        body = self._json_body(request)
        if not isinstance(body, dict):
            raise ValidationFailed("Request body must be a JSON object")
        return body

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _clean_user_payload(self, body: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
        """Validate and normalize a user payload (trim, strip HTML, lowercase email)."""
        if not partial:
            missing = [f for f in REQUIRED_USER_FIELDS if f not in body or body[f] is None]
            if missing:
                raise ValidationFailed(
                    f"Missing required fields: {', '.join(missing)}", field=missing[0]
                )

        cleaned: Dict[str, Any] = {}

        if "email" in body:
            email = body["email"]
            if not isinstance(email, str) or not is_valid_email(email.strip()):
                raise ValidationFailed("Invalid email format", field="email")
            cleaned["email"] = email.strip().lower()

        if "password" in body:
            if not is_strong_password(body["password"]):
                raise ValidationFailed(
                    "Password must be at least 8 characters and include upper case, "
                    "lower case, digit and special characters",
                    field="password",
                )
            cleaned["password"] = body["password"]

        for name_field in ("firstName", "lastName"):
            if name_field not in body:
                continue
            value = body[name_field]
            if not isinstance(value, str):
                raise ValidationFailed(f"{name_field} must be a string", field=name_field)
            value = strip_html(value).strip()
            if not value:
                raise ValidationFailed(f"{name_field} must not be empty", field=name_field)
            if len(value) > MAX_NAME_LENGTH:
                raise ValidationFailed(
                    f"{name_field} must be at most {MAX_NAME_LENGTH} characters",
                    field=name_field,
                )
            cleaned[name_field] = value

        if body.get("username") is not None:
            if not isinstance(body["username"], str):
                raise ValidationFailed("username must be a string", field="username")
            cleaned["username"] = strip_html(body["username"]).strip()

        if body.get("phone") is not None:
            if not is_valid_phone(body["phone"]):
                raise ValidationFailed("Invalid phone number format", field="phone")
            cleaned["phone"] = body["phone"]

        if body.get("dateOfBirth") is not None:
            if not is_valid_birth_date(body["dateOfBirth"]):
                raise ValidationFailed("Invalid date of birth", field="dateOfBirth")
            cleaned["dateOfBirth"] = body["dateOfBirth"]

        if body.get("address") is not None:
            if not isinstance(body["address"], dict):
                raise ValidationFailed("address must be an object", field="address")
            cleaned["address"] = dict(body["address"])

        return cleaned

    def _create_account(self, body: Dict[str, Any]) -> Tuple[Optional[Dict[str, Any]], Optional[httpx.Response]]:
        cleaned = self._clean_user_payload(body)
        if self._find_by_email(cleaned["email"]):
            return None, _error(409, "CONFLICT", "A user with this email already exists")
        return self._insert_user(cleaned), None

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def _health(self, request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={
            "status": "ok",
            "timestamp": _now(),
            "service": STUB_SERVICE_NAME,
            "version": STUB_VERSION,
            "environment": self.settings.node_env,
        })

    # ------------------------------------------------------------------
    # Auth routes
    # ------------------------------------------------------------------

    def _login(self, request: httpx.Request) -> httpx.Response:
        body = self._object_body(request)
        email, password = body.get("email"), body.get("password")
        if not email or not password:
            return _error(400, "VALIDATION_ERROR", "Email and password are required")
        if not is_valid_email(str(email).strip()):
            return _error(400, "VALIDATION_ERROR", "Invalid email format")

        user = self._find_by_email(str(email))
        if user is None or user["password"] != password:
            return _error(401, "AUTHENTICATION_ERROR", "Invalid email or password")

        return httpx.Response(200, json={
            "token": self._issue_token(user["id"]),
            "user": self.public_user(user),
        })

    def _register(self, request: httpx.Request) -> httpx.Response:
        user, conflict = self._create_account(self._object_body(request))
        if conflict is not None:
            return conflict

        verification_token = secrets.token_urlsafe(16)
        self._verification_tokens[verification_token] = user["id"]
        self._send_email(user["email"], "email-verification", verification_token)
        return httpx.Response(201, json={
            "user": self.public_user(user),
            "token": self._issue_token(user["id"]),
            "message": "Registration successful. A verification email has been sent.",
        })

    def _me(self, request: httpx.Request) -> httpx.Response:
        user = self._current_user(request)
        if user is None:
            return _error(401, "AUTHENTICATION_ERROR", "Invalid or missing token")
        return httpx.Response(200, json={"user": self.public_user(user)})

    def _refresh(self, request: httpx.Request) -> httpx.Response:
        token = self._object_body(request).get("token")
        user_id = self._tokens.get(token) if isinstance(token, str) else None
        if user_id is None or user_id not in self._users:
            return _error(401, "AUTHENTICATION_ERROR", "Invalid refresh token")
        return httpx.Response(200, json={"token": self._issue_token(user_id)})

    def _forgot_password(self, request: httpx.Request) -> httpx.Response:
        email = self._object_body(request).get("email")
        if not is_valid_email(email):
            return _error(400, "VALIDATION_ERROR", "A valid email is required")
        user = self._find_by_email(email)
        if user is None:
            return _error(404, "NOT_FOUND", "No account found for this email")
        reset_token = secrets.token_urlsafe(16)
        self._reset_tokens[reset_token] = user["id"]
        self._send_email(user["email"], "password-reset", reset_token)
        return httpx.Response(200, json={"message": "Password reset instructions sent"})

    def _change_password(self, request: httpx.Request) -> httpx.Response:
        body = self._object_body(request)
        token, new_password = body.get("token"), body.get("newPassword")
        if not token or not new_password:
            return _error(400, "VALIDATION_ERROR", "token and newPassword are required")
        if not isinstance(token, str):
            return _error(400, "VALIDATION_ERROR", "Invalid or expired reset token")
        if not isinstance(new_password, str) or len(new_password) < 8:
            return _error(400, "VALIDATION_ERROR", "Password must be at least 8 characters")

        if token in STATIC_RESET_TOKENS:
            return httpx.Response(200, json={"message": "Password changed successfully"})
        user_id = self._reset_tokens.pop(token, None)
        if user_id is None or user_id not in self._users:
            return _error(400, "VALIDATION_ERROR", "Invalid or expired reset token")

        self._users[user_id]["password"] = new_password
        self._users[user_id]["updatedAt"] = _now()
        return httpx.Response(200, json={"message": "Password changed successfully"})

    def _verify_email(self, request: httpx.Request) -> httpx.Response:
        token = self._object_body(request).get("token")
        if not isinstance(token, str):
            return _error(400, "VALIDATION_ERROR", "Invalid verification token")
        if token in STATIC_VERIFICATION_TOKENS:
            return httpx.Response(200, json={"message": "Email verified"})
        user_id = self._verification_tokens.pop(token, None)
        if user_id is None or user_id not in self._users:
            return _error(400, "VALIDATION_ERROR", "Invalid verification token")
        self._users[user_id]["emailVerified"] = True
        return httpx.Response(200, json={"message": "Email verified"})

    # ------------------------------------------------------------------
    # User routes
    # ------------------------------------------------------------------

    def _list_users(self, request: httpx.Request) -> httpx.Response:
        if self._current_user(request) is None:
            return _error(401, "AUTHENTICATION_ERROR", "Authentication required")

        params = request.url.params
        try:
            page = int(params.get("page", "1"))
            limit = int(params.get("limit", str(DEFAULT_PAGE_SIZE)))
        except ValueError:
            return _error(400, "VALIDATION_ERROR", "page and limit must be integers")
        if page < 1 or limit < 1 or limit > MAX_PAGE_SIZE:
            return _error(400, "VALIDATION_ERROR", "Invalid pagination parameters")

        users = [self.public_user(u) for u in self._users.values()]

        search = params.get("search", "").strip().lower()
        if search:
            users = [
                u for u in users
                if any(search in str(u.get(f, "")).lower() for f in ("firstName", "lastName", "email"))
            ]

        sort_by = params.get("sortBy")
        if sort_by is not None:
            if sort_by not in SORTABLE_FIELDS:
                return _error(400, "VALIDATION_ERROR", f"Cannot sort by {sort_by}")
            sort_order = params.get("sortOrder", "asc").lower()
            if sort_order not in ("asc", "desc"):
                return _error(400, "VALIDATION_ERROR", "sortOrder must be asc or desc")
            users.sort(key=lambda u: str(u.get(sort_by, "")), reverse=sort_order == "desc")

        envelope = paginate(users, page=page, limit=limit)
        return httpx.Response(200, json={
            "users": envelope["data"],
            "pagination": envelope["pagination"],
        })

    def _create_user(self, request: httpx.Request) -> httpx.Response:
        current = self._current_user(request)
        if current is None:
            return _error(401, "AUTHENTICATION_ERROR", "Authentication required")
        if current["role"] != "admin":
            return _error(403, "FORBIDDEN", "Only administrators can create users")

        user, conflict = self._create_account(self._object_body(request))
        if conflict is not None:
            return conflict
        return httpx.Response(201, json={"user": self.public_user(user)})

    def _lookup(self, request: httpx.Request, user_id: str) -> Tuple[Optional[Dict[str, Any]], Optional[httpx.Response]]:
        if self._current_user(request) is None:
            return None, _error(401, "AUTHENTICATION_ERROR", "Authentication required")
        if not is_uuid(user_id):
            return None, _error(400, "VALIDATION_ERROR", f"Invalid user id: {user_id}")
        user = self._users.get(user_id)
        if user is None:
            return None, _error(404, "NOT_FOUND", f"User not found: {user_id}")
        return user, None

    def _get_user(self, request: httpx.Request, user_id: str) -> httpx.Response:
        user, failure = self._lookup(request, user_id)
        if failure is not None:
            return failure
        return httpx.Response(200, json={"user": self.public_user(user)})

    def _apply_update(self, user: Dict[str, Any], body: Dict[str, Any]) -> httpx.Response:
        changes = self._clean_user_payload(body, partial=True)
        if "email" in changes:
            owner = self._find_by_email(changes["email"])
            if owner is not None and owner["id"] != user["id"]:
                return _error(409, "CONFLICT", "A user with this email already exists")
        user.update(changes)
        user["updatedAt"] = _now()
        return httpx.Response(200, json={"user": self.public_user(user)})

    def _update_user(self, request: httpx.Request, user_id: str) -> httpx.Response:
        user, failure = self._lookup(request, user_id)
        if failure is not None:
            return failure
        return self._apply_update(user, self._object_body(request))

    def _delete_user(self, request: httpx.Request, user_id: str) -> httpx.Response:
        user, failure = self._lookup(request, user_id)
        if failure is not None:
            return failure
        del self._users[user["id"]]
        self._tokens = {t: uid for t, uid in self._tokens.items() if uid != user["id"]}
        return httpx.Response(200, json={"message": "User deleted successfully"})

    def _get_profile(self, request: httpx.Request) -> httpx.Response:
        user = self._current_user(request)
        if user is None:
            return _error(401, "AUTHENTICATION_ERROR", "Authentication required")
        return httpx.Response(200, json={"user": self.public_user(user)})

    def _update_profile(self, request: httpx.Request) -> httpx.Response:
        user = self._current_user(request)
        if user is None:
            return _error(401, "AUTHENTICATION_ERROR", "Authentication required")
        return self._apply_update(user, self._object_body(request))


__all__ = [
    "StubApi",
    "ValidationFailed",
    "is_strong_password",
    "is_valid_email",
    "is_valid_phone",
    "strip_html",
]
