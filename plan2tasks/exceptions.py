"""
Custom exceptions for Plan2Tasks.

Provides structured error handling with retryable flags, a stable
error code for JSON responses, and the HTTP status each error maps to.
"""

from typing import Optional


class Plan2TasksError(Exception):
    """Base exception for all Plan2Tasks operations."""

    retryable: bool = False
    error_code: str = "internal_error"
    status_code: int = 500

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class ConfigurationError(Plan2TasksError):
    """
    Required configuration is missing.

    Causes:
    - GOOGLE_OAUTH_CLIENT_ID / GOOGLE_OAUTH_CLIENT_SECRET not set
    - GOOGLE_OAUTH_REDIRECT_URI not set

    Needs an operator; never retryable.
    """

    error_code = "configuration_error"


class InputValidationError(Plan2TasksError):
    """Malformed email, missing required field, or bad request value."""

    error_code = "invalid_request"
    status_code = 400


class NotConnectedError(Plan2TasksError):
    """
    No usable Connection for the user.

    Causes:
    - No connection row for the user (or pair)
    - No refresh token stored

    The user must go through the invite / OAuth flow again.
    """

    error_code = "not_connected"
    status_code = 404


class ProviderRejectedError(Plan2TasksError):
    """
    Google rejected a token request.

    Carries the provider's ``error`` and ``error_description`` verbatim.
    ``invalid_grant`` means the refresh token was revoked or expired.
    """

    error_code = "provider_rejected"
    status_code = 400

    def __init__(
        self,
        error: str,
        error_description: Optional[str] = None,
        http_status: Optional[int] = None,
        original_error: Exception | None = None,
    ):
        message = f"{error}: {error_description}" if error_description else error
        super().__init__(message, original_error=original_error)
        self.error = error
        self.error_description = error_description
        self.http_status = http_status

    @property
    def is_invalid_grant(self) -> bool:
        """True when the refresh token is permanently unusable."""
        return self.error == "invalid_grant"


class ProviderUnavailableError(Plan2TasksError):
    """
    Google could not be reached.

    Timeouts and transport failures. Callers may re-invoke.
    """

    retryable = True
    error_code = "provider_unavailable"
    status_code = 502


class PersistenceError(Plan2TasksError):
    """Database read or write failed. Retryable."""

    retryable = True
    error_code = "persistence_error"
    status_code = 503


class TokenPersistenceError(PersistenceError):
    """
    Tokens were issued by Google but could not be stored.

    The issued tokens are orphaned until the user re-authorizes or the
    write is replayed, so this is logged at CRITICAL.
    """

    error_code = "token_persistence_failed"


class UnresolvedConnectionError(Plan2TasksError):
    """OAuth callback could not determine the planner/user pair."""

    error_code = "unresolved_connection"
    status_code = 400


class ConnectionStateError(Plan2TasksError):
    """Requested status transition is not allowed."""

    error_code = "invalid_transition"
    status_code = 409


class TaskDeliveryError(Plan2TasksError):
    """
    Google Tasks API call failed.

    Retryable only for 429 and 5xx responses.
    """

    error_code = "task_delivery_failed"
    status_code = 502

    def __init__(
        self,
        message: str,
        http_status: Optional[int] = None,
        original_error: Exception | None = None,
    ):
        super().__init__(message, original_error=original_error)
        self.http_status = http_status
        self.retryable = http_status is not None and (http_status == 429 or http_status >= 500)
