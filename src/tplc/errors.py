"""Exception hierarchy shared by the API clients, resolver and CLI.

Every error carries a stable ``error_type`` string and a process
``exit_code`` so the CLI can turn any failure into a structured record::

    {"error": "device_not_found", "message": "...", "error_code": -20571}
"""

from __future__ import annotations

EXIT_GENERIC = 1
EXIT_AUTH = 2
EXIT_NOT_FOUND = 3
EXIT_OFFLINE = 4


class TplcError(Exception):
    """Base class for all errors raised by :mod:`tplc`."""

    error_type = "error"
    exit_code = EXIT_GENERIC

    def __init__(self, message: str, *, error_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code

    def to_dict(self) -> dict[str, object]:
        record: dict[str, object] = {"error": self.error_type, "message": str(self)}
        if self.error_code is not None:
            record["error_code"] = self.error_code
        return record


class AuthError(TplcError):
    """Wrong credentials, locked account or failed MFA verification."""

    error_type = "auth"
    exit_code = EXIT_AUTH

    def __str__(self) -> str:
        return f"Authentication failed: {self.message}"


class MfaRequiredError(TplcError):
    """Login needs a second factor; call ``verify_mfa`` with the code."""

    error_type = "mfa_required"
    exit_code = EXIT_AUTH

    def __init__(self, *, mfa_type: str | None = None, email: str | None = None) -> None:
        super().__init__("MFA verification required")
        self.mfa_type = mfa_type
        self.email = email


class TokenExpiredError(TplcError):
    """The access token was rejected; refresh once and retry."""

    error_type = "token_expired"
    exit_code = EXIT_AUTH


class RefreshTokenExpiredError(TplcError):
    """The refresh token itself expired; only an interactive login helps.

    Deliberately not a :class:`TokenExpiredError` so that refresh-and-retry
    paths never catch it.
    """

    error_type = "refresh_token_expired"
    exit_code = EXIT_AUTH


class NotAuthenticatedError(TplcError):
    error_type = "not_authenticated"
    exit_code = EXIT_AUTH

    def __init__(self, message: str = "Not authenticated. Run 'tplc login' first.") -> None:
        super().__init__(message)


class DeviceNotFoundError(TplcError):
    """No device matched, or more than one matched a partial name."""

    error_type = "device_not_found"
    exit_code = EXIT_NOT_FOUND

    def __init__(self, message: str, *, candidates: list[str] | None = None) -> None:
        super().__init__(message)
        self.candidates = candidates or []

    def __str__(self) -> str:
        return f"Device not found: {self.message}"


class DeviceOfflineError(TplcError):
    error_type = "device_offline"
    exit_code = EXIT_OFFLINE

    def __str__(self) -> str:
        return f"Device offline: {self.message}"


class ApiError(TplcError):
    """Generic business failure reported by the cloud."""

    error_type = "api"

    def __str__(self) -> str:
        return f"API error: {self.message}"


class UnsupportedOperationError(TplcError):
    error_type = "unsupported_operation"

    def __str__(self) -> str:
        return f"Device does not support this operation: {self.message}"


class InvalidInputError(TplcError):
    error_type = "invalid_input"


class TransportError(TplcError):
    """Non-2xx HTTP status, connection failure or timeout."""

    error_type = "http"

    def __init__(self, message: str, *, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class ResponseFormatError(TplcError):
    """A response body (or its nested ``responseData``) was not valid JSON."""

    error_type = "json"


class CredentialStoreError(TplcError):
    error_type = "credential_store"

    def __str__(self) -> str:
        return f"Credential store error: {self.message}"
