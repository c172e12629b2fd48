"""
Error taxonomy for the ecobee credential lifecycle.

Callers can tell apart:
- configuration mistakes (`ConfigurationError`), raised before any I/O
- vendor authorization failures (`AuthorizationError`), which carry ecobee's code + description
- bodies that match neither the success nor the error shape (`DecodeError`)
- disk problems with the durable token store (`StorageError`)

Transport failures are *not* wrapped: `requests.exceptions.RequestException`
subclasses propagate unchanged so "can't reach ecobee" stays distinguishable
from "can't reach disk".
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Union


class AuthorizationErrorCode(str, Enum):
    """Error codes returned by the ecobee token endpoint."""

    ACCESS_DENIED = "access_denied"
    INVALID_REQUEST = "invalid_request"
    INVALID_CLIENT = "invalid_client"
    INVALID_GRANT = "invalid_grant"
    UNAUTHORIZED_CLIENT = "unauthorized_client"
    UNSUPPORTED_GRANT_TYPE = "unsupported_grant_type"
    INVALID_SCOPE = "invalid_scope"
    NOT_SUPPORTED = "not_supported"
    ACCOUNT_LOCKED = "account_locked"
    ACCOUNT_DISABLED = "account_disabled"
    AUTHORIZATION_PENDING = "authorization_pending"
    AUTHORIZATION_EXPIRED = "authorization_expired"
    SLOW_DOWN = "slow_down"

    @classmethod
    def coerce(cls, value: str) -> Union["AuthorizationErrorCode", str]:
        """Return the enum member for `value`, or `value` itself if unknown."""
        try:
            return cls(value)
        except ValueError:
            return value


class EcobeeError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(EcobeeError):
    """Missing or invalid local configuration (app id, store path, ...)."""


class PinAuthenticationStateError(ConfigurationError):
    """`finalize()` called without a pending PIN challenge."""


class AuthorizationError(EcobeeError):
    """
    The token endpoint refused a grant.

    `error` is an `AuthorizationErrorCode` when ecobee returned a known code,
    the raw string for unknown codes, and None when the body carried no code
    at all (generic re-authentication failure).
    """

    def __init__(
        self,
        error: Union[AuthorizationErrorCode, str, None] = None,
        description: str = "",
        uri: str = "",
        *,
        action: str = "re-authenticate",
    ) -> None:
        self.error = AuthorizationErrorCode.coerce(error) if error else None
        self.description = description or ""
        self.uri = uri or ""
        if self.error and self.description:
            message = f"unable to {action}: {self.code}: {self.description}"
        elif self.error:
            message = f"unable to {action}: {self.code}"
        else:
            message = f"unable to {action} for unknown reasons"
        super().__init__(message)

    @property
    def code(self) -> Optional[str]:
        """The vendor error code as a plain string."""
        if self.error is None:
            return None
        if isinstance(self.error, AuthorizationErrorCode):
            return self.error.value
        return str(self.error)

    @property
    def is_pending(self) -> bool:
        """True while the user has not yet approved the PIN."""
        return self.error == AuthorizationErrorCode.AUTHORIZATION_PENDING

    @property
    def requires_reauthorization(self) -> bool:
        """True when the stored grant is dead and the PIN workflow must run again."""
        return self.error in (
            AuthorizationErrorCode.INVALID_GRANT,
            AuthorizationErrorCode.AUTHORIZATION_EXPIRED,
        )


class DecodeError(EcobeeError):
    """A response body could not be decoded as any expected shape."""


class StorageError(EcobeeError):
    """The durable token store could not be read or written."""


class StoreNotInitializedError(StorageError):
    """The durable token store has no backing file yet."""


class ApiError(EcobeeError):
    """A thermostat API call returned a non-2xx status."""

    def __init__(self, message: str, *, status_code: int, status: Optional[dict] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.status = status or {}


__all__ = [
    "ApiError",
    "AuthorizationError",
    "AuthorizationErrorCode",
    "ConfigurationError",
    "DecodeError",
    "EcobeeError",
    "PinAuthenticationStateError",
    "StorageError",
    "StoreNotInitializedError",
]
