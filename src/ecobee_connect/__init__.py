"""
Top-level package for `ecobee_connect`.

An ecobee thermostat API client whose core is the credential lifecycle:
token stores, an authorizing `requests` transport, and the PIN workflow.
"""

from .api_auth.errors import (
    ApiError,
    AuthorizationError,
    AuthorizationErrorCode,
    ConfigurationError,
    DecodeError,
    EcobeeError,
    PinAuthenticationStateError,
    StorageError,
    StoreNotInitializedError,
)
from .api_auth.pin import PinAuthenticationChallenge, PinAuthenticator, PinAuthenticatorState
from .api_auth.store import MemoryStore, PersistentStore, TokenStore
from .api_auth.token import TokenRecord, TokenRefreshResponse, parse_token_duration
from .api_auth.transport import AuthorizingTransport
from .thermostat.client import Client
from .thermostat.models import Selection, SelectionType

__all__: list[str] = [
    "ApiError",
    "AuthorizationError",
    "AuthorizationErrorCode",
    "AuthorizingTransport",
    "Client",
    "ConfigurationError",
    "DecodeError",
    "EcobeeError",
    "MemoryStore",
    "PersistentStore",
    "PinAuthenticationChallenge",
    "PinAuthenticationStateError",
    "PinAuthenticator",
    "PinAuthenticatorState",
    "Selection",
    "SelectionType",
    "StorageError",
    "StoreNotInitializedError",
    "TokenRecord",
    "TokenRefreshResponse",
    "TokenStore",
    "parse_token_duration",
]
