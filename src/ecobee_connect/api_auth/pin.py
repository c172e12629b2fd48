"""
ecobee PIN authorization workflow.

1. `request_pin()` asks ecobee for a PIN + one-time authorization code.
2. The user enters the PIN in the ecobee portal ("My Apps" → "Add Application").
3. `finalize(store)` redeems the code for the first token pair and seeds the store.

This module does not detect approval; the caller sequences steps 1-3 (the
`ecobee-register` CLI prompts and polls while ecobee reports
`authorization_pending`).
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Optional

import requests

from .. import config as config_mod
from .auth import _decode_json, _sanitize_obj, exchange_pin_code, parse_authorization_error
from .errors import (
    AuthorizationError,
    AuthorizationErrorCode,
    ConfigurationError,
    DecodeError,
    PinAuthenticationStateError,
)
from .store import TokenStore
from .token import SCOPE_SMART_WRITE, TokenRefreshResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PinAuthenticationChallenge:
    """Response of the `/authorize?response_type=ecobeePin` call."""

    pin: str
    authorization_code: str
    scope: str
    expires_in_minutes: Optional[int] = None
    interval_seconds: Optional[int] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "PinAuthenticationChallenge":
        if not isinstance(payload, dict):
            raise DecodeError(f"PIN challenge is not a JSON object (got {type(payload).__name__})")
        pin = payload.get("ecobeePin")
        code = payload.get("code")
        if not isinstance(pin, str) or not pin or not isinstance(code, str) or not code:
            raise DecodeError(f"PIN challenge missing ecobeePin/code. Keys: {sorted(payload.keys())}")

        def _optional_int(key: str) -> Optional[int]:
            value = payload.get(key)
            if value is None:
                return None
            try:
                return int(value)
            except (TypeError, ValueError) as e:
                raise DecodeError(f"PIN challenge {key!r} is not an integer: {value!r}") from e

        return cls(
            pin=pin,
            authorization_code=code,
            scope=str(payload.get("scope") or ""),
            expires_in_minutes=_optional_int("expires_in"),
            interval_seconds=_optional_int("interval"),
        )


class PinAuthenticatorState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    PIN_REQUESTED = "pin_requested"
    FINALIZED = "finalized"


class PinAuthenticator:
    """Helper for the interactive PIN authorization workflow."""

    def __init__(
        self,
        app_id: str,
        *,
        session: Optional[requests.Session] = None,
        authorize_url: Optional[str] = None,
        token_url: Optional[str] = None,
        scope: str = SCOPE_SMART_WRITE,
        timeout: Optional[float] = None,
    ) -> None:
        self.app_id = (app_id or "").strip()
        self.session = session if session is not None else requests.Session()
        self.authorize_url = authorize_url or config_mod.get_authorize_url()
        self.token_url = token_url or config_mod.get_token_url()
        self.scope = scope
        self.timeout = timeout
        self._challenge: Optional[PinAuthenticationChallenge] = None
        self._unsaved_response: Optional[TokenRefreshResponse] = None
        self._state = PinAuthenticatorState.UNINITIALIZED

    @property
    def state(self) -> PinAuthenticatorState:
        return self._state

    @property
    def challenge(self) -> Optional[PinAuthenticationChallenge]:
        return self._challenge

    @property
    def pin(self) -> Optional[str]:
        return self._challenge.pin if self._challenge is not None else None

    def request_pin(self) -> str:
        """
        Start (or restart) the workflow and return the PIN to show the user.

        Any earlier unfinalized challenge is discarded.
        """
        if not self.app_id:
            raise ConfigurationError("ecobee application id is required to request a PIN")

        params = {
            "response_type": "ecobeePin",
            "scope": self.scope,
            "client_id": self.app_id,
        }
        logger.info("requesting authorization PIN")
        resp = self.session.get(self.authorize_url, params=params, timeout=self.timeout)
        if resp.status_code // 100 != 2:
            raise parse_authorization_error(resp, action="request PIN")

        payload = _decode_json(resp, what="authorize")
        logger.debug("authorize response body (sanitized): %s", _sanitize_obj(payload))
        challenge = PinAuthenticationChallenge.from_payload(payload)

        self._challenge = challenge
        self._unsaved_response = None
        self._state = PinAuthenticatorState.PIN_REQUESTED
        return challenge.pin

    def finalize(self, store: TokenStore) -> None:
        """
        Redeem the approved PIN's authorization code and seed `store`.

        Must follow a successful `request_pin()` and the user's approval. The
        challenge is consumed whether the exchange succeeds or fails, except
        when ecobee answers `authorization_pending` or `slow_down`; those leave
        it in place so the caller can retry after the polling interval.

        The authorization code is single use. If ecobee issues tokens but
        `store.update()` fails (e.g. StorageError), the tokens are kept on the
        authenticator and the error is re-raised; calling `finalize()` again
        retries only the store write.
        """
        response = self._unsaved_response
        if response is None:
            response = self._exchange()
        else:
            logger.info("retrying store write for previously issued tokens")

        try:
            store.update(response)
        except Exception as e:
            self._unsaved_response = response
            logger.error("tokens were issued but could not be stored (%s); call finalize() again to retry", e)
            raise

        self._unsaved_response = None
        self._state = PinAuthenticatorState.FINALIZED
        logger.info("PIN authorization finalized")

    def _exchange(self) -> TokenRefreshResponse:
        challenge = self._challenge
        if not self.app_id or challenge is None or not challenge.authorization_code:
            raise PinAuthenticationStateError("finalize() called without a pending PIN challenge; call request_pin() first")

        try:
            response = exchange_pin_code(
                session=self.session,
                token_url=self.token_url,
                app_id=self.app_id,
                code=challenge.authorization_code,
                timeout=self.timeout,
            )
        except Exception as e:
            if not _is_retryable(e):
                self._challenge = None
            raise

        self._challenge = None
        return response


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, AuthorizationError) and exc.error in (
        AuthorizationErrorCode.AUTHORIZATION_PENDING,
        AuthorizationErrorCode.SLOW_DOWN,
    )


__all__ = ["PinAuthenticationChallenge", "PinAuthenticator", "PinAuthenticatorState"]
