"""
ecobee token endpoint helpers shared by the PIN workflow and the authorizing transport.

- `refresh_access_token()`: refresh grant (query parameters, empty body)
- `exchange_pin_code()`: initial `ecobeePin` grant (form-encoded body)
- `parse_token_endpoint_response()`: classify a `/token` response as success,
  vendor authorization error, or undecodable

Also hosts the redaction helpers that keep tokens, codes and PINs out of logs
and error messages.

Transport failures (`requests.exceptions.*`) are never caught here.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Any, Optional

import requests

from .errors import AuthorizationError, DecodeError
from .token import AuthorizationErrorResponse, TokenRefreshResponse

logger = logging.getLogger(__name__)

GRANT_TYPE_PIN = "ecobeePin"
GRANT_TYPE_REFRESH = "refresh_token"


# Keys whose values are never logged or echoed, compared case-insensitively.
_SECRET_KEYS = frozenset(
    {
        "access_token",
        "refresh_token",
        "accesstoken",
        "refreshtoken",
        "code",
        "ecobeepin",
        "pin",
        "authorization",
    }
)


def _redact(value: object) -> str:
    # Keep "was it set?" visible while hiding the value itself.
    if value is None:
        return "<none>"
    return "<redacted>" if str(value) else "<empty>"


def _sanitize_obj(obj: object) -> object:
    """Copy of a decoded JSON value (or request params) with secret keys redacted at any depth."""
    if isinstance(obj, dict):
        return {k: _redact(v) if str(k).lower() in _SECRET_KEYS else _sanitize_obj(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return type(obj)(_sanitize_obj(v) for v in obj)
    return obj


_TEXT_SCRUBBERS = [
    re.compile(r'("(?:access_token|refresh_token|accessToken|refreshToken|code|ecobeePin)"\s*:\s*")[^"]+(")', re.IGNORECASE),
    re.compile(r"((?:access_token|refresh_token|code)=)[^&\s\"']+()", re.IGNORECASE),
    re.compile(r"(Bearer\s+)[^\s\"']+()", re.IGNORECASE),
]


def _sanitize_text(text: str) -> str:
    """
    Best-effort scrub of token fields in free-form text (response bodies, URLs, exception messages).
    """
    if not text:
        return text
    scrubbed = text
    for pattern in _TEXT_SCRUBBERS:
        scrubbed = pattern.sub(r"\1<redacted>\2", scrubbed)
    return scrubbed


def _decode_json(resp: requests.Response, *, what: str) -> Any:
    try:
        return resp.json()
    except ValueError as e:
        raise DecodeError(
            f"{what} response was not valid JSON (HTTP {resp.status_code}): {e}. "
            f"Body (truncated, sanitized): {_sanitize_text((resp.text or '')[:800])!r}"
        ) from e


def parse_authorization_error(resp: requests.Response, *, action: str = "re-authenticate") -> AuthorizationError:
    """
    Build the AuthorizationError carried by a non-2xx `/token` or `/authorize` response.

    Raises DecodeError if the body is not a JSON object.
    """
    payload = _decode_json(resp, what="error")
    return AuthorizationErrorResponse.from_payload(payload).to_exception(action=action)


def parse_token_endpoint_response(resp: requests.Response, *, action: str = "re-authenticate") -> TokenRefreshResponse:
    """
    Classify a `/token` response.

    - 2xx with a token body      -> TokenRefreshResponse
    - non-2xx with an error body -> raises AuthorizationError (code + description)
    - anything else              -> raises DecodeError
    """
    if resp.status_code // 100 != 2:
        raise parse_authorization_error(resp, action=action)

    payload = _decode_json(resp, what="token")
    logger.debug("token response body (sanitized): %s", _sanitize_obj(payload))
    return TokenRefreshResponse.from_payload(payload)


def _post_token(
    *,
    session: requests.Session,
    token_url: str,
    params: Optional[dict] = None,
    data: Any = b"",
    timeout: Optional[float],
    action: str,
    log: logging.Logger | logging.LoggerAdapter,
) -> TokenRefreshResponse:
    log.debug(
        "token request details (sanitized): %s",
        {
            "url": token_url,
            "params": _sanitize_obj(params or {}),
            "data": _sanitize_obj(data) if isinstance(data, dict) else "<empty>",
            "timeout_seconds": timeout,
        },
    )
    start = time.perf_counter()
    resp = session.post(token_url, params=params, data=data, timeout=timeout)
    elapsed_ms = int((time.perf_counter() - start) * 1000)
    log.debug(
        "token response details: %s",
        {
            "status_code": resp.status_code,
            "elapsed_ms": elapsed_ms,
            "content_type": resp.headers.get("Content-Type"),
        },
    )
    return parse_token_endpoint_response(resp, action=action)


def refresh_access_token(
    *,
    session: requests.Session,
    token_url: str,
    app_id: str,
    refresh_token: str,
    timeout: Optional[float] = None,
    log: Optional[logging.LoggerAdapter] = None,
) -> TokenRefreshResponse:
    """
    Exchange a refresh token for a new access/refresh pair.

    ecobee expects the grant as query parameters on an empty POST.
    """
    log = log or logger
    log.info("refreshing access token")
    params = {
        "grant_type": GRANT_TYPE_REFRESH,
        "refresh_token": refresh_token,
        "client_id": app_id,
    }
    result = _post_token(
        session=session,
        token_url=token_url,
        params=params,
        data=b"",
        timeout=timeout,
        action="re-authenticate",
        log=log,
    )
    log.info("access token refreshed")
    return result


def exchange_pin_code(
    *,
    session: requests.Session,
    token_url: str,
    app_id: str,
    code: str,
    timeout: Optional[float] = None,
    log: Optional[logging.LoggerAdapter] = None,
) -> TokenRefreshResponse:
    """Redeem the authorization code of an approved PIN for the initial token pair."""
    log = log or logger
    log.info("exchanging PIN authorization code for tokens")
    data = {
        "grant_type": GRANT_TYPE_PIN,
        "code": code,
        "client_id": app_id,
    }
    result = _post_token(
        session=session,
        token_url=token_url,
        data=data,
        timeout=timeout,
        action="authenticate",
        log=log,
    )
    log.info("initial tokens acquired")
    return result


__all__ = [
    "GRANT_TYPE_PIN",
    "GRANT_TYPE_REFRESH",
    "exchange_pin_code",
    "parse_authorization_error",
    "parse_token_endpoint_response",
    "refresh_access_token",
]
