"""
Token data types for the ecobee credential lifecycle.

- `TokenRecord`: the stored access/refresh pair plus absolute expiry
- `TokenRefreshResponse`: success body of the ecobee `/token` endpoint
- `AuthorizationErrorResponse`: error body of the ecobee `/token` endpoint
- `parse_token_duration()`: `expires_in` parser (seconds or unit-suffixed strings)
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from .errors import AuthorizationError, DecodeError

# Subtracted from the server-declared lifetime so tokens are renewed before ecobee rejects them.
SAFETY_MARGIN = timedelta(seconds=15)

# Longest `expires_in` accepted; anything beyond is treated as a malformed body.
MAX_TOKEN_LIFETIME = timedelta(days=3650)

# Scopes understood by the ecobee authorize endpoint.
SCOPE_SMART_READ = "smartRead"
SCOPE_SMART_WRITE = "smartWrite"
SCOPE_EMS_WRITE = "ems"

Clock = Callable[[], datetime]

_HAS_UNIT_RE = re.compile(r"[a-zA-Zµμ]+")
_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_FRACTION_RE = re.compile(r"(\.\d+)")
_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def utc_now() -> datetime:
    """Default clock: timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def _parse_duration_string(value: str) -> timedelta:
    text = value.strip()
    if not text:
        raise DecodeError("invalid duration: empty string")
    sign = 1
    if text[0] in "+-":
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if text == "0":
        return timedelta(0)

    total = 0.0
    pos = 0
    while pos < len(text):
        m = _DURATION_PART_RE.match(text, pos)
        if m is None:
            raise DecodeError(f"invalid duration: {value!r}")
        total += float(m.group(1)) * _UNIT_SECONDS[m.group(2)]
        pos = m.end()
    if pos == 0:
        raise DecodeError(f"invalid duration: {value!r}")
    return _bounded_duration(sign * total, value)


def _bounded_duration(seconds: float, raw: Any) -> timedelta:
    # Checked before timedelta() so huge values never surface as OverflowError.
    if isinstance(seconds, float) and not math.isfinite(seconds):
        raise DecodeError(f"invalid duration: {raw!r} is out of range")
    if abs(seconds) > MAX_TOKEN_LIFETIME.total_seconds():
        raise DecodeError(f"invalid duration: {raw!r} is out of range")
    return timedelta(seconds=seconds)


def parse_token_duration(value: Any) -> timedelta:
    """
    Parse an `expires_in` value.

    - JSON numbers are whole seconds (fractions are truncated)
    - strings without a unit letter are seconds ("3599" -> 3599s)
    - strings with units are durations ("3h25m", "1m30.5s", "250ms")

    Raises DecodeError for anything else, including values beyond
    MAX_TOKEN_LIFETIME.
    """
    if isinstance(value, bool):
        raise DecodeError(f"invalid duration: {value!r}")
    if isinstance(value, float) and not math.isfinite(value):
        raise DecodeError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return _bounded_duration(int(value), value)
    if isinstance(value, str):
        text = value.strip()
        if not _HAS_UNIT_RE.search(text):
            text = text + "s"
        return _parse_duration_string(text)
    raise DecodeError(f"invalid duration: {value!r}")


def format_token_duration(value: timedelta) -> str:
    """Render a duration the way `parse_token_duration` reads it back ("1h2m3s")."""
    total = value.total_seconds()
    if total == 0:
        return "0s"
    sign = "-" if total < 0 else ""
    total = abs(total)
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    out = sign
    if hours:
        out += f"{int(hours)}h"
    if hours or minutes:
        out += f"{int(minutes)}m"
    out += f"{seconds:g}s"
    return out


def format_rfc3339(value: datetime) -> str:
    """RFC3339 timestamp in UTC with a `Z` suffix."""
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_rfc3339(value: str) -> datetime:
    """Parse an RFC3339 timestamp into an aware datetime (UTC if no offset)."""
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    # datetime only keeps microseconds; drop any extra fractional digits.
    text = _FRACTION_RE.sub(lambda m: m.group(1)[:7], text)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class TokenRefreshResponse:
    """Success body of the ecobee `/token` endpoint (both grant types)."""

    access_token: str
    refresh_token: str = ""
    expires_in: timedelta = timedelta(0)
    token_type: str = ""
    scope: str = ""

    @classmethod
    def from_payload(cls, payload: Any) -> "TokenRefreshResponse":
        """
        Build from a decoded JSON body. Raises DecodeError if the shape does not match.
        """
        if not isinstance(payload, dict):
            raise DecodeError(f"token response is not a JSON object (got {type(payload).__name__})")
        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise DecodeError(f"token response missing access_token. Keys: {sorted(payload.keys())}")
        refresh_token = payload.get("refresh_token") or ""
        if not isinstance(refresh_token, str):
            raise DecodeError("token response refresh_token is not a string")
        expires_raw = payload.get("expires_in")
        expires_in = parse_token_duration(expires_raw) if expires_raw is not None else timedelta(0)
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=expires_in,
            token_type=str(payload.get("token_type") or ""),
            scope=str(payload.get("scope") or ""),
        )


@dataclass(frozen=True)
class AuthorizationErrorResponse:
    """Error body of the ecobee `/token` endpoint."""

    error: str
    error_description: str = ""
    error_uri: str = ""

    @classmethod
    def from_payload(cls, payload: Any) -> "AuthorizationErrorResponse":
        if not isinstance(payload, dict):
            raise DecodeError(f"error response is not a JSON object (got {type(payload).__name__})")
        error = payload.get("error")
        if error is not None and not isinstance(error, str):
            raise DecodeError("error response 'error' is not a string")
        return cls(
            error=error or "",
            error_description=str(payload.get("error_description") or ""),
            error_uri=str(payload.get("error_uri") or ""),
        )

    def to_exception(self, *, action: str = "re-authenticate") -> AuthorizationError:
        return AuthorizationError(self.error, self.error_description, self.error_uri, action=action)


def generate_valid_until(expires_in: timedelta, *, now: datetime) -> datetime:
    """Absolute expiry for a freshly issued token, minus the safety margin."""
    return now + expires_in - SAFETY_MARGIN


@dataclass(frozen=True)
class TokenRecord:
    """
    Immutable snapshot of the stored credentials.

    An empty `access_token` means there is no usable credential yet.
    """

    access_token: str
    refresh_token: str
    valid_until: datetime

    @classmethod
    def empty(cls) -> "TokenRecord":
        return cls(access_token="", refresh_token="", valid_until=datetime.min.replace(tzinfo=timezone.utc))

    @classmethod
    def from_response(
        cls,
        response: TokenRefreshResponse,
        *,
        now: datetime,
        previous: Optional["TokenRecord"] = None,
    ) -> "TokenRecord":
        """
        Build the record that replaces `previous` after a grant.

        The refresh token is carried over from `previous` when ecobee did not issue a new one.
        """
        refresh_token = response.refresh_token
        if not refresh_token and previous is not None:
            refresh_token = previous.refresh_token
        return cls(
            access_token=response.access_token,
            refresh_token=refresh_token,
            valid_until=generate_valid_until(response.expires_in, now=now),
        )

    def valid_for(self, now: datetime) -> timedelta:
        return self.valid_until - now

    def to_json_dict(self) -> dict[str, str]:
        return {
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "validUntil": format_rfc3339(self.valid_until),
        }

    @classmethod
    def from_json_dict(cls, data: Any) -> "TokenRecord":
        """Inverse of `to_json_dict`. Raises ValueError/KeyError/TypeError on bad shape."""
        if not isinstance(data, dict):
            raise TypeError(f"expected JSON object, got {type(data).__name__}")
        access_token = data["accessToken"]
        refresh_token = data["refreshToken"]
        if not isinstance(access_token, str) or not isinstance(refresh_token, str):
            raise TypeError("accessToken and refreshToken must be strings")
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            valid_until=parse_rfc3339(str(data["validUntil"])),
        )


__all__ = [
    "AuthorizationErrorResponse",
    "Clock",
    "MAX_TOKEN_LIFETIME",
    "SAFETY_MARGIN",
    "SCOPE_EMS_WRITE",
    "SCOPE_SMART_READ",
    "SCOPE_SMART_WRITE",
    "TokenRecord",
    "TokenRefreshResponse",
    "format_rfc3339",
    "format_token_duration",
    "generate_valid_until",
    "parse_rfc3339",
    "parse_token_duration",
    "utc_now",
]
