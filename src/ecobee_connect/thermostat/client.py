"""
ecobee API client.

`Client` is a `requests.Session` with an `AuthorizingTransport` mounted on the
API base URL, so every call it makes carries a valid bearer token. The data
methods are thin GET + JSON-decode wrappers.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Optional

import requests
from requests.adapters import BaseAdapter

from .. import config as config_mod
from ..api_auth.auth import _sanitize_text
from ..api_auth.errors import ApiError, DecodeError
from ..api_auth.store import TokenStore
from ..api_auth.transport import DEFAULT_REAUTH_THRESHOLD, AuthorizingTransport
from .models import Page, Selection, SelectionType, Thermostat, ThermostatSummary, assemble_select_url

logger = logging.getLogger(__name__)

_JSON_HEADERS = {"Content-Type": "application/json; charset=utf-8"}


class Client(requests.Session):
    """
    Session for the ecobee API.

    Args:
        app_id: Application key from the ecobee developer portal.
        store: Token store seeded by the PIN workflow.
        api_base_url: Override for ECOBEE_API_BASE_URL.
        reauth_threshold: Refresh when the token has less than this left.
        timeout: Per-request timeout (seconds) for data and refresh calls.
        transport: Adapter that actually sends requests (default HTTPAdapter).
    """

    def __init__(
        self,
        app_id: str,
        store: TokenStore,
        *,
        api_base_url: Optional[str] = None,
        reauth_threshold: timedelta = DEFAULT_REAUTH_THRESHOLD,
        timeout: Optional[float] = None,
        transport: Optional[BaseAdapter] = None,
        refresh_session: Optional[requests.Session] = None,
    ) -> None:
        super().__init__()
        self.api_base_url = (api_base_url or config_mod.get_api_base_url()).rstrip("/")
        self.timeout = timeout
        self.authorizing_transport = AuthorizingTransport(
            store,
            app_id,
            token_url=config_mod.get_token_url(self.api_base_url),
            transport=transport,
            refresh_session=refresh_session,
            reauth_threshold=reauth_threshold,
            timeout=timeout,
        )
        self.mount(self.api_base_url + "/", self.authorizing_transport)

    def get_access_token(self) -> str:
        """Return a valid bearer token (refreshing if needed) without making an API call."""
        return self.authorizing_transport.get_access_token()

    def _get_json(self, url: str) -> Any:
        resp = self.get(url, headers=_JSON_HEADERS, timeout=self.timeout)
        payload: Any = None
        try:
            payload = resp.json()
        except ValueError as e:
            if resp.status_code // 100 == 2:
                raise DecodeError(
                    f"GET {url.split('?')[0]} response was not valid JSON: {e}. "
                    f"Body (truncated, sanitized): {_sanitize_text((resp.text or '')[:800])!r}"
                ) from e

        if resp.status_code // 100 != 2:
            status = payload.get("status") if isinstance(payload, dict) else None
            raise ApiError(
                f"non-ok status response from API: HTTP {resp.status_code}"
                + (f" ({status.get('message')})" if isinstance(status, dict) and status.get("message") else ""),
                status_code=resp.status_code,
                status=status if isinstance(status, dict) else None,
            )
        if not isinstance(payload, dict):
            raise DecodeError(f"GET {url.split('?')[0]} returned {type(payload).__name__}, expected object")
        return payload

    def thermostat_summary(self) -> ThermostatSummary:
        """
        Revision numbers for all registered thermostats. A light-weight polling call.
        """
        url = assemble_select_url(
            config_mod.get_thermostat_summary_url(self.api_base_url),
            Selection(selection_type=SelectionType.REGISTERED, include_alerts=True),
        )
        return ThermostatSummary.from_payload(self._get_json(url))

    def thermostats(self, selection: Selection) -> list[Thermostat]:
        """All thermostats matching `selection` (first page only)."""
        url = assemble_select_url(config_mod.get_thermostat_url(self.api_base_url), selection)
        payload = self._get_json(url)
        page = Page.from_payload(payload.get("page"))
        if page.has_more:
            # TODO: follow pagination (ecobee pages at 25 thermostats).
            logger.warning("skipped paged responses (page %s of %s)", page.page, page.total_pages)
        return [Thermostat.from_payload(t) for t in payload.get("thermostatList") or [] if isinstance(t, dict)]


__all__ = ["Client"]
