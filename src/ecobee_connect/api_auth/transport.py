"""
Authorizing transport for the ecobee API.

`AuthorizingTransport` is a `requests` adapter that wraps another adapter.
Before forwarding each request it makes sure the token store holds a usable
access token (running the refresh grant when the token is missing or about to
expire) and sets `Authorization: Bearer <token>`.

There is no background refresh: the check runs synchronously on the calling
thread before every request. Refresh exchanges go through a separate plain
`requests.Session`, so they never pass back through this adapter.
"""

from __future__ import annotations

import logging
import threading
from datetime import timedelta
from typing import Optional

import requests
from requests.adapters import BaseAdapter, HTTPAdapter

from .. import config as config_mod
from .auth import refresh_access_token
from .errors import ConfigurationError
from .store import TokenStore

logger = logging.getLogger(__name__)

# Refresh when the access token has less than this left.
DEFAULT_REAUTH_THRESHOLD = timedelta(seconds=15)


class AuthorizingTransport(BaseAdapter):
    """
    Adapter that injects a valid ecobee bearer token into every request.

    Mount it on a session for the API base URL:

        session.mount("https://api.ecobee.com/", AuthorizingTransport(store, app_id))

    Concurrent requests that find the token expired are serialized on an
    internal lock and re-check before refreshing, so only one refresh
    exchange runs per expiry.
    """

    def __init__(
        self,
        store: TokenStore,
        app_id: str,
        *,
        token_url: Optional[str] = None,
        transport: Optional[BaseAdapter] = None,
        refresh_session: Optional[requests.Session] = None,
        reauth_threshold: timedelta = DEFAULT_REAUTH_THRESHOLD,
        timeout: Optional[float] = None,
    ) -> None:
        super().__init__()
        if not (app_id or "").strip():
            raise ConfigurationError("ecobee application id is required")
        self.store = store
        self.app_id = app_id.strip()
        self.token_url = token_url or config_mod.get_token_url()
        self.transport = transport if transport is not None else HTTPAdapter()
        self.reauth_threshold = reauth_threshold
        self.timeout = timeout
        self._owns_refresh_session = refresh_session is None
        self._refresh_session = refresh_session if refresh_session is not None else requests.Session()
        self._reauth_lock = threading.Lock()

    def should_reauthenticate(self) -> bool:
        """True if the stored access token is empty or expires within the threshold."""
        if self.store.access_token() == "":
            return True
        return self.store.valid_for() < self.reauth_threshold

    def reauthenticate(self) -> None:
        """
        Run the refresh grant and store the result.

        Raises AuthorizationError (vendor refused), DecodeError (unreadable
        response) or the underlying requests exception; the store is left
        untouched in every failure case.
        """
        response = refresh_access_token(
            session=self._refresh_session,
            token_url=self.token_url,
            app_id=self.app_id,
            refresh_token=self.store.refresh_token(),
            timeout=self.timeout,
        )
        self.store.update(response)

    def get_access_token(self) -> str:
        """Return a valid access token, refreshing first if needed."""
        if self.should_reauthenticate():
            with self._reauth_lock:
                # Another thread may have refreshed while we waited.
                if self.should_reauthenticate():
                    self.reauthenticate()
                else:
                    logger.debug("token refreshed by a concurrent request; skipping refresh")
        return self.store.access_token()

    def send(
        self,
        request: requests.PreparedRequest,
        stream: bool = False,
        timeout=None,
        verify=True,
        cert=None,
        proxies=None,
    ) -> requests.Response:
        token = self.get_access_token()
        request.headers["Authorization"] = f"Bearer {token}"
        return self.transport.send(
            request,
            stream=stream,
            timeout=timeout,
            verify=verify,
            cert=cert,
            proxies=proxies,
        )

    def close(self) -> None:
        self.transport.close()
        if self._owns_refresh_session:
            self._refresh_session.close()


__all__ = ["AuthorizingTransport", "DEFAULT_REAUTH_THRESHOLD"]
