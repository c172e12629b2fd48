"""
Pytest configuration for the `ecobee-connect` test suite.

We keep tests importing `ecobee_connect...` normally (no importlib file loaders).
To make that work in a fresh checkout without requiring an editable install,
we add the local `src` directory to `sys.path`.
"""

from __future__ import annotations

import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Optional

import pytest


def pytest_configure() -> None:
    """
    Ensure local `ecobee_connect` package is importable for tests.

    This is intentionally minimal and only affects the test runtime.
    """

    project_root = Path(__file__).resolve().parent.parent
    src = project_root / "src"

    if src.is_dir():
        # Prepend so local sources win over any globally installed package.
        sys.path.insert(0, str(src))


class FakeClock:
    """Injectable clock; advance it instead of sleeping."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def make_json_response(payload: Any, *, status_code: int = 200, url: str = "https://example.invalid/token"):
    """Build a real `requests.Response` carrying a JSON body."""
    import requests

    resp = requests.Response()
    resp.status_code = status_code
    resp.headers["Content-Type"] = "application/json"
    resp._content = json.dumps(payload).encode("utf-8")  # noqa: SLF001 - requests.Response test helper
    resp.encoding = "utf-8"
    resp.url = url
    return resp


def make_text_response(text: str, *, status_code: int = 200, url: str = "https://example.invalid/token"):
    import requests

    resp = requests.Response()
    resp.status_code = status_code
    resp.headers["Content-Type"] = "text/html"
    resp._content = text.encode("utf-8")  # noqa: SLF001
    resp.encoding = "utf-8"
    resp.url = url
    return resp


@pytest.fixture
def json_response() -> Callable[..., Any]:
    return make_json_response


@pytest.fixture
def text_response() -> Callable[..., Any]:
    return make_text_response
