"""
Shared test fixtures.

No test touches the network or really sleeps: HTTP sessions are
MagicMocks and sleep functions record their arguments instead.
"""

import sys
from pathlib import Path

# Add project root to Python path
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

import pytest
from io import BytesIO
from unittest.mock import MagicMock
from typing import Any, Optional

import requests
from openpyxl import Workbook

from config import Settings
from services.rate_limiter import CheckRunContext


# ===================
# FAKE HTTP
# ===================

def make_response(
    status_code: int = 200,
    json_data: Any = None,
    text: str = "",
    json_error: bool = False,
) -> MagicMock:
    """
    Build a fake requests.Response.

    Usage:
        session.get.return_value = make_response(200, {"item": {...}})
    """
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.text = text
    response.content = text.encode("utf-8") if text else b""
    response.headers = {"Content-Type": "application/json" if json_data is not None else "text/html"}

    if json_error or json_data is None:
        response.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        response.json.return_value = json_data
    return response


class SleepRecorder:
    """Drop-in for time.sleep that records delays."""

    def __init__(self):
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


# ===================
# FIXTURES
# ===================

@pytest.fixture
def test_settings() -> Settings:
    """Settings with deterministic endpoint rotation and no relay."""
    return Settings(
        _env_file=None,
        endpoint_selection="rotate",
        shopee_api_base_url=None,
        rate_limit_min_seconds=2.0,
        rate_limit_max_seconds=5.0,
        api_max_attempts=3,
        api_backoff_base_seconds=3.0,
        page_min_body_bytes=1000,
    )


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def mock_session() -> MagicMock:
    """
    Mock requests.Session.

    Usage:
        def test_something(mock_session):
            mock_session.get.return_value = make_response(404)
    """
    return MagicMock(spec=requests.Session)


@pytest.fixture
def run_context(test_settings, sleep_recorder) -> CheckRunContext:
    """Fresh run context whose rate limiter never really sleeps."""
    return CheckRunContext.create(test_settings, run_id="test-run", sleep=sleep_recorder)


# ===================
# WORKBOOKS
# ===================

LINK_HEADER = "Link tin bài đăng bán sản phẩm"


def build_workbook(rows: list[list[Any]], title: Optional[str] = "Sheet1") -> bytes:
    """
    Build an .xlsx in memory from a grid (first row = header).

    Usage:
        content = build_workbook([["STT", "Link"], [1, "https://shopee.vn/a-i.1.2"]])
    """
    wb = Workbook()
    ws = wb.active
    ws.title = title
    for row in rows:
        ws.append(row)
    output = BytesIO()
    wb.save(output)
    return output.getvalue()


@pytest.fixture
def listing_workbook() -> bytes:
    """
    Listing sheet shaped like the real upload:

    A: STT, B: shop name, C: link header, D/E: blank headers (status goes to E).
    """
    return build_workbook([
        ["STT", "Tên shop", LINK_HEADER, None, None],
        [1, "Shop A", "https://shopee.vn/foo-bar-i.111.222", "note", None],
        [2, "Shop B", "https://example.com/not-a-marketplace-link", None, None],
        [3, "Shop C", None, None, None],
        [4, "Shop D", "https://shopee.vn/product/333/444", None, None],
    ])


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client():
    """
    Create FastAPI test client.

    Usage:
        def test_endpoint(test_client):
            response = test_client.get("/health")
            assert response.status_code == 200
    """
    from fastapi.testclient import TestClient
    from main import app

    return TestClient(app)
