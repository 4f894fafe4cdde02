"""
API tests for the link check and relay routes.

The run service is swapped for one with a fake checker; the relay's
outbound requests.get is patched.
"""

import pytest
import requests
from io import BytesIO
from openpyxl import load_workbook
from unittest.mock import MagicMock, patch

from models.link_check import CheckOutcome
from routes.relay import build_target_url
from services.annotation_service import AnnotationService
from services.check_run_service import CheckRunService
from services.link_checker_service import LinkCheckerService
from services.rate_limiter import CheckRunContext
from tests.conftest import SleepRecorder, make_response

XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@pytest.fixture
def run_service(test_settings):
    checker = MagicMock(spec=LinkCheckerService)
    checker.check.side_effect = lambda identifier, url, context: (
        CheckOutcome.EXISTS if identifier and identifier.shop_id == "111" else CheckOutcome.NOT_EXISTS
    )
    return CheckRunService(
        config=test_settings,
        checker=checker,
        annotation_service=AnnotationService(test_settings),
        context_factory=lambda run_id: CheckRunContext.create(
            test_settings, run_id=run_id, sleep=SleepRecorder()
        ),
    )


@pytest.fixture
def client(test_client, run_service):
    with patch("routes.link_check.get_check_run_service", return_value=run_service):
        yield test_client


def upload(client, content, filename="listings.xlsx"):
    return client.post(
        "/api/link-check/runs",
        files={"file": (filename, content, XLSX)},
    )


class TestHealth:

    def test_health(self, test_client):
        response = test_client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_root_lists_endpoints(self, test_client):
        data = test_client.get("/").json()

        assert data["endpoints"]["runs"] == "/api/link-check/runs"


class TestRunsApi:

    def test_upload_returns_pending_run(self, client, listing_workbook):
        response = upload(client, listing_workbook)

        assert response.status_code == 202
        data = response.json()
        assert data["status"] == "PENDING"
        assert data["filename"] == "listings.xlsx"
        assert data["run_id"]

    def test_full_flow(self, client, listing_workbook):
        run_id = upload(client, listing_workbook).json()["run_id"]

        # Background task has run by the time the test client returns
        status = client.get(f"/api/link-check/runs/{run_id}").json()
        assert status["status"] == "COMPLETED"
        assert status["summary"]["link_rows"] == 2
        assert status["summary"]["existing"] == 1
        assert status["missing"] == 1

        download = client.get(status["download_url"])
        assert download.status_code == 200
        assert download.headers["content-type"] == XLSX
        assert 'filename="shopee_link_results.xlsx"' in download.headers["content-disposition"]
        sheet = load_workbook(BytesIO(download.content)).active
        assert sheet.cell(row=2, column=5).value == "x"

    def test_unreadable_upload(self, client):
        response = upload(client, b"not a workbook")

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "EXCEL_PARSE_ERROR"

    def test_xls_rejected(self, client, listing_workbook):
        response = upload(client, listing_workbook, filename="old.xls")

        assert response.status_code == 422

    def test_unknown_run(self, client):
        response = client.get("/api/link-check/runs/nope")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "CHECK_RUN_NOT_FOUND"

    def test_download_unknown_run(self, client):
        assert client.get("/api/link-check/runs/nope/download").status_code == 404

    def test_download_before_completion(self, client, run_service, listing_workbook):
        run = run_service.create_run(listing_workbook, "listings.xlsx")

        response = client.get(f"/api/link-check/runs/{run.run_id}/download")

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CHECK_RUN_NOT_READY"

    def test_cancel_pending_run(self, client, run_service, listing_workbook):
        run = run_service.create_run(listing_workbook, "listings.xlsx")

        response = client.post(f"/api/link-check/runs/{run.run_id}/cancel")

        assert response.status_code == 200
        assert response.json()["cancel_requested"] is True
        run_service.execute(run.run_id)
        status = client.get(f"/api/link-check/runs/{run.run_id}").json()
        assert status["status"] == "CANCELLED"
        assert status["download_url"] is None

    def test_cancel_unknown_run(self, client):
        assert client.post("/api/link-check/runs/nope/cancel").status_code == 404


class TestRelay:

    def test_build_target_url(self):
        assert build_target_url("api/v4/item/get", "https://shopee.vn/") == "https://shopee.vn/api/v4/item/get"
        assert build_target_url("/api/v2/item/get", "https://shopee.sg") == "https://shopee.sg/api/v2/item/get"

    def test_passes_through_upstream(self, test_client):
        upstream = make_response(200, text='{"item": {"itemid": 2}}')
        upstream.headers = {"Content-Type": "application/json"}

        with patch("routes.relay.requests.get", return_value=upstream) as mock_get:
            response = test_client.get("/api/shopee/api/v4/item/get?itemid=2&shopid=1")

        assert response.status_code == 200
        assert response.json() == {"item": {"itemid": 2}}
        target = mock_get.call_args[0][0]
        assert target.endswith("/api/v4/item/get")
        assert ("itemid", "2") in mock_get.call_args[1]["params"]
        assert "User-Agent" in mock_get.call_args[1]["headers"]

    def test_upstream_status_passes_through(self, test_client):
        with patch("routes.relay.requests.get", return_value=make_response(404, text="gone")):
            response = test_client.get("/api/shopee/api/v4/item/get")

        assert response.status_code == 404

    def test_upstream_failure(self, test_client):
        with patch("routes.relay.requests.get", side_effect=requests.ConnectionError("refused")):
            response = test_client.get("/api/shopee/api/v4/item/get")

        assert response.status_code == 503
        error = response.json()["error"]
        assert error["code"] == "RELAY_ERROR"
        assert error["message"] == "Proxy error"
