"""
Marketplace relay.

Forwards GET /api/shopee/<path>?<query> to settings.relay_target_url with
browser-like headers, so a browser front end can reach the item API
without cross-origin errors. Upstream status and body pass through
unchanged.
"""

from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response
import requests
import structlog

from config import settings
from exceptions import ExternalServiceError
from services.link_checker_service import USER_AGENT

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/shopee", tags=["Relay"])

RELAY_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "*/*",
    "Accept-Language": "en-US,en;q=0.5",
    "X-Shopee-Language": "en",
    "X-Requested-With": "XMLHttpRequest",
    "X-API-SOURCE": "pc",
    "Pragma": "no-cache",
    "Cache-Control": "no-cache",
}


def build_target_url(path: str, base_url: Optional[str] = None) -> str:
    """Upstream URL for a relayed path ("api/v4/item/get" -> "https://shopee.vn/api/v4/item/get")."""
    base_url = (base_url or settings.relay_target_url).rstrip("/")
    return f"{base_url}/{path.lstrip('/')}"


@router.get("/{path:path}")
def relay(path: str, request: Request):
    """
    Relay a GET request to the marketplace host.

    Raises:
        503: Upstream unreachable (timeout, connection error)
    """
    target = build_target_url(path)
    params = list(request.query_params.multi_items())

    logger.debug("relay_request", target=target, params=len(params))

    try:
        upstream = requests.get(
            target,
            params=params,
            headers={**RELAY_HEADERS, "Referer": f"{settings.relay_target_url.rstrip('/')}/"},
            timeout=settings.relay_timeout_seconds,
        )
    except requests.RequestException as e:
        logger.error("relay_request_failed", target=target, error=str(e))
        error = ExternalServiceError(
            service="relay",
            message="Proxy error",
            details={"target": target, "original_error": str(e)}
        )
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    logger.debug("relay_response", target=target, status=upstream.status_code)
    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        media_type=upstream.headers.get("Content-Type"),
    )
