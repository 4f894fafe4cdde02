"""
Product link liveness checker.

Order of evidence for one link:
1. Item API (three equivalent endpoint shapes, rate limited, retried
   with exponential backoff).
2. Product page: HEAD, then GET with "not found" / "available" phrase
   markers, then body size as weak evidence.

Every per-link failure resolves to a CheckOutcome. Only a user
cancellation (RunCancelledError) leaves this module.
"""

import random
import time
from typing import Any, Callable, Optional

import requests
import structlog

from config import Settings, settings as default_settings
from models.link_check import (
    ApiAttempt,
    ApiCheckResult,
    CheckOutcome,
    ProductIdentifier,
)
from services.rate_limiter import CheckRunContext
from services.url_extractor import extract_product_identifier

logger = structlog.get_logger(__name__)


USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)

API_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "*/*",
    "Accept-Language": "en-US,en;q=0.5",
    "X-Shopee-Language": "en",
    "X-Requested-With": "XMLHttpRequest",
    "X-API-SOURCE": "pc",
    "Cache-Control": "no-cache",
}

PAGE_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

# Checked before AVAILABLE_MARKERS: negative evidence wins
NOT_FOUND_MARKERS = (
    "product not found",
    "this product does not exist",
    "product doesn't exist",
    "sản phẩm không tồn tại",
    "không tìm thấy sản phẩm",
    "sản phẩm này không tồn tại",
    "page not found",
    "trang không tồn tại",
)

AVAILABLE_MARKERS = (
    "add to cart",
    "buy now",
    "thêm vào giỏ hàng",
    "mua ngay",
)

TERMINAL_NOT_FOUND_STATUSES = {404, 410}


# ===================
# ENDPOINTS
# ===================

EndpointBuilder = Callable[[str, ProductIdentifier], str]

# (candidate_count, attempt_index, last_index) -> index
EndpointSelector = Callable[[int, int, Optional[int]], int]


def build_v4_item_url(base_url: str, identifier: ProductIdentifier) -> str:
    return f"{base_url}/api/v4/item/get?itemid={identifier.item_id}&shopid={identifier.shop_id}"


def build_v2_item_url(base_url: str, identifier: ProductIdentifier) -> str:
    return f"{base_url}/api/v2/item/get?itemid={identifier.item_id}&shopid={identifier.shop_id}"


def build_v4_pdp_url(base_url: str, identifier: ProductIdentifier) -> str:
    return f"{base_url}/api/v4/pdp/get_pc?item_id={identifier.item_id}&shop_id={identifier.shop_id}"


ENDPOINT_BUILDERS: list[EndpointBuilder] = [
    build_v4_item_url,
    build_v2_item_url,
    build_v4_pdp_url,
]


def random_endpoint_selector(count: int, attempt: int, last_index: Optional[int]) -> int:
    """Pick a random endpoint, avoiding the one that just failed when possible."""
    choices = [i for i in range(count) if i != last_index] or list(range(count))
    return random.choice(choices)


def rotating_endpoint_selector(count: int, attempt: int, last_index: Optional[int]) -> int:
    """Deterministic rotation: attempt 0 -> endpoint 0, attempt 1 -> endpoint 1, ..."""
    return attempt % count


ENDPOINT_SELECTORS: dict[str, EndpointSelector] = {
    "random": random_endpoint_selector,
    "rotate": rotating_endpoint_selector,
}


def backoff_delays(max_attempts: int, base_seconds: float) -> list[float]:
    """
    Sleep applied after each failed attempt except the last.

    backoff_delays(3, 3.0) -> [3.0, 6.0]
    """
    return [base_seconds * (2 ** i) for i in range(max(max_attempts - 1, 0))]


# ===================
# RESPONSE CLASSIFICATION
# ===================

def find_item_record(payload: Any) -> Optional[dict]:
    """Item record from either response layout ({"item": ...} or {"data": {"item": ...}})."""
    if not isinstance(payload, dict):
        return None

    item = payload.get("item")
    if isinstance(item, dict):
        return item

    data = payload.get("data")
    if isinstance(data, dict) and isinstance(data.get("item"), dict):
        return data["item"]

    return None


def _first_present(item: dict, *names: str) -> tuple[bool, Any]:
    for name in names:
        if name in item and item[name] is not None:
            return True, item[name]
    return False, None


def item_exists(item: dict) -> bool:
    """
    Existence predicate for an item record.

    Lenient: a missing field never fails the check, since the endpoint
    versions disagree on which fields they return. The item is active when
    either status flag is 1.
    """
    has_id, item_id = _first_present(item, "itemid", "item_id")
    if has_id and (item_id == "" or item_id == 0 or item_id == "0"):
        return False

    if item.get("is_deleted"):
        return False

    # v4 endpoints send item_status as a label ("normal") next to status: 1
    statuses = [item[name] for name in ("item_status", "status") if item.get(name) is not None]
    if statuses and 1 not in statuses:
        return False

    has_stock, stock = _first_present(item, "stock", "normal_stock")
    if has_stock:
        try:
            if float(stock) == 0:
                return False
        except (TypeError, ValueError):
            pass

    return True


def classify_api_response(response: requests.Response) -> tuple[Optional[CheckOutcome], str]:
    """
    Classify an item API response.

    Returns:
        (outcome, reason); outcome is None when the attempt should be retried
    """
    if response.status_code in TERMINAL_NOT_FOUND_STATUSES:
        return CheckOutcome.NOT_EXISTS, f"http_{response.status_code}"

    if response.status_code != 200:
        return None, f"http_{response.status_code}"

    try:
        payload = response.json()
    except ValueError:
        return None, "invalid_json"

    item = find_item_record(payload)
    if item is None:
        return None, "no_item_record"

    if item_exists(item):
        return CheckOutcome.EXISTS, "item_live"
    return CheckOutcome.NOT_EXISTS, "item_unavailable"


def classify_page_content(text: str, min_body_bytes: int) -> CheckOutcome:
    """Decide from page content: not-found markers, then available markers, then size."""
    lowered = (text or "").casefold()

    if any(marker in lowered for marker in NOT_FOUND_MARKERS):
        return CheckOutcome.NOT_EXISTS

    if any(marker in lowered for marker in AVAILABLE_MARKERS):
        return CheckOutcome.EXISTS

    if len((text or "").encode("utf-8")) >= min_body_bytes:
        return CheckOutcome.EXISTS

    return CheckOutcome.NOT_EXISTS


# ===================
# SERVICE
# ===================

class LinkCheckerService:
    """Checks whether marketplace product links are still live."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        config: Optional[Settings] = None,
        endpoint_selector: Optional[EndpointSelector] = None,
        endpoint_builders: Optional[list[EndpointBuilder]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or default_settings
        if session is None:
            session = requests.Session()
            session.max_redirects = self.config.page_max_redirects
        self.session = session
        self.endpoint_builders = endpoint_builders or ENDPOINT_BUILDERS
        self.select_endpoint = endpoint_selector or ENDPOINT_SELECTORS[self.config.endpoint_selection]
        self.max_attempts = self.config.api_max_attempts
        self._sleep = sleep

    def api_base_url(self, identifier: ProductIdentifier) -> str:
        """Relay/override base when configured, else the locale's marketplace host."""
        if self.config.shopee_api_base_url:
            return self.config.shopee_api_base_url.rstrip("/")
        return f"https://shopee.{identifier.locale}"

    def check_link(self, raw_url: str, context: CheckRunContext) -> CheckOutcome:
        """Extract the identifier from raw_url and run the full check."""
        identifier = extract_product_identifier(raw_url, self.config.base_locale)
        return self.check(identifier, raw_url, context)

    def check(
        self,
        identifier: Optional[ProductIdentifier],
        raw_url: str,
        context: CheckRunContext,
    ) -> CheckOutcome:
        """
        Full liveness check for one link.

        A duplicate identifier returns INCONCLUSIVE without any request and
        without the page fallback; the caller leaves its status blank.

        Args:
            identifier: Parsed identifier, or None if the URL had none
            raw_url: Link as found in the spreadsheet
            context: Run-scoped limiter, dedup set and cancellation token

        Returns:
            CheckOutcome

        Raises:
            RunCancelledError: If the run was cancelled
        """
        if identifier is not None:
            result = self.check_api(identifier, context)
            if result.skipped_duplicate or result.outcome != CheckOutcome.INCONCLUSIVE:
                return result.outcome

            logger.info(
                "api_check_inconclusive",
                key=identifier.key,
                attempts=result.attempt_count,
                fallback="page"
            )

        return self.check_page(raw_url, context)

    def check_api(self, identifier: ProductIdentifier, context: CheckRunContext) -> ApiCheckResult:
        """
        Check an identifier against the item API.

        Bounded loop of max_attempts. Each attempt waits on the rate limiter,
        picks an endpoint, and classifies the response. Definitive answers
        (item record, 404/410) return immediately; anything else is retried
        after the backoff delay. The key is marked in dedup once resolved or
        exhausted.
        """
        key = identifier.key
        if context.dedup.contains(key):
            logger.info("identifier_already_checked", key=key)
            return ApiCheckResult(CheckOutcome.INCONCLUSIVE, [], skipped_duplicate=True)

        base_url = self.api_base_url(identifier)
        headers = {**API_HEADERS, "Referer": f"https://shopee.{identifier.locale}/"}
        delays = backoff_delays(self.max_attempts, self.config.api_backoff_base_seconds)
        attempts: list[ApiAttempt] = []
        last_index: Optional[int] = None

        for attempt in range(self.max_attempts):
            context.cancel_token.raise_if_cancelled()
            context.limiter.wait()
            context.cancel_token.raise_if_cancelled()

            index = self.select_endpoint(len(self.endpoint_builders), attempt, last_index)
            last_index = index
            url = self.endpoint_builders[index](base_url, identifier)
            record = ApiAttempt(attempt=attempt + 1, endpoint=url)
            attempts.append(record)

            try:
                response = self.session.get(
                    url,
                    headers=headers,
                    timeout=self.config.api_timeout_seconds,
                )
            except (requests.RequestException, ValueError) as e:
                record.error = f"{type(e).__name__}: {e}"
            else:
                record.status_code = response.status_code
                outcome, reason = classify_api_response(response)
                record.outcome = outcome
                if outcome is not None:
                    context.dedup.mark(key)
                    logger.info(
                        "api_check_resolved",
                        key=key,
                        outcome=outcome.value,
                        reason=reason,
                        attempt=attempt + 1
                    )
                    return ApiCheckResult(outcome, attempts)
                record.error = reason

            logger.warning(
                "api_attempt_failed",
                key=key,
                attempt=attempt + 1,
                max_attempts=self.max_attempts,
                endpoint=url,
                error=record.error
            )

            if attempt < len(delays):
                self._sleep(delays[attempt])

        # Exhausted: mark anyway so the same identifier is not retried this run
        context.dedup.mark(key)
        return ApiCheckResult(CheckOutcome.INCONCLUSIVE, attempts)

    def check_page(self, raw_url: str, context: CheckRunContext) -> CheckOutcome:
        """
        Fallback check against the product page itself.

        Fail-closed: any network error is NOT_EXISTS.
        """
        timeout = self.config.page_timeout_seconds

        context.cancel_token.raise_if_cancelled()
        try:
            head = self.session.head(
                raw_url,
                headers=PAGE_HEADERS,
                timeout=timeout,
                allow_redirects=True,
            )
            if 200 <= head.status_code < 400:
                logger.info("page_check_resolved", url=raw_url, method="HEAD", status=head.status_code)
                return CheckOutcome.EXISTS
            logger.debug("page_head_rejected", url=raw_url, status=head.status_code)
        except (requests.RequestException, ValueError) as e:
            logger.debug("page_head_failed", url=raw_url, error=str(e))

        context.cancel_token.raise_if_cancelled()
        try:
            response = self.session.get(
                raw_url,
                headers=PAGE_HEADERS,
                timeout=timeout,
                allow_redirects=True,
            )
        except (requests.RequestException, ValueError) as e:
            logger.warning("page_fetch_failed", url=raw_url, error=str(e))
            return CheckOutcome.NOT_EXISTS

        if response.status_code >= 400:
            logger.info("page_check_resolved", url=raw_url, method="GET", status=response.status_code)
            return CheckOutcome.NOT_EXISTS

        outcome = classify_page_content(response.text, self.config.page_min_body_bytes)
        logger.info(
            "page_check_resolved",
            url=raw_url,
            method="GET",
            status=response.status_code,
            outcome=outcome.value
        )
        return outcome


# Singleton instance
_link_checker_service: Optional[LinkCheckerService] = None


def get_link_checker_service() -> LinkCheckerService:
    """Get or create LinkCheckerService instance."""
    global _link_checker_service
    if _link_checker_service is None:
        _link_checker_service = LinkCheckerService()
    return _link_checker_service
