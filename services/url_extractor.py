"""
Marketplace URL identifier extraction.

Turns a product link into (shop_id, item_id, locale). Links come from
hand-maintained spreadsheets, so several URL shapes are accepted:

    https://shopee.vn/Ao-thun-nam-i.111.222           slug pair
    https://shopee.vn/shop/111/item/222               labelled pair
    https://shopee.vn/item/222/shop/111               labelled pair, reversed
    https://shopee.vn/product/111/222                 nested segments
    https://shopee.vn/universal-link?shopid=111&itemid=222
    https://shopee.vn/#/product?shop_id=111&item_id=222

A link that matches none of them is not an error; the caller falls back
to fetching the page itself.
"""

import re
from typing import Any, NamedTuple, Optional
from urllib.parse import unquote, urlsplit

import structlog

from config import settings
from models.link_check import ProductIdentifier

logger = structlog.get_logger(__name__)


# Host suffix -> locale used to build the API host (shopee.{locale}).
# Longer suffixes first so ".com.my" wins over ".my".
LOCALE_SUFFIXES: list[tuple[str, str]] = [
    (".com.my", "com.my"),
    (".co.th", "co.th"),
    (".co.id", "co.id"),
    (".com.br", "com.br"),
    (".com.mx", "com.mx"),
    (".com.co", "com.co"),
    (".vn", "vn"),
    (".sg", "sg"),
    (".ph", "ph"),
    (".tw", "tw"),
    (".cl", "cl"),
]


class MatchRule(NamedTuple):
    """URL component, pattern and the field each capture group fills."""
    name: str
    component: str  # "path", "query" or "fragment"
    pattern: re.Pattern
    fields: tuple[str, str]


_SHOP_PARAM = r"shop_?id"
_ITEM_PARAM = r"item_?id"

# Both parameters in any order, each anchored at a parameter boundary
_PARAM_PAIR = (
    rf"^(?=.*(?:^|[?&/]){_SHOP_PARAM}=(\d+))"
    rf"(?=.*(?:^|[?&/]){_ITEM_PARAM}=(\d+))"
)

# Tried in order, first match wins
MATCH_RULES: list[MatchRule] = [
    MatchRule(
        "slug_pair", "path",
        re.compile(r"(?:^|[-/.])i\.(\d+)\.(\d+)(?:$|[/?#.])"),
        ("shop_id", "item_id"),
    ),
    MatchRule(
        "labelled_shop_item", "path",
        re.compile(r"/shop/(\d+)/item/(\d+)(?:/|$)", re.IGNORECASE),
        ("shop_id", "item_id"),
    ),
    MatchRule(
        "labelled_item_shop", "path",
        re.compile(r"/item/(\d+)/shop/(\d+)(?:/|$)", re.IGNORECASE),
        ("item_id", "shop_id"),
    ),
    MatchRule(
        "nested_segments", "path",
        re.compile(r"^/[^/]+/(\d+)/(\d+)/?$"),
        ("shop_id", "item_id"),
    ),
    MatchRule(
        "query_params", "query",
        re.compile(_PARAM_PAIR, re.IGNORECASE),
        ("shop_id", "item_id"),
    ),
    MatchRule(
        "fragment_params", "fragment",
        re.compile(_PARAM_PAIR, re.IGNORECASE),
        ("shop_id", "item_id"),
    ),
]


def locale_for_host(hostname: str, default: Optional[str] = None) -> str:
    """
    Infer the marketplace locale from a host name.

    "shopee.com.my" -> "com.my", "shopee.vn" -> "vn", "example.org" -> default
    """
    default = default or settings.base_locale
    host = (hostname or "").lower().rstrip(".")
    for suffix, locale in LOCALE_SUFFIXES:
        if host.endswith(suffix):
            return locale
    return default


def extract_product_identifier(
    url: Any,
    default_locale: Optional[str] = None,
) -> Optional[ProductIdentifier]:
    """
    Parse a product URL into a ProductIdentifier.

    Args:
        url: Link cell value
        default_locale: Locale for hosts without a known suffix

    Returns:
        ProductIdentifier, or None when the URL is unparsable or no rule matches
    """
    if not isinstance(url, str) or not url.strip():
        return None

    try:
        parts = urlsplit(url.strip())
        hostname = parts.hostname
    except ValueError:
        logger.debug("url_unparsable", url=url)
        return None

    if parts.scheme.lower() not in ("http", "https") or not hostname:
        return None

    components = {
        "path": unquote(parts.path),
        "query": parts.query,
        "fragment": unquote(parts.fragment),
    }

    for rule in MATCH_RULES:
        match = rule.pattern.search(components[rule.component])
        if not match:
            continue

        values = dict(zip(rule.fields, match.groups()))
        identifier = ProductIdentifier(
            shop_id=values["shop_id"],
            item_id=values["item_id"],
            locale=locale_for_host(hostname, default_locale),
        )
        logger.debug(
            "identifier_extracted",
            rule=rule.name,
            shop_id=identifier.shop_id,
            item_id=identifier.item_id,
            locale=identifier.locale
        )
        return identifier

    logger.debug("identifier_not_found", url=url)
    return None
