"""
Catalog Fetcher

Paginates a source platform into a flat list of raw product dicts:

- ShopifyCatalogFetcher: Admin GraphQL, cursor pagination (hasNextPage/endCursor)
- WooCommerceCatalogFetcher: REST v3, page pagination bounded by x-wp-totalpages

Every request goes through retry_with_backoff; once the attempts run out the
fetch raises and the run is aborted.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp

from catalog_enrichment.errors import CatalogFetchError, ConfigurationError
from catalog_enrichment.http import check_response, client_timeout, read_json, retry_with_backoff

logger = logging.getLogger(__name__)

PRODUCTS_QUERY = """
query Products($first: Int!, $cursor: String) {
  products(first: $first, after: $cursor, query: "status:active") {
    pageInfo { hasNextPage endCursor }
    edges {
      node {
        id
        title
        handle
        descriptionHtml
        onlineStoreUrl
        productType
        vendor
        tags
        totalInventory
        priceRangeV2 { minVariantPrice { amount currencyCode } }
        images(first: 5) { edges { node { url altText } } }
        variants(first: 100) {
          edges {
            node {
              id
              title
              sku
              price
              compareAtPrice
              availableForSale
              inventoryQuantity
              image { url }
              selectedOptions { name value }
            }
          }
        }
      }
    }
  }
}
"""


@dataclass
class SourceConfig:
    """Where and how to fetch a catalog."""
    platform: str                                   # "shopify" or "woo"
    shop: Optional[str] = None                      # Shopify shop name or domain
    access_token: Optional[str] = None              # Shopify Admin API token
    base_url: Optional[str] = None                  # WooCommerce site URL
    consumer_key: Optional[str] = None
    consumer_secret: Optional[str] = None
    price_in_minor_units: bool = False

    @classmethod
    def from_store_config(cls, config: Dict[str, Any]) -> "SourceConfig":
        """Build from the credentials section of a tenant document."""
        credentials = config.get("credentials") or {}
        platform = (config.get("platform") or credentials.get("platform") or "").lower()
        return cls(
            platform=platform,
            shop=credentials.get("shopifyDomain") or credentials.get("shop"),
            access_token=credentials.get("shopifyToken") or credentials.get("access_token"),
            base_url=credentials.get("wooUrl") or credentials.get("base_url"),
            consumer_key=credentials.get("wooKey") or credentials.get("consumer_key"),
            consumer_secret=credentials.get("wooSecret") or credentials.get("consumer_secret"),
            price_in_minor_units=bool(config.get("priceInMinorUnits", False)),
        )


class CatalogFetcher(ABC):
    """Fetches one platform's full catalog."""

    source = "catalog"

    def __init__(self, config: SourceConfig, max_attempts: int = 3, initial_delay: float = 1.0,
                 timeout: float = 30, session: Optional[aiohttp.ClientSession] = None):
        self.config = config
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.timeout = timeout
        self._session = session

    async def fetch_all(self) -> List[Dict[str, Any]]:
        if self._session is not None:
            return await self._fetch_all(self._session)
        async with aiohttp.ClientSession(timeout=client_timeout(self.timeout)) as session:
            return await self._fetch_all(session)

    @abstractmethod
    async def _fetch_all(self, session: aiohttp.ClientSession) -> List[Dict[str, Any]]:
        pass


class ShopifyCatalogFetcher(CatalogFetcher):

    source = "shopify"

    def __init__(self, config: SourceConfig, api_version: str = "2024-10", page_size: int = 50, **kwargs):
        super().__init__(config, **kwargs)
        if not config.shop or not config.access_token:
            raise ConfigurationError("Shopify fetch needs a shop and an access token")
        self.api_version = api_version
        self.page_size = page_size

    @property
    def shop_domain(self) -> str:
        shop = self.config.shop.replace("https://", "").replace("http://", "").strip("/")
        return shop if "." in shop else f"{shop}.myshopify.com"

    @property
    def endpoint(self) -> str:
        return f"https://{self.shop_domain}/admin/api/{self.api_version}/graphql.json"

    async def fetch_page(self, session: aiohttp.ClientSession, cursor: Optional[str]) -> Dict[str, Any]:
        """One GraphQL page: {"products": [...], "has_next_page": bool, "cursor": str|None}"""
        headers = {
            "X-Shopify-Access-Token": self.config.access_token,
            "Content-Type": "application/json",
        }
        payload = {"query": PRODUCTS_QUERY, "variables": {"first": self.page_size, "cursor": cursor}}

        async def request():
            async with session.post(self.endpoint, json=payload, headers=headers) as response:
                check_response(response, source=self.source)
                return await read_json(response)

        body = await retry_with_backoff(
            request, max_attempts=self.max_attempts, initial_delay=self.initial_delay,
            description="Shopify products page",
        )
        if body.get("errors"):
            raise CatalogFetchError(f"GraphQL errors: {body['errors']}", source=self.source)

        connection = (body.get("data") or {}).get("products")
        if connection is None:
            raise CatalogFetchError("GraphQL response has no products connection", source=self.source)

        page_info = connection.get("pageInfo") or {}
        return {
            "products": [edge["node"] for edge in connection.get("edges") or []],
            "has_next_page": bool(page_info.get("hasNextPage")),
            "cursor": page_info.get("endCursor"),
        }

    async def _fetch_all(self, session: aiohttp.ClientSession) -> List[Dict[str, Any]]:
        products: List[Dict[str, Any]] = []
        cursor = None
        page = 0
        while True:
            page += 1
            result = await self.fetch_page(session, cursor)
            products.extend(self.to_raw_product(node) for node in result["products"])
            logger.info(f"📦 Shopify page {page}: {len(result['products'])} products (total {len(products)})")
            if not result["has_next_page"] or not result["cursor"]:
                break
            cursor = result["cursor"]
        return products

    def to_raw_product(self, node: Dict[str, Any]) -> Dict[str, Any]:
        """Flatten a GraphQL product node into the raw shape the pipeline consumes."""
        images = [edge["node"]["url"] for edge in (node.get("images") or {}).get("edges") or [] if edge.get("node")]
        variants = [edge["node"] for edge in (node.get("variants") or {}).get("edges") or [] if edge.get("node")]
        in_stock = (node.get("totalInventory") or 0) > 0 or any(v.get("availableForSale") for v in variants)
        min_price = ((node.get("priceRangeV2") or {}).get("minVariantPrice") or {}).get("amount")
        return {
            "id": str(node.get("id", "")).split("/")[-1],
            "name": node.get("title") or "",
            "description": node.get("descriptionHtml") or "",
            "url": node.get("onlineStoreUrl") or f"https://{self.shop_domain}/products/{node.get('handle')}",
            "images": images,
            "image": images[0] if images else None,
            "price": min_price if min_price is not None else (variants[0].get("price") if variants else None),
            "stockStatus": "instock" if in_stock else "outofstock",
            "productType": node.get("productType") or None,
            "vendor": node.get("vendor") or None,
            "tags": list(node.get("tags") or []),
            "variants": variants,
            "platform": self.source,
        }


class WooCommerceCatalogFetcher(CatalogFetcher):

    source = "woo"

    def __init__(self, config: SourceConfig, page_size: int = 100, **kwargs):
        super().__init__(config, **kwargs)
        if not config.base_url or not config.consumer_key or not config.consumer_secret:
            raise ConfigurationError("WooCommerce fetch needs a site URL, consumer key and consumer secret")
        self.page_size = page_size

    def _url(self, path: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/wp-json/wc/v3/{path}"

    async def fetch_page(self, session: aiohttp.ClientSession, path: str, page: int,
                         params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """One REST page: {"items": [...], "total_pages": int|None}"""
        query = {"per_page": self.page_size, "page": page, **(params or {})}
        auth = aiohttp.BasicAuth(self.config.consumer_key, self.config.consumer_secret)

        async def request():
            async with session.get(self._url(path), params=query, auth=auth) as response:
                check_response(response, source=self.source)
                total_pages = response.headers.get("x-wp-totalpages")
                return await read_json(response), total_pages

        items, total_pages = await retry_with_backoff(
            request, max_attempts=self.max_attempts, initial_delay=self.initial_delay,
            description=f"WooCommerce {path} page {page}",
        )
        if not isinstance(items, list):
            raise CatalogFetchError(f"Unexpected response for {path}: {str(items)[:200]}", source=self.source)
        return {
            "items": items,
            "total_pages": int(total_pages) if total_pages and str(total_pages).isdigit() else None,
        }

    async def fetch_paginated(self, session: aiohttp.ClientSession, path: str,
                              params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        page = 1
        while True:
            result = await self.fetch_page(session, path, page, params)
            if not result["items"]:
                break
            items.extend(result["items"])
            if result["total_pages"] is not None and page >= result["total_pages"]:
                break
            page += 1
        return items

    async def _fetch_all(self, session: aiohttp.ClientSession) -> List[Dict[str, Any]]:
        products = await self.fetch_paginated(session, "products", {"status": "publish"})
        logger.info(f"📦 WooCommerce: fetched {len(products)} products")

        for product in products:
            if product.get("type") == "variable" and product.get("variations"):
                product["variations"] = await self.fetch_paginated(session, f"products/{product['id']}/variations")
                logger.debug(f"Fetched {len(product['variations'])} variations for {product.get('name')}")
            product["platform"] = self.source
        return products


def create_fetcher(config: SourceConfig, settings) -> CatalogFetcher:
    """Fetcher for `config.platform`, tuned from settings."""
    common = {
        "max_attempts": settings.FETCH_RETRY_ATTEMPTS,
        "initial_delay": settings.FETCH_INITIAL_DELAY,
        "timeout": settings.HTTP_TIMEOUT,
    }
    if config.platform == "shopify":
        return ShopifyCatalogFetcher(config, api_version=settings.SHOPIFY_API_VERSION,
                                     page_size=settings.SHOPIFY_PAGE_SIZE, **common)
    if config.platform in ("woo", "woocommerce"):
        return WooCommerceCatalogFetcher(config, page_size=settings.WOO_PAGE_SIZE, **common)
    raise ConfigurationError(f"Unsupported platform: {config.platform!r}")
