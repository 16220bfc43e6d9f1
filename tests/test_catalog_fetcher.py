"""
Tests for paginated catalog fetch with retry, against fake aiohttp sessions.
"""

import asyncio
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, patch

import pytest

from catalog_enrichment.errors import CatalogFetchError, ConfigurationError, NetworkFetchError
from catalog_enrichment.http import retry_with_backoff
from catalog_enrichment.sync import (
    ShopifyCatalogFetcher,
    SourceConfig,
    WooCommerceCatalogFetcher,
    create_fetcher,
)
from configs import create_test_settings


class FakeResponse:

    def __init__(self, body: Any = None, status: int = 200, headers: Optional[Dict[str, str]] = None,
                 url: str = "https://example.com"):
        self.body = body
        self.status = status
        self.headers = headers or {}
        self.url = url

    async def json(self, content_type=None):
        return self.body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """Replays queued responses (or raises queued exceptions) in order."""

    def __init__(self, responses: List[Any]):
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def _next(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def post(self, url, **kwargs):
        return self._next("POST", url, **kwargs)

    def get(self, url, **kwargs):
        return self._next("GET", url, **kwargs)


def shopify_page(ids, has_next, cursor=None):
    return FakeResponse({"data": {"products": {
        "pageInfo": {"hasNextPage": has_next, "endCursor": cursor},
        "edges": [{"node": {
            "id": f"gid://shopify/Product/{i}",
            "title": f"Product {i}",
            "handle": f"product-{i}",
            "descriptionHtml": "<p>Nice</p>",
            "onlineStoreUrl": None,
            "totalInventory": 0,
            "priceRangeV2": {"minVariantPrice": {"amount": "10.0", "currencyCode": "USD"}},
            "images": {"edges": [{"node": {"url": f"https://cdn.example.com/{i}.jpg"}}]},
            "variants": {"edges": [{"node": {"id": f"v{i}", "price": "10.0", "availableForSale": i % 2 == 0}}]},
        }} for i in ids],
    }}})


@pytest.fixture
def shopify_config():
    return SourceConfig(platform="shopify", shop="acme", access_token="shpat_test")


@pytest.fixture
def woo_config():
    return SourceConfig(platform="woo", base_url="https://shop.example.com/", consumer_key="ck", consumer_secret="cs")


class TestShopifyFetcher:

    async def test_cursor_pagination(self, shopify_config):
        session = FakeSession([shopify_page([1, 2], True, "c1"), shopify_page([3], False)])
        fetcher = ShopifyCatalogFetcher(shopify_config, session=session, page_size=2)

        products = await fetcher.fetch_all()

        assert [p["id"] for p in products] == ["1", "2", "3"]
        assert session.calls[0]["json"]["variables"] == {"first": 2, "cursor": None}
        assert session.calls[1]["json"]["variables"] == {"first": 2, "cursor": "c1"}
        assert session.calls[0]["url"] == "https://acme.myshopify.com/admin/api/2024-10/graphql.json"
        assert session.calls[0]["headers"]["X-Shopify-Access-Token"] == "shpat_test"

    async def test_raw_product_shape(self, shopify_config):
        session = FakeSession([shopify_page([2], False)])
        product = (await ShopifyCatalogFetcher(shopify_config, session=session).fetch_all())[0]

        assert product["url"] == "https://acme.myshopify.com/products/product-2"
        assert product["image"] == "https://cdn.example.com/2.jpg"
        assert product["price"] == "10.0"
        assert product["stockStatus"] == "instock"
        assert product["platform"] == "shopify"

    async def test_out_of_stock_when_nothing_available(self, shopify_config):
        session = FakeSession([shopify_page([1], False)])
        product = (await ShopifyCatalogFetcher(shopify_config, session=session).fetch_all())[0]
        assert product["stockStatus"] == "outofstock"

    async def test_transient_errors_are_retried(self, shopify_config):
        session = FakeSession([
            asyncio.TimeoutError(),
            FakeResponse(status=503),
            shopify_page([1], False),
        ])
        fetcher = ShopifyCatalogFetcher(shopify_config, session=session, max_attempts=3, initial_delay=0.5)

        with patch("asyncio.sleep", new=AsyncMock()) as sleep:
            products = await fetcher.fetch_all()

        assert len(products) == 1
        assert [call.args[0] for call in sleep.await_args_list] == [0.5, 1.0]

    async def test_exhausted_retries_abort(self, shopify_config):
        session = FakeSession([FakeResponse(status=502)] * 3)
        fetcher = ShopifyCatalogFetcher(shopify_config, session=session, max_attempts=3)

        with patch("asyncio.sleep", new=AsyncMock()):
            with pytest.raises(NetworkFetchError):
                await fetcher.fetch_all()
        assert len(session.calls) == 3

    async def test_client_errors_are_not_retried(self, shopify_config):
        session = FakeSession([FakeResponse(status=401), shopify_page([1], False)])
        fetcher = ShopifyCatalogFetcher(shopify_config, session=session)

        with pytest.raises(CatalogFetchError) as exc_info:
            await fetcher.fetch_all()

        assert not isinstance(exc_info.value, NetworkFetchError)
        assert exc_info.value.status_code == 401
        assert len(session.calls) == 1

    async def test_graphql_errors(self, shopify_config):
        session = FakeSession([FakeResponse({"errors": [{"message": "Throttled"}]})])
        with pytest.raises(CatalogFetchError):
            await ShopifyCatalogFetcher(shopify_config, session=session).fetch_all()

    def test_missing_credentials(self):
        with pytest.raises(ConfigurationError):
            ShopifyCatalogFetcher(SourceConfig(platform="shopify", shop="acme"))


class TestWooCommerceFetcher:

    async def test_page_pagination_with_total_pages(self, woo_config):
        session = FakeSession([
            FakeResponse([{"id": 1, "type": "simple"}], headers={"x-wp-totalpages": "2"}),
            FakeResponse([{"id": 2, "type": "simple"}], headers={"x-wp-totalpages": "2"}),
        ])
        fetcher = WooCommerceCatalogFetcher(woo_config, session=session, page_size=1)

        products = await fetcher.fetch_all()

        assert [p["id"] for p in products] == [1, 2]
        assert [call["params"]["page"] for call in session.calls] == [1, 2]
        assert session.calls[0]["params"]["status"] == "publish"
        assert session.calls[0]["url"] == "https://shop.example.com/wp-json/wc/v3/products"
        assert all(p["platform"] == "woo" for p in products)

    async def test_stops_on_empty_page_without_header(self, woo_config):
        session = FakeSession([FakeResponse([{"id": 1, "type": "simple"}]), FakeResponse([])])
        products = await WooCommerceCatalogFetcher(woo_config, session=session).fetch_all()
        assert len(products) == 1
        assert len(session.calls) == 2

    async def test_variations_are_expanded(self, woo_config):
        session = FakeSession([
            FakeResponse([{"id": 9, "type": "variable", "variations": [91, 92]}], headers={"x-wp-totalpages": "1"}),
            FakeResponse([{"id": 91}, {"id": 92}], headers={"x-wp-totalpages": "1"}),
        ])
        products = await WooCommerceCatalogFetcher(woo_config, session=session).fetch_all()

        assert products[0]["variations"] == [{"id": 91}, {"id": 92}]
        assert session.calls[1]["url"].endswith("/products/9/variations")


class TestRetryHelper:

    async def test_non_network_errors_propagate_immediately(self):
        operation = AsyncMock(side_effect=ValueError("bad payload"))
        with pytest.raises(ValueError):
            await retry_with_backoff(operation, max_attempts=3)
        assert operation.await_count == 1

    async def test_connection_errors_are_wrapped_after_exhaustion(self):
        operation = AsyncMock(side_effect=ConnectionResetError("reset"))
        with patch("asyncio.sleep", new=AsyncMock()):
            with pytest.raises(NetworkFetchError):
                await retry_with_backoff(operation, max_attempts=2)
        assert operation.await_count == 2


class TestSourceConfig:

    def test_from_store_config(self):
        config = SourceConfig.from_store_config({
            "platform": "Shopify",
            "priceInMinorUnits": True,
            "credentials": {"shopifyDomain": "acme.myshopify.com", "shopifyToken": "tok"},
        })
        assert config.platform == "shopify"
        assert config.shop == "acme.myshopify.com"
        assert config.access_token == "tok"
        assert config.price_in_minor_units

    def test_create_fetcher(self, shopify_config, woo_config):
        settings = create_test_settings()
        assert isinstance(create_fetcher(shopify_config, settings), ShopifyCatalogFetcher)
        assert isinstance(create_fetcher(woo_config, settings), WooCommerceCatalogFetcher)
        with pytest.raises(ConfigurationError):
            create_fetcher(SourceConfig(platform="magento"), settings)
