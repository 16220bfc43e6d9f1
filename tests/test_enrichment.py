"""
Tests for embeddings, description building and image fetching.
"""

import asyncio
import base64
from unittest.mock import AsyncMock

import pytest

from catalog_enrichment.enrichment import (
    AITextResult,
    DescriptionEnricher,
    EmbeddingClient,
    ImageFetcher,
    get_product_description,
)
from catalog_enrichment.enrichment.image_fetcher import is_supported_image_url, select_image_urls

from conftest import FakeDescriber, FakeEmbedder


class TestEmbeddingClient:

    async def test_returns_vector(self):
        assert await EmbeddingClient(FakeEmbedder([1, 2])).embed("text") == [1.0, 2.0]

    @pytest.mark.parametrize("text", [None, "", "   "])
    async def test_blank_text_is_not_embedded(self, text):
        embedder = FakeEmbedder()
        assert await EmbeddingClient(embedder).embed(text) is None
        assert embedder.texts == []

    async def test_unavailable_embedder(self):
        assert await EmbeddingClient(None).embed("text") is None

    async def test_failure_yields_none(self):
        embedder = FakeEmbedder()
        embedder.embed = AsyncMock(side_effect=RuntimeError("quota"))
        assert await EmbeddingClient(embedder).embed("text") is None

    async def test_wrong_dimension_yields_none(self):
        assert await EmbeddingClient(FakeEmbedder([0.1, 0.2]), dimension=3).embed("text") is None


class TestDescriptionEnricher:

    def test_description_fallback_order(self):
        assert get_product_description({"description": "d", "name": "n"}) == "d"
        assert get_product_description({"description": " ", "shortDescription": "s", "name": "n"}) == "s"
        assert get_product_description({"description": None, "name": "n"}) == "n"
        assert get_product_description({}) == ""

    async def test_text_description_sections(self):
        enricher = DescriptionEnricher(FakeDescriber())
        product = {
            "description": "<p>Light &amp; fast</p>",
            "metadata": [{"key": "material", "value": "mesh"}],
            "productType": "Shoes",
            "tags": ["running", "road"],
            "categories": [{"name": "Running"}, "Sale"],
        }

        text = await enricher.build_text_description(product)

        assert text == "Light & fast\n\nsummary\nProduct Type: Shoes\nTags: running, road\n\nRunning Sale"

    async def test_without_describer_uses_original_text(self):
        text = await DescriptionEnricher(None).build_text_description(
            {"description": "Plain", "metadata": [{"key": "k", "value": "v"}]}
        )
        assert text == "Plain"

    async def test_image_description_falls_back_to_text(self):
        enricher = DescriptionEnricher(FakeDescriber())
        text = await enricher.build_image_description({"description": "Plain", "images": ["not-an-image"]})
        assert text == "Plain"

    async def test_image_description_caps_images(self):
        describer = FakeDescriber()
        enricher = DescriptionEnricher(describer, max_images=2)
        product = {"name": "Bag", "images": [f"https://cdn.example.com/{i}.png" for i in range(4)]}

        text = await enricher.build_image_description(product)

        assert text == "A product shown in 2 images"
        assert '"Bag"' in describer.prompts[0]

    async def test_translation_failure_keeps_text(self):
        describer = FakeDescriber()
        describer.describe = AsyncMock(return_value=AITextResult.failure("timeout"))
        assert await DescriptionEnricher(describer).translate("שלום") == "שלום"


class FakeImageResponse:

    def __init__(self, status=200, body=b"img", content_type="image/png"):
        self.status = status
        self.url = "https://cdn.example.com"
        self.headers = {"Content-Type": content_type}
        self.body = body

    async def read(self):
        return self.body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeImageSession:

    def __init__(self, responses):
        self.responses = responses
        self.requested = []

    def get(self, url):
        self.requested.append(url)
        return self.responses[url]


class TestImageFetcher:

    @pytest.mark.parametrize("url,supported", [
        ("https://cdn.example.com/a.jpg", True),
        ("https://cdn.example.com/a.JPEG?v=3", True),
        ("http://cdn.example.com/a.webp", True),
        ("https://cdn.example.com/a.svg", False),
        ("ftp://cdn.example.com/a.png", False),
        ("https://cdn.example.com/jpg", False),
        (None, False),
    ])
    def test_supported_urls(self, url, supported):
        assert is_supported_image_url(url) is supported

    def test_select_dedupes_and_caps(self):
        urls = ["https://x.com/a.jpg", "https://x.com/a.jpg", "bad", "https://x.com/b.png",
                "https://x.com/c.gif", "https://x.com/d.gif"]
        assert select_image_urls(urls, 3) == ["https://x.com/a.jpg", "https://x.com/b.png", "https://x.com/c.gif"]

    async def test_failed_images_are_dropped(self):
        session = FakeImageSession({
            "https://x.com/a.jpg": FakeImageResponse(body=b"abc", content_type="image/jpeg"),
            "https://x.com/b.png": FakeImageResponse(status=404),
            "https://x.com/c.png": FakeImageResponse(content_type="application/octet-stream"),
        })
        fetcher = ImageFetcher(session=session)

        images = await fetcher.fetch_images(["https://x.com/a.jpg", "https://x.com/b.png", "https://x.com/c.png",
                                             "https://x.com/d.png"])

        assert [image.url for image in images] == ["https://x.com/a.jpg", "https://x.com/c.png"]
        assert images[0].data == base64.b64encode(b"abc").decode("ascii")
        assert images[0].mime_type == "image/jpeg"
        assert images[1].mime_type == "image/png"
        assert "https://x.com/d.png" not in session.requested

    async def test_no_supported_urls(self):
        assert await ImageFetcher().fetch_images(["nope", None]) == []
