"""
Shared fixtures: a local document store under tmp_path, a lock directory,
test settings and fake AI capabilities.
"""

import json
from typing import Any, Callable, Dict, List, Optional, Sequence

import pytest

from catalog_enrichment.enrichment import AITextResult, Capabilities, Classifier, Describer, Embedder
from catalog_enrichment.models import Vocabulary
from catalog_enrichment.storage import LocalDocumentStore
from catalog_enrichment.sync import LockManager, ProgressLogSink
from configs import create_test_settings

DB_NAME = "teststore"


class FakeClassifier(Classifier):
    """Returns a fixed JSON payload; `before_reply` runs on every call."""

    def __init__(self, payload: Any = None, before_reply: Optional[Callable[[int], None]] = None):
        self.payload = payload if payload is not None else {
            "category": ["Shoes"], "type": ["Sneaker"], "softCategory": ["Red"],
        }
        self.before_reply = before_reply
        self.prompts: List[str] = []
        self.image_counts: List[int] = []

    async def complete(self, prompt: str, images: Sequence[Any] = ()) -> AITextResult:
        self.prompts.append(prompt)
        self.image_counts.append(len(images))
        if self.before_reply is not None:
            self.before_reply(len(self.prompts))
        text = self.payload if isinstance(self.payload, str) else json.dumps(self.payload, ensure_ascii=False)
        return AITextResult(text=text)


class FakeDescriber(Describer):

    def __init__(self):
        self.prompts: List[str] = []

    async def describe(self, prompt: str, image_urls: Sequence[str] = ()) -> AITextResult:
        self.prompts.append(prompt)
        if image_urls:
            return AITextResult(text=f"A product shown in {len(image_urls)} images")
        return AITextResult(text="summary")


class FakeEmbedder(Embedder):

    def __init__(self, vector: Optional[List[float]] = None):
        self.vector = vector or [0.1, 0.2, 0.3]
        self.texts: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.texts.append(text)
        return list(self.vector)


def make_product(product_id: str, **overrides) -> Dict[str, Any]:
    """Stored product that is in stock, embedded, classified and stamped."""
    doc = {
        "id": product_id,
        "name": f"Product {product_id}",
        "description": f"Description of {product_id}",
        "url": f"https://shop.example.com/products/{product_id}",
        "image": None,
        "images": [f"https://cdn.example.com/{product_id}.jpg"],
        "price": "19.99",
        "stockStatus": "instock",
        "variants": [],
        "sizes": [],
        "colors": [],
        "categories": [],
        "category": ["Shoes"],
        "type": ["Sneaker"],
        "softCategory": ["Red"],
        "description1": f"Description of {product_id}",
        "embedding": [0.5, 0.5],
        "categoryTypeProcessedAt": "2024-01-01T00:00:00Z",
        "fetchedAt": "2024-01-01T00:00:00Z",
    }
    doc.update(overrides)
    return doc


async def seed_products(store: LocalDocumentStore, db_name: str, docs: List[Dict[str, Any]]) -> None:
    for doc in docs:
        fields = dict(doc)
        await store.upsert_product(db_name, str(doc["id"]), fields)


@pytest.fixture
def db_name():
    return DB_NAME


@pytest.fixture
def store(tmp_path):
    return LocalDocumentStore(base_dir=str(tmp_path / "store"))


@pytest.fixture
def lock_manager(tmp_path):
    return LockManager(str(tmp_path / "locks"))


@pytest.fixture
def settings(tmp_path):
    return create_test_settings(
        LOCAL_STORAGE_DIR=str(tmp_path / "store"),
        LOCK_DIR=str(tmp_path / "locks"),
        STORE_CONNECT_RETRIES=1,
        INGEST_CONCURRENCY=2,
    )


@pytest.fixture
def sink(store, db_name):
    return ProgressLogSink(store, db_name, max_logs=500)


@pytest.fixture
def vocabulary():
    return Vocabulary(categories=["Shoes", "Bags"], types=["Sneaker", "Boot"], softCategories=["Red", "Blue"])


@pytest.fixture
def classifier():
    return FakeClassifier()


@pytest.fixture
def describer():
    return FakeDescriber()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def capabilities(classifier, describer, embedder):
    return Capabilities(classifier=classifier, describer=describer, embedder=embedder)
