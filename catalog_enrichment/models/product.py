from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .product_variant import ProductVariant


def utc_now_iso() -> str:
    """Timestamp format used for every stored stamp."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class Product:
    """
    Canonical, store-agnostic product document.

    Field names follow the stored document layout (camelCase) so that
    to_dict() output can be written to the document store as-is.
    """
    id: str
    name: str
    description: str = ""
    shortDescription: Optional[str] = None
    url: Optional[str] = None
    image: Optional[str] = None
    images: List[str] = field(default_factory=list)
    price: float = 0.0
    compareAtPrice: float = 0.0
    stockStatus: str = "instock"
    platform: Optional[str] = None

    # Normalized variant data
    variants: List[ProductVariant] = field(default_factory=list)
    sizes: List[str] = field(default_factory=list)
    colors: List[str] = field(default_factory=list)

    # Source-side descriptors used to build the enriched description
    categories: List[str] = field(default_factory=list)
    metadata: List[Dict[str, Any]] = field(default_factory=list)
    productType: Optional[str] = None
    vendor: Optional[str] = None
    tags: List[str] = field(default_factory=list)

    # Enrichment outputs
    category: List[str] = field(default_factory=list)
    type: List[str] = field(default_factory=list)
    softCategory: List[str] = field(default_factory=list)
    description1: Optional[str] = None
    embedding: Optional[List[float]] = None
    categoryTypeProcessedAt: Optional[str] = None
    fetchedAt: str = field(default_factory=utc_now_iso)

    def basic_fields(self) -> Dict[str, Any]:
        """Fields refreshed from the source on every ingest pass."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "shortDescription": self.shortDescription,
            "url": self.url,
            "image": self.image,
            "images": list(self.images),
            "price": self.price,
            "compareAtPrice": self.compareAtPrice,
            "stockStatus": self.stockStatus,
            "platform": self.platform,
            "variants": [v.to_dict() for v in self.variants],
            "sizes": list(self.sizes),
            "colors": list(self.colors),
            "categories": list(self.categories),
            "metadata": list(self.metadata),
            "productType": self.productType,
            "vendor": self.vendor,
            "tags": list(self.tags),
            "fetchedAt": self.fetchedAt,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.basic_fields()
        data.update({
            "category": list(self.category),
            "type": list(self.type),
            "softCategory": list(self.softCategory),
            "description1": self.description1,
            "embedding": self.embedding,
            "categoryTypeProcessedAt": self.categoryTypeProcessedAt,
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Product":
        """Create from a stored document, ignoring unknown keys."""
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__ and v is not None}
        known["id"] = str(data.get("id", ""))
        known.setdefault("name", "")
        known["variants"] = [
            v if isinstance(v, ProductVariant) else ProductVariant.from_dict(v)
            for v in data.get("variants") or []
        ]
        return cls(**known)

    def __str__(self) -> str:
        return f"{self.name} ({self.id})"
