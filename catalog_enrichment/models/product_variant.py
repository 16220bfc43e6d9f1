# models/product_variant.py
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

# Keys with a dedicated attribute; anything else a platform sends is kept in platformFields
_VARIANT_FIELDS = ("id", "title", "sku", "price", "compareAtPrice", "image", "size", "color", "options")


@dataclass
class ProductVariant:
    """
    Canonical variant shared by every source platform.

    Prices are already normalized floats (never negative). Platform-specific
    availability flags (Shopify availableForSale/inventoryQuantity, WooCommerce
    stock_status/stock_quantity/manage_stock, regular/sale prices) live in
    platformFields and are flattened back to the top level on serialization.
    """
    id: str
    title: str = ""
    sku: Optional[str] = None
    price: float = 0.0
    compareAtPrice: float = 0.0
    image: Optional[str] = None
    size: Optional[str] = None
    color: Optional[str] = None
    options: List[Dict[str, str]] = field(default_factory=list)   # [{"name": ..., "value": ...}]
    platformFields: Dict[str, Any] = field(default_factory=dict)

    def option_map(self) -> Dict[str, str]:
        """Case-insensitive option lookup (lowercased name -> value)"""
        return {
            str(opt.get("name", "")).lower(): opt.get("value")
            for opt in self.options
            if opt.get("name")
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for document storage"""
        data = {
            "id": self.id,
            "title": self.title,
            "sku": self.sku,
            "price": self.price,
            "compareAtPrice": self.compareAtPrice,
            "image": self.image,
            "size": self.size,
            "color": self.color,
            "options": [dict(opt) for opt in self.options],
        }
        for key, value in self.platformFields.items():
            data.setdefault(key, value)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProductVariant":
        """Create from a stored variant document"""
        known = {k: data[k] for k in _VARIANT_FIELDS if k in data and data[k] is not None}
        known["id"] = str(known.get("id", ""))
        extra = {k: v for k, v in data.items() if k not in _VARIANT_FIELDS}
        return cls(platformFields=extra, **known)
