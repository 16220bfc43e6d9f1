"""
Variant Normalizer

Maps platform-specific variant/option structures (Shopify GraphQL variants,
WooCommerce variations) into the canonical {variants, sizes, colors} shape.
Everything here is pure: no I/O, and running it again on the same raw input
yields the same result.
"""

import html
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from catalog_enrichment.models import ProductVariant

logger = logging.getLogger(__name__)

SIZE_KEYS = ("size", "eu size", "us size")
COLOR_KEYS = ("color", "colour")

IN_STOCK = "instock"
OUT_OF_STOCK = "outofstock"
# Stock values that count as purchasable
_IN_STOCK_SYNONYMS = {"instock", "in_stock", "in stock", "onbackorder", "on_backorder", "available"}

_CURRENCY_CHARS = re.compile(r"[$₪€£¥,\s]")
_NON_NUMERIC = re.compile(r"[^\d.\-]")
_LEADING_NUMBER = re.compile(r"-?\d*(?:\.\d*)?")
_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")


def parse_price(value: Any) -> float:
    """
    Normalize a price to a non-negative float.

    Strips currency symbols, thousands separators and whitespace; empty,
    invalid or negative input becomes 0.
    """
    if value is None or isinstance(value, bool):
        return 0.0

    if isinstance(value, (int, float)):
        number = float(value)
    else:
        if isinstance(value, Mapping):
            # Shopify MoneyV2 ({"amount": "19.99", "currencyCode": "USD"})
            return parse_price(value.get("amount"))
        cleaned = _NON_NUMERIC.sub("", _CURRENCY_CHARS.sub("", str(value)))
        if cleaned in ("", "-", "."):
            return 0.0
        match = _LEADING_NUMBER.match(cleaned)
        try:
            number = float(match.group(0)) if match else 0.0
        except ValueError:
            return 0.0

    if math.isnan(number) or math.isinf(number) or number < 0:
        return 0.0
    return number


def to_major_units(amount: float) -> float:
    """Convert a minor-unit amount (cents/agorot) to major units."""
    return round(amount / 100.0, 2)


def normalize_stock_status(value: Optional[str], default: str = IN_STOCK) -> str:
    """Collapse platform stock vocabularies into instock/outofstock."""
    if value is None or value == "":
        return default
    return IN_STOCK if str(value).strip().lower() in _IN_STOCK_SYNONYMS else OUT_OF_STOCK


def stock_status_of(doc: Mapping[str, Any], default: Optional[str] = None) -> Optional[str]:
    """Read the stock status of a stored document under either field spelling."""
    raw = doc.get("stockStatus", doc.get("stock_status"))
    if raw is None:
        return default
    return normalize_stock_status(raw)


def clean_html(text: Optional[str]) -> str:
    """Strip tags, unescape entities and collapse whitespace."""
    if not text:
        return ""
    stripped = _TAG.sub(" ", str(text))
    return _WHITESPACE.sub(" ", html.unescape(stripped)).strip()


def sort_sizes(sizes: Iterable[str]) -> List[str]:
    """Deduplicate; numeric order when every size parses as a number, else lexical."""
    unique = list(dict.fromkeys(s for s in sizes if s is not None and s != ""))

    def as_number(value: str) -> Optional[float]:
        try:
            number = float(str(value).strip())
        except ValueError:
            return None
        return None if math.isnan(number) else number

    numbers = [as_number(s) for s in unique]
    if unique and all(n is not None for n in numbers):
        return [s for _, s in sorted(zip(numbers, unique), key=lambda pair: pair[0])]
    return sorted(unique, key=str)


def _dedupe(values: Iterable[Optional[str]]) -> List[str]:
    return list(dict.fromkeys(v for v in values if v is not None and v != ""))


def _first_option(option_map: Mapping[str, str], keys: Iterable[str]) -> Optional[str]:
    for key in keys:
        value = option_map.get(key)
        if value:
            return value
    return None


def _image_url(image: Any) -> Optional[str]:
    if not image:
        return None
    if isinstance(image, str):
        return image
    if isinstance(image, Mapping):
        return image.get("url") or image.get("src") or image.get("originalSrc")
    return None


def _unwrap_connection(value: Any) -> List[Dict[str, Any]]:
    """Accept a plain list or a GraphQL connection ({edges:[{node}]} / {nodes:[...]})."""
    if not value:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, Mapping):
        if "nodes" in value:
            return list(value["nodes"] or [])
        return [edge.get("node", {}) for edge in value.get("edges") or []]
    return []


@dataclass
class NormalizedVariants:
    variants: List[ProductVariant] = field(default_factory=list)
    sizes: List[str] = field(default_factory=list)
    colors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "variants": [v.to_dict() for v in self.variants],
            "sizes": list(self.sizes),
            "colors": list(self.colors),
        }


class VariantNormalizer:
    """
    Canonicalizes variants for one source.

    Args:
        price_in_minor_units: source reports prices in minor units (e.g. cents);
            every parsed price is divided by 100.
    """

    def __init__(self, price_in_minor_units: bool = False):
        self.price_in_minor_units = price_in_minor_units

    def price(self, value: Any) -> float:
        amount = parse_price(value)
        return to_major_units(amount) if self.price_in_minor_units else amount

    def normalize(self, raw_product: Mapping[str, Any], platform: Optional[str] = None) -> NormalizedVariants:
        """
        Normalize a raw product's variants.

        Documents that already carry the canonical shape (variants, sizes and
        colors all present as lists) are returned unchanged.
        """
        if self._is_canonical(raw_product):
            return NormalizedVariants(
                variants=[ProductVariant.from_dict(v) for v in raw_product["variants"]],
                sizes=list(raw_product["sizes"]),
                colors=list(raw_product["colors"]),
            )

        platform = platform or self._detect_platform(raw_product)
        if platform == "woo":
            variants = self.normalize_woo_variations(raw_product)
        else:
            variants = self.normalize_shopify_variants(raw_product)

        return NormalizedVariants(
            variants=variants,
            sizes=sort_sizes(v.size for v in variants),
            colors=_dedupe(v.color for v in variants),
        )

    @staticmethod
    def _is_canonical(raw: Mapping[str, Any]) -> bool:
        return all(isinstance(raw.get(key), list) for key in ("variants", "sizes", "colors"))

    @staticmethod
    def _detect_platform(raw: Mapping[str, Any]) -> str:
        if "variations" in raw or "stock_status" in raw or "permalink" in raw:
            return "woo"
        return "shopify"

    def normalize_shopify_variants(self, raw_product: Mapping[str, Any]) -> List[ProductVariant]:
        product_id = str(raw_product.get("id", ""))
        variants = []
        for index, raw in enumerate(_unwrap_connection(raw_product.get("variants"))):
            options = [
                {"name": opt.get("name"), "value": opt.get("value")}
                for opt in raw.get("selectedOptions") or raw.get("options") or []
                if isinstance(opt, Mapping)
            ]
            variant = ProductVariant(
                id=str(raw.get("id") or f"{product_id}:{index}"),
                title=raw.get("title") or "",
                sku=raw.get("sku") or None,
                price=self.price(raw.get("price")),
                compareAtPrice=self.price(raw.get("compareAtPrice")),
                image=_image_url(raw.get("image")),
                options=options,
                platformFields={
                    "inventoryQuantity": raw.get("inventoryQuantity"),
                    "availableForSale": raw.get("availableForSale"),
                },
            )
            option_map = variant.option_map()
            variant.size = _first_option(option_map, SIZE_KEYS)
            variant.color = _first_option(option_map, COLOR_KEYS)
            variants.append(variant)
        return variants

    def normalize_woo_variations(self, raw_product: Mapping[str, Any]) -> List[ProductVariant]:
        product_name = raw_product.get("name") or raw_product.get("title") or ""
        variants = []
        for raw in raw_product.get("variations") or []:
            if not isinstance(raw, Mapping):
                # Unexpanded variation ids carry nothing to normalize
                continue
            attributes = raw.get("attributes") or []
            options = [
                {"name": attr.get("name"), "value": attr.get("option")}
                for attr in attributes
                if isinstance(attr, Mapping)
            ]
            size = self._attribute_value(options, ("size",))
            color = self._attribute_value(options, COLOR_KEYS)
            regular = self.price(raw.get("regular_price"))
            sale = self.price(raw.get("sale_price"))
            variants.append(ProductVariant(
                id=str(raw.get("id", "")),
                title=clean_html(raw.get("description")) or f"{product_name} - Variation",
                sku=raw.get("sku") or None,
                price=self.price(raw.get("price")),
                compareAtPrice=regular if sale else 0.0,
                image=_image_url(raw.get("image")),
                size=size,
                color=color,
                options=options,
                platformFields={
                    "regular_price": regular,
                    "sale_price": sale,
                    "stock_status": normalize_stock_status(raw.get("stock_status")),
                    "stock_quantity": raw.get("stock_quantity"),
                    "manage_stock": raw.get("manage_stock"),
                },
            ))
        return variants

    @staticmethod
    def _attribute_value(options: List[Dict[str, Any]], fragments: Iterable[str]) -> Optional[str]:
        """First option value whose name contains any fragment (WooCommerce uses e.g. pa_size)."""
        for opt in options:
            name = str(opt.get("name") or "").lower()
            if opt.get("value") and any(fragment in name for fragment in fragments):
                return opt["value"]
        return None
