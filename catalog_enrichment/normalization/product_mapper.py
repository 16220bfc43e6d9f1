"""
Raw platform product -> canonical Product.

Runs on every ingest pass; stock status synonyms, prices and variants are
normalized here once so that nothing downstream branches on the platform.
"""

from typing import Any, Dict, List, Mapping, Optional

from catalog_enrichment.models import Product
from .variant_normalizer import VariantNormalizer, clean_html, normalize_stock_status


def image_urls(raw: Mapping[str, Any]) -> List[str]:
    """Image URLs of a raw or stored product, primary image first."""
    urls: List[str] = []
    for entry in raw.get("images") or []:
        url = (entry.get("src") or entry.get("url")) if isinstance(entry, Mapping) else entry
        if isinstance(url, str) and url and url not in urls:
            urls.append(url)
    image = raw.get("image")
    if isinstance(image, Mapping):
        image = image.get("src") or image.get("url")
    if isinstance(image, str) and image and image not in urls:
        urls.insert(0, image)
    return urls


def category_names(categories: Any) -> List[str]:
    """Source category names; WooCommerce sends objects, Shopify plain strings."""
    names = []
    for category in categories or []:
        name = category.get("name") if isinstance(category, Mapping) else category
        if isinstance(name, str) and name.strip():
            names.append(name.strip())
    return names


def _public_metadata(raw: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """WooCommerce meta_data without private (underscore-prefixed) keys."""
    entries = raw.get("metadata") or raw.get("meta_data") or []
    return [
        {"key": entry.get("key"), "value": entry.get("value")}
        for entry in entries
        if isinstance(entry, Mapping) and entry.get("key") and not str(entry["key"]).startswith("_")
    ]


def build_product(raw: Mapping[str, Any], normalizer: Optional[VariantNormalizer] = None,
                  platform: Optional[str] = None) -> Product:
    normalizer = normalizer or VariantNormalizer()
    platform = platform or raw.get("platform")
    normalized = normalizer.normalize(raw, platform=platform)

    images = image_urls(raw)
    price_source = raw.get("price")
    if price_source in (None, "") and normalized.variants:
        price = min(v.price for v in normalized.variants)
    else:
        price = normalizer.price(price_source)

    sale = normalizer.price(raw.get("sale_price"))
    if sale:
        compare_at = normalizer.price(raw.get("regular_price"))
    elif normalized.variants:
        compare_at = max(v.compareAtPrice for v in normalized.variants)
    else:
        compare_at = 0.0

    short_description = clean_html(raw.get("short_description") or raw.get("shortDescription")) or None

    return Product(
        id=str(raw.get("id", "")),
        name=raw.get("name") or raw.get("title") or "",
        description=clean_html(raw.get("description")),
        shortDescription=short_description,
        url=raw.get("url") or raw.get("permalink") or raw.get("link"),
        image=images[0] if images else None,
        images=images,
        price=price,
        compareAtPrice=compare_at,
        stockStatus=normalize_stock_status(raw.get("stockStatus", raw.get("stock_status"))),
        platform=platform,
        variants=normalized.variants,
        sizes=normalized.sizes,
        colors=normalized.colors,
        categories=category_names(raw.get("categories")),
        metadata=_public_metadata(raw),
        productType=raw.get("productType") or None,
        vendor=raw.get("vendor") or None,
        tags=[t.get("name") if isinstance(t, Mapping) else t for t in raw.get("tags") or []],
    )
