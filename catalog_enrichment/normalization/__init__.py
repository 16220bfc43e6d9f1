from .variant_normalizer import (
    VariantNormalizer,
    NormalizedVariants,
    parse_price,
    to_major_units,
    normalize_stock_status,
    stock_status_of,
    clean_html,
    sort_sizes,
    IN_STOCK,
    OUT_OF_STOCK,
)

__all__ = [
    "VariantNormalizer",
    "NormalizedVariants",
    "parse_price",
    "to_major_units",
    "normalize_stock_status",
    "stock_status_of",
    "clean_html",
    "sort_sizes",
    "IN_STOCK",
    "OUT_OF_STOCK",
]

from .product_mapper import build_product, category_names, image_urls

__all__ += ["build_product", "category_names", "image_urls"]
