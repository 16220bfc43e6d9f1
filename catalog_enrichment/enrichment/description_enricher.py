"""
Description enrichment.

Builds `description1`, the text that is classified and embedded: the
product's own description (or a vision description of its images) followed
by an AI summary of platform metadata, Shopify product type/vendor/tags and
the source category names. Every AI step degrades to an empty string or the
untouched input; nothing here raises.
"""

import json
import logging
from typing import Any, Mapping, Optional

from catalog_enrichment.enrichment.capabilities import Describer
from catalog_enrichment.enrichment.image_fetcher import select_image_urls
from catalog_enrichment.normalization import category_names, clean_html, image_urls

logger = logging.getLogger(__name__)

SUMMARIZE_PROMPT = """Given the following product metadata in JSON format, go over each key-value pair and write a summary string that only includes the details important for a product search embedding.
Metadata: {metadata}
Only include details relevant to the product description. Output only the values, not the keys."""

TRANSLATE_PROMPT = "Translate the following text to English. Return only the translation.\n\n{text}"

DESCRIBE_IMAGES_PROMPT = ('Describe the main product details visible in the images for "{name}". '
                          "Focus on design, shape, colors and unique attributes.")


def get_product_description(product: Mapping[str, Any]) -> str:
    """description, then short description, then name; '' when all are blank."""
    for key in ("description", "shortDescription", "short_description", "name"):
        value = product.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return ""


def platform_descriptors(product: Mapping[str, Any]) -> str:
    lines = []
    if product.get("productType"):
        lines.append(f"Product Type: {product['productType']}")
    if product.get("vendor"):
        lines.append(f"Vendor: {product['vendor']}")
    tags = product.get("tags")
    if isinstance(tags, list) and tags:
        lines.append(f"Tags: {', '.join(str(t) for t in tags)}")
    return "\n".join(lines)


def _join_sections(*sections: str) -> str:
    return "\n\n".join(s.strip() for s in sections if s and s.strip())


class DescriptionEnricher:

    def __init__(self, describer: Optional[Describer], max_images: int = 3):
        self.describer = describer
        self.max_images = max_images

    async def summarize_metadata(self, metadata: Any) -> str:
        """AI summary of platform metadata ('' when unavailable or on failure)."""
        if not metadata or not isinstance(metadata, list):
            return ""
        if self.describer is None:
            return ""
        try:
            payload = json.dumps(metadata, ensure_ascii=False, default=str)
            result = await self.describer.describe(SUMMARIZE_PROMPT.format(metadata=payload))
        except Exception as e:
            logger.warning(f"⚠️ Metadata summarization failed: {e}")
            return ""
        if not result.ok:
            logger.warning(f"⚠️ Metadata summarization failed: {result.error}")
            return ""
        return result.text.strip()

    async def translate(self, text: str) -> str:
        """English translation of `text`, or `text` itself when translation is unavailable."""
        if not text or not text.strip() or self.describer is None:
            return text
        try:
            result = await self.describer.describe(TRANSLATE_PROMPT.format(text=text))
        except Exception as e:
            logger.warning(f"⚠️ Translation failed: {e}")
            return text
        if not result.ok or not result.text.strip():
            logger.warning(f"⚠️ Translation failed: {result.error or 'empty response'}")
            return text
        return result.text.strip()

    async def describe_images(self, product: Mapping[str, Any]) -> str:
        """Vision description of up to `max_images` product images ('' on failure)."""
        if self.describer is None:
            return ""
        urls = select_image_urls(image_urls(product), self.max_images)
        if not urls:
            return ""
        prompt = DESCRIBE_IMAGES_PROMPT.format(name=product.get("name") or product.get("title") or "")
        try:
            result = await self.describer.describe(prompt, urls)
        except Exception as e:
            logger.warning(f"⚠️ Image description failed: {e}")
            return ""
        if not result.ok:
            logger.warning(f"⚠️ Image description failed: {result.error}")
            return ""
        return result.text.strip()

    async def build_text_description(self, product: Mapping[str, Any]) -> str:
        """Original description + metadata summary + platform descriptors + category names."""
        original = clean_html(get_product_description(product))
        metadata_summary = await self.summarize_metadata(product.get("metadata") or product.get("meta_data"))
        return _join_sections(
            original,
            _join_lines(metadata_summary, platform_descriptors(product)),
            " ".join(category_names(product.get("categories"))),
        )

    async def build_image_description(self, product: Mapping[str, Any]) -> str:
        """Vision description + metadata summary + platform descriptors + category names."""
        vision_text = await self.describe_images(product)
        if not vision_text:
            # No usable images: fall back to the text description
            return await self.build_text_description(product)
        metadata_summary = await self.summarize_metadata(product.get("metadata") or product.get("meta_data"))
        return _join_sections(
            vision_text,
            _join_lines(metadata_summary, platform_descriptors(product)),
            "\n".join(category_names(product.get("categories"))),
        )


def _join_lines(*parts: str) -> str:
    return "\n".join(p for p in parts if p)
