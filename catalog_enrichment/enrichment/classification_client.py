"""
Classification Client

Constrained taxonomy classification on top of a generative Classifier.

The model is asked for a JSON object with exactly three array keys drawn from
the tenant vocabularies. Whatever comes back is parsed leniently (code fences
stripped, first {...} span) and every label is intersected with its
vocabulary, so a label the tenant did not define is never returned. Any
failure degrades to an empty classification; `classify` never raises.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from catalog_enrichment.enrichment.capabilities import Classifier, EncodedImage
from catalog_enrichment.enrichment.image_fetcher import ImageFetcher
from catalog_enrichment.models import Classification, ProductVariant, Vocabulary

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL | re.IGNORECASE)

PROMPT_TEMPLATE = """You are an AI e-commerce assistant. Classify the product based on its description, images, and variant information.
Follow these rules:
1. Category MUST be an array of one or more categories from this EXACT list: [{categories}].
2. If NO category from the list is a suitable match, you MUST return an empty array for the "category" field.
3. Type MUST be an array from: [{types}]. If no match, return an empty array.
4. Soft Category MUST be an array from: [{soft_categories}]. If no match, return an empty array.
5. If a soft category is a color, use the images and ALL available variants to pick the dominant colors.
6. Use the product images and variant information (colors, sizes, options) to improve accuracy.
7. Do NOT invent new categories, types, or soft categories.

Product Name: {name}
Description:
{text}{variant_info}

Return ONLY a JSON object like: {{"category": ["The Category"], "type": ["The Type"], "softCategory": ["The Soft Category"]}}"""


def format_variant_info(variants: Optional[Sequence[Any]]) -> str:
    """Variant block appended to the prompt (empty when there are no variants)."""
    if not variants:
        return ""

    lines = []
    for raw in variants:
        variant = raw if isinstance(raw, ProductVariant) else ProductVariant.from_dict(raw)
        details = []
        if variant.title:
            details.append(f"Title: {variant.title}")
        if variant.sku:
            details.append(f"SKU: {variant.sku}")
        if variant.size:
            details.append(f"Size: {variant.size}")
        if variant.color:
            details.append(f"Color: {variant.color}")
        if variant.price:
            details.append(f"Price: {variant.price}")
        if variant.options:
            details.append("Options: " + ", ".join(f"{opt.get('name')}: {opt.get('value')}" for opt in variant.options))
        lines.append(", ".join(details))

    return f"\n\nProduct Variants ({len(variants)} total):\n" + "\n".join(lines)


def build_prompt(text: str, name: str, vocabulary: Vocabulary, variants: Optional[Sequence[Any]] = None) -> str:
    return PROMPT_TEMPLATE.format(
        categories=", ".join(vocabulary.categories),
        types=", ".join(vocabulary.types),
        soft_categories=", ".join(vocabulary.softCategories),
        name=name,
        text=text,
        variant_info=format_variant_info(variants),
    )


def strip_code_fence(payload: str) -> str:
    match = _CODE_FENCE.match(payload)
    return match.group(1) if match else payload.strip()


def extract_json_object(payload: str) -> Optional[Dict[str, Any]]:
    """Parse the first {...} span of `payload`; None when there is none or it is not valid JSON."""
    body = strip_code_fence(payload)
    start = body.find("{")
    if start < 0:
        return None

    decoder = json.JSONDecoder()
    try:
        parsed, _ = decoder.raw_decode(body[start:])
    except json.JSONDecodeError:
        # Fall back to the outermost braces for payloads with trailing junk inside the object
        end = body.rfind("}")
        if end <= start:
            return None
        try:
            parsed = json.loads(body[start:end + 1])
        except json.JSONDecodeError:
            return None
    return parsed if isinstance(parsed, dict) else None


class ClassificationClient:
    """
    Classify products into the tenant's category/type/soft-category vocabularies.

    Args:
        classifier: generative capability, or None when unavailable
        image_fetcher: used when image URLs are supplied; None disables images
    """

    def __init__(self, classifier: Optional[Classifier], image_fetcher: Optional[ImageFetcher] = None):
        self.classifier = classifier
        self.image_fetcher = image_fetcher

    async def classify(self, text: str, product_name: str, vocabulary: Vocabulary,
                       image_urls: Optional[Sequence[str]] = None,
                       variants: Optional[Sequence[Any]] = None) -> Classification:
        if self.classifier is None:
            logger.warning("⚠️ Classifier unavailable - returning empty classification")
            return Classification.empty()

        try:
            images: List[EncodedImage] = []
            if image_urls and self.image_fetcher is not None:
                images = await self.image_fetcher.fetch_images(image_urls)
                if images:
                    logger.debug(f"Using {len(images)} images to classify {product_name}")

            prompt = build_prompt(text or "", product_name, vocabulary, variants)
            result = await self.classifier.complete(prompt, images)
            if not result.ok:
                logger.warning(f"⚠️ Classification call failed for {product_name}: {result.error}")
                return Classification.empty()

            parsed = extract_json_object(result.text or "")
            if parsed is None:
                logger.warning(f"⚠️ Unparseable classification for {product_name}: {result.text!r:.200}")
                return Classification.empty()

            raw = Classification.from_dict(parsed)
            classification = raw.restrict_to(vocabulary)
            dropped = (len(raw.category) + len(raw.type) + len(raw.softCategory)
                       - len(classification.category) - len(classification.type) - len(classification.softCategory))
            if dropped:
                logger.info(f"Dropped {dropped} out-of-vocabulary labels for {product_name}")
            return classification

        except Exception as e:
            logger.error(f"❌ Classification failed for {product_name}: {e}")
            return Classification.empty()
