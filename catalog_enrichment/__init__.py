"""
Catalog enrichment pipeline.

Fetches product catalogs from Shopify and WooCommerce, normalizes variants,
classifies products against tenant vocabularies, embeds them and keeps a
per-store sync status that dashboards poll.
"""

__version__ = "0.1.0"
