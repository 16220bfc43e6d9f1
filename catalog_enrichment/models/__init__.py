from .product import Product, utc_now_iso
from .product_variant import ProductVariant
from .classification import Classification, FieldState, Vocabulary, field_state, CLASSIFICATION_FIELDS
from .sync_status import JobState, SyncStatus

__all__ = [
    "Product",
    "ProductVariant",
    "Classification",
    "FieldState",
    "Vocabulary",
    "field_state",
    "CLASSIFICATION_FIELDS",
    "JobState",
    "SyncStatus",
    "utc_now_iso",
]
