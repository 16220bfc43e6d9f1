"""
Classification results and field-state helpers.

A Classification only ever holds labels drawn from the tenant vocabularies;
`restrict_to` is the single place where out-of-vocabulary labels are dropped.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping

CLASSIFICATION_FIELDS = ("category", "type", "softCategory")


class FieldState(Enum):
    """State of a list-valued classification field on a stored product.

    UNSET (key absent) and EMPTY ([], "classified as none of the options")
    are different states. NULL is an explicit null value.
    """
    UNSET = "unset"
    NULL = "null"
    EMPTY = "empty"
    POPULATED = "populated"

    @property
    def needs_classification(self) -> bool:
        return self is not FieldState.POPULATED


def field_state(doc: Mapping[str, Any], key: str) -> FieldState:
    """Classify the state of `doc[key]` without collapsing absent and empty."""
    if key not in doc:
        return FieldState.UNSET
    value = doc[key]
    if value is None:
        return FieldState.NULL
    if isinstance(value, (list, tuple, str)) and len(value) == 0:
        return FieldState.EMPTY
    return FieldState.POPULATED


def _dedupe(values: Iterable[str]) -> List[str]:
    seen = []
    for v in values:
        if v not in seen:
            seen.append(v)
    return seen


@dataclass
class Vocabulary:
    """Tenant-supplied closed label lists."""
    categories: List[str] = field(default_factory=list)
    types: List[str] = field(default_factory=list)
    softCategories: List[str] = field(default_factory=list)

    @classmethod
    def from_store_config(cls, config: Mapping[str, Any]) -> "Vocabulary":
        return cls(
            categories=list(config.get("categories") or []),
            types=list(config.get("types") or []),
            softCategories=list(config.get("softCategories") or []),
        )

    def is_empty(self) -> bool:
        return not (self.categories or self.types or self.softCategories)


@dataclass
class Classification:
    category: List[str] = field(default_factory=list)
    type: List[str] = field(default_factory=list)
    softCategory: List[str] = field(default_factory=list)

    @classmethod
    def empty(cls) -> "Classification":
        return cls()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Classification":
        """Build from parsed model output; non-list values become empty lists."""
        def as_labels(value) -> List[str]:
            if not isinstance(value, list):
                return []
            return [v for v in value if isinstance(v, str)]

        return cls(
            category=as_labels(data.get("category")),
            type=as_labels(data.get("type")),
            softCategory=as_labels(data.get("softCategory")),
        )

    def restrict_to(self, vocabulary: Vocabulary) -> "Classification":
        """Drop every label that is not in the matching vocabulary list."""
        return Classification(
            category=_dedupe(c for c in self.category if c in vocabulary.categories),
            type=_dedupe(t for t in self.type if t in vocabulary.types),
            softCategory=_dedupe(s for s in self.softCategory if s in vocabulary.softCategories),
        )

    def is_empty(self) -> bool:
        return not (self.category or self.type or self.softCategory)

    def to_dict(self) -> Dict[str, List[str]]:
        return {
            "category": list(self.category),
            "type": list(self.type),
            "softCategory": list(self.softCategory),
        }
