from __future__ import annotations

from enum import Enum
from typing import Iterable, List

HIGH_CONFIDENCE_KEYWORDS = ("image", "photo", "picture", "img", "thumbnail", "avatar", "logo")
MEDIUM_CONFIDENCE_KEYWORDS = ("url", "link", "src", "asset", "media")


class SuggestionTier(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


_TIER_ORDER = {SuggestionTier.HIGH: 0, SuggestionTier.MEDIUM: 1, SuggestionTier.LOW: 2}

_TIER_BADGES = {
    SuggestionTier.HIGH: "Recommended",
    SuggestionTier.MEDIUM: "Suggested",
    SuggestionTier.LOW: None,
}

_TIER_DESCRIPTIONS = {
    SuggestionTier.HIGH: "Likely contains image URLs",
    SuggestionTier.MEDIUM: "May contain image URLs",
    SuggestionTier.LOW: "Column data",
}


def classify(column_name: str) -> SuggestionTier:
    """Guess how likely a column is to hold image URLs from its name alone.

    Advisory only: cell values are never inspected, and a ``low`` column can
    still be selected.
    """
    name = (column_name or "").lower()
    if any(keyword in name for keyword in HIGH_CONFIDENCE_KEYWORDS):
        return SuggestionTier.HIGH
    if any(keyword in name for keyword in MEDIUM_CONFIDENCE_KEYWORDS):
        return SuggestionTier.MEDIUM
    return SuggestionTier.LOW


def rank_for_display(columns: Iterable[str]) -> List[str]:
    # sorted() is stable, so equal tiers keep their source order.
    return sorted(columns, key=lambda column: _TIER_ORDER[classify(column)])


def tier_badge(tier: SuggestionTier):
    return _TIER_BADGES[tier]


def tier_description(tier: SuggestionTier) -> str:
    return _TIER_DESCRIPTIONS[tier]
