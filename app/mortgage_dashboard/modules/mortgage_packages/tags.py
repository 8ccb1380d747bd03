from __future__ import annotations

import enum
import re


class FeatureTag(str, enum.Enum):
    BEST_RATE = "Best Rate"
    EXCLUSIVE = "Exclusive"


# Checked in order; the first pattern that matches decides the tag.
_TAG_PATTERNS: tuple[tuple[FeatureTag, re.Pattern[str]], ...] = (
    (FeatureTag.BEST_RATE, re.compile(r"best rate|lowest rate", re.IGNORECASE)),
    (FeatureTag.EXCLUSIVE, re.compile(r"exclusive|high net worth|premium", re.IGNORECASE)),
)


def compute_feature_tag(features: str | None) -> FeatureTag | None:
    """Classify free-text features into at most one tag."""
    if not features:
        return None
    for tag, pattern in _TAG_PATTERNS:
        if pattern.search(features):
            return tag
    return None


def parse_feature_tag(raw: object) -> FeatureTag | None:
    if isinstance(raw, FeatureTag):
        return raw
    if not raw:
        return None
    try:
        return FeatureTag(str(raw))
    except ValueError:
        return None
