"""Combine classifier output and engagement into a single disaster score."""

from __future__ import annotations

import math
from typing import Optional

from .models import ClassificationResult, ClassifierTier, Engagement, RawPost

# Score given to anything the classifier judged not to be a disaster.
NON_DISASTER_SCORE = 0.1

# Results from the fallback tiers are discounted.
TIER_TRUST = {
    ClassifierTier.MODEL: 1.0,
    ClassifierTier.SAFE_RESPONSE: 0.8,
    ClassifierTier.HEURISTIC: 0.6,
}

MAX_ENGAGEMENT_BONUS = 0.1


def engagement_bonus(engagement: Optional[Engagement]) -> float:
    """Log-scaled bonus for widely shared posts, capped at 0.1.

    Shares count double since they spread the report further than likes.
    One hundred weighted interactions give roughly half the cap.
    """
    if engagement is None:
        return 0.0
    weighted = max(0, engagement.likes) + 2 * max(0, engagement.shares) + max(0, engagement.comments)
    if weighted == 0:
        return 0.0
    return min(MAX_ENGAGEMENT_BONUS, 0.025 * math.log10(1 + weighted))


def score(classification: ClassificationResult, post: RawPost) -> float:
    """Return the disaster score of a post in [0, 1].

    A non-disaster judgment pins the score at :data:`NON_DISASTER_SCORE`
    whatever the engagement. Otherwise the classifier severity, discounted
    by the trust placed in the tier that produced it, is the primary signal
    and engagement adds at most :data:`MAX_ENGAGEMENT_BONUS`.
    """
    if not classification.is_disaster:
        return NON_DISASTER_SCORE

    base = classification.severity * TIER_TRUST.get(classification.tier, TIER_TRUST[ClassifierTier.HEURISTIC])
    total = base + engagement_bonus(post.engagement)
    return round(max(0.0, min(1.0, total)), 4)
