"""
Confidence scoring - weighted quality model for event candidates.

The composite score is a plain weighted sum of six quality factors.
Inputs are validated to [0, 1] at the boundary (QualityFactors), so the
scorer itself does no clamping.
"""

from flyerboard.schemas.moderation import QualityFactors


# ── Weights for the composite quality score ─────────────────
QUALITY_WEIGHTS = {
    "completeness": 0.25,
    "datetime": 0.20,
    "venue": 0.20,
    "contact": 0.15,
    "professionalism": 0.15,
    "readability": 0.05,
}


def score_quality(factors: QualityFactors) -> float:
    """Weighted composite score in [0, 1], rounded to 4 places."""
    weighted = (
        QUALITY_WEIGHTS["completeness"] * factors.completeness
        + QUALITY_WEIGHTS["datetime"] * factors.datetime
        + QUALITY_WEIGHTS["venue"] * factors.venue
        + QUALITY_WEIGHTS["contact"] * factors.contact
        + QUALITY_WEIGHTS["professionalism"] * factors.professionalism
        + QUALITY_WEIGHTS["readability"] * factors.readability
    )
    return round(weighted, 4)
