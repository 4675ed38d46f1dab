"""Cultural adaptation: location baseline blended with behavioral evidence.

``final = baseline * (1 - c/100) + adjustment * (c/100)`` per Hofstede
dimension, where ``c`` grows with the number of conversations analyzed.
Values stay floats so ``c == 0`` returns the baseline and ``c == 100`` the
adjustment exactly.

The baseline is fixed when a profile is first adapted; later passes keep the
stored country and baseline and only refresh the behavioral side.

All functions are *pure*.
"""

from __future__ import annotations

import logging

from lib_profiling.engine.numeric import clamp_float
from lib_profiling.engine.tier1 import summarize_windows
from lib_profiling.interaction_models import AggregationWindow
from lib_profiling.profile_models import CulturalProfile
from lib_profiling.settings import CulturalSettings
from lib_profiling.trait_types import CULTURAL_DIMENSIONS


logger = logging.getLogger(__name__)


def _dims(pdi: float, idv: float, mas: float, uai: float, lto: float, ivr: float) -> dict[str, float]:
    return dict(zip(CULTURAL_DIMENSIONS, (pdi, idv, mas, uai, lto, ivr)))


# ---------------------------------------------------------------------------
# Reference table (PDI, IDV, MAS, UAI, LTO, IVR)
# ---------------------------------------------------------------------------
HOFSTEDE_BASELINES: dict[str, dict[str, float]] = {
    "US": _dims(40, 91, 62, 46, 26, 68),
    "GB": _dims(35, 89, 66, 35, 51, 69),
    "CA": _dims(39, 80, 52, 48, 36, 68),
    "AU": _dims(38, 90, 61, 51, 21, 71),
    "NZ": _dims(22, 79, 58, 49, 33, 75),
    "IE": _dims(28, 70, 68, 35, 24, 65),
    "DE": _dims(35, 67, 66, 65, 83, 40),
    "FR": _dims(68, 71, 43, 86, 63, 48),
    "NL": _dims(38, 80, 14, 53, 67, 68),
    "CH": _dims(34, 68, 70, 58, 74, 66),
    "SE": _dims(31, 71, 5, 29, 53, 78),
    "NO": _dims(31, 69, 8, 50, 35, 55),
    "DK": _dims(18, 74, 16, 23, 35, 70),
    "FI": _dims(33, 63, 26, 59, 38, 57),
    "ES": _dims(57, 51, 42, 86, 48, 44),
    "IT": _dims(50, 76, 70, 75, 61, 30),
    "PL": _dims(68, 60, 64, 93, 38, 29),
    "RU": _dims(93, 39, 36, 95, 81, 20),
    "JP": _dims(54, 46, 95, 92, 88, 42),
    "KR": _dims(60, 18, 39, 85, 100, 29),
    "CN": _dims(80, 20, 66, 30, 87, 24),
    "SG": _dims(74, 20, 48, 8, 72, 46),
    "IN": _dims(77, 48, 56, 40, 51, 26),
    "BR": _dims(69, 38, 49, 76, 44, 59),
    "MX": _dims(81, 30, 69, 82, 24, 97),
    "AR": _dims(49, 46, 56, 86, 20, 62),
    "ZA": _dims(49, 65, 63, 49, 34, 63),
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def baseline_for(country_code: str | None, default_country: str = "US") -> tuple[str, dict[str, float], bool]:
    """Return (country used, baseline, location_based).

    Unknown or missing codes fall back to *default_country*.
    """
    code = (country_code or "").strip().upper()
    if code in HOFSTEDE_BASELINES:
        return code, dict(HOFSTEDE_BASELINES[code]), True
    fallback = default_country.upper()
    if fallback not in HOFSTEDE_BASELINES:
        raise ValueError(f"Default country {fallback} has no cultural baseline")
    if code:
        logger.info("No cultural baseline for %s, using %s", code, fallback)
    return fallback, dict(HOFSTEDE_BASELINES[fallback]), False


def adaptation_confidence(conversations_analyzed: int, full_confidence_conversations: int = 50) -> float:
    """``min(100, conversations / full * 100)``; non-decreasing in conversations."""
    if conversations_analyzed <= 0:
        return 0.0
    return min(100.0, conversations_analyzed / full_confidence_conversations * 100)


def blend(baseline: float, adjustment: float, confidence: float) -> float:
    weight = confidence / 100
    return baseline * (1 - weight) + adjustment * weight


def behavioral_adjustments(summary: AggregationWindow | None, baseline: dict[str, float]) -> dict[str, float]:
    """Per-dimension behavioral estimate; baseline where the cues are empty."""
    adjustments = dict(baseline)
    if summary is None or summary.message_count == 0:
        return adjustments

    estimates = {
        "power_distance": _power_distance(summary),
        "individualism_collectivism": _ratio(summary, "self_reference", "group_reference"),
        "masculinity_femininity": _ratio(summary, "achievement", "care"),
        "uncertainty_avoidance": _uncertainty_avoidance(summary),
        "long_term_orientation": _ratio(summary, "future_focus", "present_focus"),
        "indulgence_restraint": _indulgence(summary),
    }
    for dimension, value in estimates.items():
        if value is not None:
            adjustments[dimension] = clamp_float(value)
    return adjustments


def adapt(
    profile_id: str,
    country_code: str | None,
    windows: list[AggregationWindow],
    settings: CulturalSettings | None = None,
    stored: CulturalProfile | None = None,
) -> CulturalProfile:
    """Build the cultural profile from a country code and window history.

    When *stored* is given its country, baseline and location flag are kept
    and *country_code* is ignored.
    """
    settings = settings or CulturalSettings()
    if stored is not None:
        code, baseline, location_based = stored.country_code, dict(stored.baseline), stored.location_based
    else:
        code, baseline, location_based = baseline_for(country_code, settings.default_country)
    summary = summarize_windows(windows)
    conversations = summary.conversations_participated if summary else 0
    confidence = adaptation_confidence(conversations, settings.full_confidence_conversations)
    adjustments = behavioral_adjustments(summary, baseline)

    return CulturalProfile(
        profile_id=profile_id,
        country_code=code,
        location_based=location_based,
        baseline=baseline,
        adjustments=adjustments,
        values={d: blend(baseline[d], adjustments[d], confidence) for d in CULTURAL_DIMENSIONS},
        confidence=confidence,
        conversations_analyzed=conversations,
    )


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------
def _ratio(summary: AggregationWindow, numerator: str, denominator: str) -> float | None:
    a = summary.keyword_counts.get(numerator, 0)
    b = summary.keyword_counts.get(denominator, 0)
    if a + b == 0:
        return None
    return a / (a + b) * 100


def _power_distance(summary: AggregationWindow) -> float | None:
    hedging = summary.keyword_counts.get("hedging", 0)
    if summary.superior_message_count == 0 and hedging == 0:
        return None
    gap = 0.0
    if summary.superior_message_count:
        superior_mean = summary.superior_formality_sum / summary.superior_message_count
        gap = superior_mean - summary.formality_sum / summary.message_count
    hedge_rate = min(1.0, hedging / summary.message_count)
    return 40 + gap * 1.5 + hedge_rate * 40


def _uncertainty_avoidance(summary: AggregationWindow) -> float | None:
    process = summary.keyword_counts.get("process", 0)
    if summary.question_count + process == 0:
        return None
    question_rate = min(1.0, summary.rate("question_count"))
    process_rate = min(1.0, process / summary.message_count)
    formality = summary.rate("formality_sum")
    return 20 + question_rate * 40 + (formality - 50) * 0.4 + process_rate * 60


def _indulgence(summary: AggregationWindow) -> float | None:
    positive = summary.sentiment_percentages()["positive"]
    emoji_rate = min(1.0, summary.rate("emoji_count"))
    exclamation_rate = min(1.0, summary.rate("exclamation_count"))
    return 20 + positive * 0.5 + emoji_rate * 20 + exclamation_rate * 15
