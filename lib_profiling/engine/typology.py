"""MBTI and DISC type derivation from fused trait consensus.

All functions are *pure*.
"""

from __future__ import annotations

from lib_profiling.profile_models import TraitConsensus
from lib_profiling.trait_types import TRAITS, traits_for_framework


# MBTI axis -> Big Five source trait
MBTI_SOURCES: dict[str, str] = {
    "introversion_extraversion": "extraversion",
    "sensing_intuition": "openness",
    "thinking_feeling": "agreeableness",
    "judging_perceiving": "conscientiousness",
}

_DISC_LETTERS: dict[str, str] = {
    "dominance": "D",
    "influence": "I",
    "steadiness": "S",
    "compliance": "C",
}


def derive_mbti(consensus: dict[str, TraitConsensus]) -> dict[str, TraitConsensus]:
    """MBTI axes carrying their Big Five source's score, confidence and breakdown."""
    derived: dict[str, TraitConsensus] = {}
    for axis, source in MBTI_SOURCES.items():
        base = consensus.get(source)
        if base is None:
            continue
        derived[axis] = TraitConsensus(
            trait_id=axis,
            framework="mbti",
            score=base.score,
            confidence=base.confidence,
            breakdown=list(base.breakdown),
        )
    return derived


def mbti_type(mbti: dict[str, TraitConsensus]) -> str | None:
    """Four-letter type (e.g. ``"ENTJ"``); None unless all four axes are known.

    A score of 50 or above picks the axis's high pole.
    """
    letters = []
    for axis in traits_for_framework("mbti"):
        value = mbti.get(axis)
        if value is None:
            return None
        trait = TRAITS[axis]
        letters.append(trait.high_label if value.score >= 50 else trait.low_label)
    return "".join(letters)


def disc_primary(consensus: dict[str, TraitConsensus]) -> str | None:
    """Letter of the highest-scoring DISC trait; ties resolve in D-I-S-C order."""
    best: tuple[int, str] | None = None
    for trait_id, letter in _DISC_LETTERS.items():
        value = consensus.get(trait_id)
        if value is None:
            continue
        if best is None or value.score > best[0]:
            best = (value.score, letter)
    return best[1] if best else None
