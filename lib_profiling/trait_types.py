"""Trait taxonomy for the five profiling frameworks.

Big Five, DISC, MBTI, emotional intelligence (EQ) and the six Hofstede
cultural dimensions. Trait ids are unique across frameworks, so a trait id
alone resolves its framework.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
Framework = Literal["big_five", "disc", "mbti", "eq", "cultural"]
ModelType = Literal["tier1_keyword", "tier1_sentiment", "tier1_behavioral", "tier2_llm"]
ChannelType = Literal["chat", "email", "meeting", "comment", "other"]
RecipientRole = Literal["superior", "peer", "subordinate", "external"]

FRAMEWORKS: tuple[Framework, ...] = ("big_five", "disc", "mbti", "eq", "cultural")
TIER1_MODEL_TYPES: tuple[ModelType, ...] = ("tier1_keyword", "tier1_sentiment", "tier1_behavioral")
MODEL_TYPES: tuple[ModelType, ...] = (*TIER1_MODEL_TYPES, "tier2_llm")


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------
class TraitDefinition(BaseModel):
    """A single scored trait."""

    id: str = Field(..., min_length=1, max_length=60)
    framework: Framework
    label: str = Field(..., min_length=1)
    low_label: str = Field(..., min_length=1)
    high_label: str = Field(..., min_length=1)


def _trait(trait_id: str, framework: Framework, label: str, low: str, high: str) -> TraitDefinition:
    return TraitDefinition(id=trait_id, framework=framework, label=label, low_label=low, high_label=high)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------
TRAITS: dict[str, TraitDefinition] = {
    t.id: t
    for t in [
        # Big Five
        _trait("openness", "big_five", "Openness", "conventional", "curious"),
        _trait("conscientiousness", "big_five", "Conscientiousness", "spontaneous", "organised"),
        _trait("extraversion", "big_five", "Extraversion", "reserved", "outgoing"),
        _trait("agreeableness", "big_five", "Agreeableness", "challenging", "accommodating"),
        _trait("neuroticism", "big_five", "Neuroticism", "calm", "reactive"),
        # DISC
        _trait("dominance", "disc", "Dominance", "deliberate", "decisive"),
        _trait("influence", "disc", "Influence", "factual", "persuasive"),
        _trait("steadiness", "disc", "Steadiness", "fast-paced", "steady"),
        _trait("compliance", "disc", "Compliance", "approximate", "precise"),
        # MBTI (derived from Big Five consensus)
        _trait("introversion_extraversion", "mbti", "Introversion / Extraversion", "I", "E"),
        _trait("sensing_intuition", "mbti", "Sensing / Intuition", "S", "N"),
        _trait("thinking_feeling", "mbti", "Thinking / Feeling", "T", "F"),
        _trait("judging_perceiving", "mbti", "Judging / Perceiving", "P", "J"),
        # Emotional intelligence
        _trait("self_awareness", "eq", "Self-awareness", "unreflective", "self-aware"),
        _trait("self_regulation", "eq", "Self-regulation", "impulsive", "composed"),
        _trait("motivation", "eq", "Motivation", "disengaged", "driven"),
        _trait("empathy", "eq", "Empathy", "detached", "empathetic"),
        _trait("social_skills", "eq", "Social skills", "solitary", "collaborative"),
        # Hofstede cultural dimensions
        _trait("power_distance", "cultural", "Power distance", "egalitarian", "hierarchical"),
        _trait("individualism_collectivism", "cultural", "Individualism", "collectivist", "individualist"),
        _trait("masculinity_femininity", "cultural", "Masculinity", "cooperative", "competitive"),
        _trait("uncertainty_avoidance", "cultural", "Uncertainty avoidance", "tolerant", "rule-seeking"),
        _trait("long_term_orientation", "cultural", "Long-term orientation", "short-term", "long-term"),
        _trait("indulgence_restraint", "cultural", "Indulgence", "restrained", "indulgent"),
    ]
}

# Traits scored directly by the model bank (MBTI is derived, cultural has its own engine)
SCORED_TRAITS: tuple[str, ...] = tuple(
    t.id for t in TRAITS.values() if t.framework in ("big_five", "disc", "eq")
)

CULTURAL_DIMENSIONS: tuple[str, ...] = tuple(
    t.id for t in TRAITS.values() if t.framework == "cultural"
)


def get_trait(trait_id: str) -> TraitDefinition | None:
    """Look up a trait definition by id."""
    return TRAITS.get(trait_id)


def framework_of(trait_id: str) -> Framework:
    """Resolve the framework of *trait_id*; raises ``ValueError`` for unknown ids."""
    trait = TRAITS.get(trait_id)
    if trait is None:
        raise ValueError(f"Unknown trait id: {trait_id}")
    return trait.framework


def traits_for_framework(framework: Framework) -> list[str]:
    """Trait ids belonging to *framework*, in registry order."""
    return [t.id for t in TRAITS.values() if t.framework == framework]
