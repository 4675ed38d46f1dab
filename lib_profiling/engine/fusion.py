"""Consensus fusion of model outputs.

Per trait, each output that predicts the trait contributes
``base_weight[model_type] * confidence / 100`` as its adjusted weight.  The
consensus score is the weighted mean of the scores and the consensus
confidence is the total adjusted weight expressed as a percentage.

All functions are *pure*.  Outputs are folded in canonical model order, so a
snapshot of outputs fuses to identical values regardless of input order.
"""

from __future__ import annotations

from collections.abc import Iterable

from lib_profiling.engine.numeric import clamp_score, round_half_up
from lib_profiling.profile_models import ModelContribution, ModelOutputBase, TraitConsensus
from lib_profiling.settings import FusionWeights
from lib_profiling.trait_types import MODEL_TYPES, SCORED_TRAITS, framework_of


FUSION_STRATEGY = "confidence_weighted"


def canonical_order(outputs: Iterable[ModelOutputBase]) -> list[ModelOutputBase]:
    """Sort outputs by model type rank, then checksum."""
    return sorted(outputs, key=lambda o: (MODEL_TYPES.index(o.model_type), o.checksum))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def fuse_trait(
    trait_id: str,
    outputs: Iterable[ModelOutputBase],
    weights: FusionWeights,
) -> TraitConsensus | None:
    """Fuse every output that predicts *trait_id*.

    Returns None when no output predicts the trait or every adjusted weight
    is zero.
    """
    weighted_sum = 0.0
    total_weight = 0.0
    breakdown: list[ModelContribution] = []

    for output in canonical_order(outputs):
        score = output.trait_scores.get(trait_id)
        if score is None:
            continue
        base_weight = weights.for_model(output.model_type)
        adjusted = base_weight * (output.confidence / 100)
        weighted_sum += score * adjusted
        total_weight += adjusted
        breakdown.append(ModelContribution(
            model_type=output.model_type,
            score=score,
            confidence=output.confidence,
            base_weight=base_weight,
            adjusted_weight=round(adjusted, 6),
        ))

    if total_weight <= 0:
        return None

    return TraitConsensus(
        trait_id=trait_id,
        framework=framework_of(trait_id),
        score=clamp_score(weighted_sum / total_weight),
        confidence=clamp_score(total_weight * 100),
        breakdown=breakdown,
    )


def fuse_outputs(
    outputs: Iterable[ModelOutputBase],
    weights: FusionWeights,
    trait_ids: Iterable[str] = SCORED_TRAITS,
) -> dict[str, TraitConsensus]:
    """Fuse all *trait_ids*; traits nobody predicts are absent from the result."""
    snapshot = list(outputs)
    results: dict[str, TraitConsensus] = {}
    for trait_id in trait_ids:
        consensus = fuse_trait(trait_id, snapshot, weights)
        if consensus is not None:
            results[trait_id] = consensus
    return results


def overall_confidence(consensus: dict[str, TraitConsensus]) -> int:
    """Half-up mean of per-trait consensus confidences (0 when empty)."""
    if not consensus:
        return 0
    return round_half_up(sum(c.confidence for c in consensus.values()) / len(consensus))


def models_used(outputs: Iterable[ModelOutputBase]) -> list[str]:
    """Distinct model types in canonical order."""
    present = {o.model_type for o in outputs}
    return [m for m in MODEL_TYPES if m in present]
