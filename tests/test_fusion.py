"""Tests for lib_profiling.engine.fusion."""

import itertools

import numpy as np

from lib_profiling.engine.fusion import (
    canonical_order,
    fuse_outputs,
    fuse_trait,
    models_used,
    overall_confidence,
)
from lib_profiling.engine.numeric import clamp_score, round_half_up
from lib_profiling.profile_models import (
    BehavioralOutput,
    KeywordOutput,
    LlmValidationOutput,
    SentimentOutput,
)
from lib_profiling.settings import FusionWeights
from lib_profiling.trait_types import SCORED_TRAITS


def _outputs(keyword=(72, 60), sentiment=(68, 70), behavioral=(80, 80), trait="extraversion"):
    common = {"user_id": "u1", "organization_id": "org1", "run_id": "r1"}
    return [
        KeywordOutput(trait_scores={trait: keyword[0]}, confidence=keyword[1], **common),
        SentimentOutput(trait_scores={trait: sentiment[0]}, confidence=sentiment[1], **common),
        BehavioralOutput(trait_scores={trait: behavioral[0]}, confidence=behavioral[1], **common),
    ]


# ---------------------------------------------------------------------------
# Numeric helpers
# ---------------------------------------------------------------------------


class TestRounding:
    """Half-up rounding used by fusion."""

    def test_half_rounds_up(self):
        assert round_half_up(56.5) == 57
        assert round_half_up(2.5) == 3

    def test_float_noise_resolved(self):
        assert round_half_up(0.565 * 100) == 57

    def test_clamp(self):
        assert clamp_score(-3) == 0
        assert clamp_score(140.2) == 100


# ---------------------------------------------------------------------------
# fuse_trait
# ---------------------------------------------------------------------------


class TestFuseTrait:
    """Confidence-weighted consensus."""

    def test_three_model_consensus(self):
        consensus = fuse_trait("extraversion", _outputs(), FusionWeights())
        # weights 0.25*0.6 + 0.25*0.7 + 0.30*0.8 = 0.565
        assert consensus.score == 74
        assert consensus.confidence == 57
        assert consensus.framework == "big_five"
        assert [c.model_type for c in consensus.breakdown] == [
            "tier1_keyword", "tier1_sentiment", "tier1_behavioral",
        ]

    def test_breakdown_weights(self):
        consensus = fuse_trait("extraversion", _outputs(), FusionWeights())
        adjusted = [c.adjusted_weight for c in consensus.breakdown]
        assert adjusted == [0.15, 0.175, 0.24]

    def test_absent_model_is_skipped(self):
        outputs = _outputs()
        outputs[0] = KeywordOutput(
            user_id="u1", organization_id="org1", trait_scores={"openness": 90}, confidence=60,
        )
        consensus = fuse_trait("extraversion", outputs, FusionWeights())
        assert len(consensus.breakdown) == 2
        # (68*0.175 + 80*0.24) / 0.415
        assert consensus.score == 75
        assert consensus.confidence == 42

    def test_no_predictions_returns_none(self):
        assert fuse_trait("empathy", _outputs(), FusionWeights()) is None

    def test_zero_confidence_returns_none(self):
        outputs = _outputs(keyword=(72, 0), sentiment=(68, 0), behavioral=(80, 0))
        assert fuse_trait("extraversion", outputs, FusionWeights()) is None

    def test_llm_output_participates(self):
        outputs = _outputs() + [LlmValidationOutput(
            user_id="u1", organization_id="org1", trait_scores={"extraversion": 40}, confidence=90,
        )]
        with_llm = fuse_trait("extraversion", outputs, FusionWeights())
        assert with_llm.score < 74
        assert with_llm.confidence == 75

    def test_configurable_weights(self):
        weights = FusionWeights(keyword=0.0, sentiment=0.0, behavioral=1.0)
        consensus = fuse_trait("extraversion", _outputs(), weights)
        assert consensus.score == 80
        assert consensus.confidence == 80


class TestFusionProperties:
    """Idempotence and bounds."""

    def test_order_independent(self):
        outputs = _outputs()
        results = {
            fuse_trait("extraversion", list(perm), FusionWeights()).model_dump_json()
            for perm in itertools.permutations(outputs)
        }
        assert len(results) == 1

    def test_repeat_fusion_identical(self):
        outputs = _outputs()
        first = fuse_outputs(outputs, FusionWeights())
        second = fuse_outputs(outputs, FusionWeights())
        assert {k: v.model_dump_json() for k, v in first.items()} == {
            k: v.model_dump_json() for k, v in second.items()
        }

    def test_bounds_random_outputs(self):
        rng = np.random.RandomState(42)
        common = {"user_id": "u1", "organization_id": "org1"}
        for _ in range(100):
            outputs = [
                cls(
                    trait_scores={t: int(rng.randint(0, 101)) for t in SCORED_TRAITS},
                    confidence=int(rng.randint(0, 101)),
                    **common,
                )
                for cls in (KeywordOutput, SentimentOutput, BehavioralOutput, LlmValidationOutput)
            ]
            for consensus in fuse_outputs(outputs, FusionWeights()).values():
                assert 0 <= consensus.score <= 100
                assert 0 <= consensus.confidence <= 100


class TestHelpers:
    """canonical_order, overall_confidence and models_used."""

    def test_canonical_order(self):
        outputs = list(reversed(_outputs()))
        assert [o.model_type for o in canonical_order(outputs)] == [
            "tier1_keyword", "tier1_sentiment", "tier1_behavioral",
        ]

    def test_overall_confidence_mean(self):
        outputs = _outputs() + _outputs(trait="openness", keyword=(50, 30), sentiment=(50, 30), behavioral=(50, 30))
        consensus = fuse_outputs(outputs, FusionWeights())
        # extraversion 57, openness (0.075+0.075+0.09)*100 = 24
        assert overall_confidence(consensus) == round_half_up((57 + 24) / 2)

    def test_overall_confidence_empty(self):
        assert overall_confidence({}) == 0

    def test_models_used(self):
        assert models_used(_outputs()[1:]) == ["tier1_sentiment", "tier1_behavioral"]
