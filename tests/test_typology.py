"""Tests for lib_profiling.engine.typology."""

from lib_profiling.engine.typology import MBTI_SOURCES, derive_mbti, disc_primary, mbti_type
from lib_profiling.profile_models import ModelContribution, TraitConsensus
from lib_profiling.trait_types import framework_of


def _consensus(**scores) -> dict[str, TraitConsensus]:
    breakdown = [ModelContribution(
        model_type="tier1_behavioral", score=50, confidence=60, base_weight=0.3, adjusted_weight=0.18,
    )]
    return {
        trait_id: TraitConsensus(
            trait_id=trait_id, framework=framework_of(trait_id), score=score, confidence=60, breakdown=breakdown,
        )
        for trait_id, score in scores.items()
    }


class TestDeriveMbti:
    """Tests for derive_mbti and mbti_type."""

    def test_axes_carry_source_values(self):
        derived = derive_mbti(_consensus(extraversion=72, openness=40, agreeableness=55, conscientiousness=80))
        assert set(derived) == set(MBTI_SOURCES)
        axis = derived["introversion_extraversion"]
        assert axis.framework == "mbti"
        assert axis.score == 72
        assert axis.confidence == 60
        assert len(axis.breakdown) == 1

    def test_type_letters(self):
        derived = derive_mbti(_consensus(extraversion=72, openness=40, agreeableness=55, conscientiousness=80))
        assert mbti_type(derived) == "ESFJ"

    def test_fifty_picks_high_pole(self):
        derived = derive_mbti(_consensus(extraversion=50, openness=50, agreeableness=50, conscientiousness=50))
        assert mbti_type(derived) == "ENFJ"

    def test_missing_source_skips_axis(self):
        derived = derive_mbti(_consensus(extraversion=20))
        assert list(derived) == ["introversion_extraversion"]
        assert mbti_type(derived) is None


class TestDiscPrimary:
    """Tests for disc_primary."""

    def test_highest_wins(self):
        assert disc_primary(_consensus(dominance=40, influence=81, steadiness=60, compliance=70)) == "I"

    def test_tie_resolves_in_order(self):
        assert disc_primary(_consensus(steadiness=70, compliance=70)) == "S"

    def test_none_without_disc(self):
        assert disc_primary(_consensus(extraversion=70)) is None
