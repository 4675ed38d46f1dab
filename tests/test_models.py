"""Tests for the trait taxonomy, metric catalog and stored entity models."""

from lib_profiling.errors import RunStateError
from lib_profiling.metric_catalog import DEFAULT_METRICS, catalog_by_weight, get_metric
from lib_profiling.metric_models import FormulaDescriptor, MetricDefinition
from lib_profiling.profile_models import (
    MODEL_OUTPUT_LIST,
    AnalysisRun,
    KeywordOutput,
    LlmValidationOutput,
    UserJob,
)
from lib_profiling.trait_types import (
    CULTURAL_DIMENSIONS,
    SCORED_TRAITS,
    TRAITS,
    framework_of,
    get_trait,
    traits_for_framework,
)
from pydantic import ValidationError
import pytest


# ---------------------------------------------------------------------------
# Trait taxonomy
# ---------------------------------------------------------------------------


class TestTraitRegistry:
    def test_framework_sizes(self):
        assert len(traits_for_framework("big_five")) == 5
        assert len(traits_for_framework("disc")) == 4
        assert len(traits_for_framework("mbti")) == 4
        assert len(traits_for_framework("eq")) == 5
        assert len(traits_for_framework("cultural")) == 6

    def test_ids_unique_across_frameworks(self):
        assert len(TRAITS) == 24

    def test_scored_traits_exclude_derived_frameworks(self):
        assert "introversion_extraversion" not in SCORED_TRAITS
        assert "power_distance" not in SCORED_TRAITS
        assert len(SCORED_TRAITS) == 14

    def test_cultural_dimensions_order(self):
        assert CULTURAL_DIMENSIONS[0] == "power_distance"
        assert CULTURAL_DIMENSIONS[-1] == "indulgence_restraint"

    def test_framework_of(self):
        assert framework_of("empathy") == "eq"
        assert framework_of("dominance") == "disc"

    def test_framework_of_unknown(self):
        with pytest.raises(ValueError, match="Unknown trait id"):
            framework_of("charisma")

    def test_get_trait_unknown(self):
        assert get_trait("charisma") is None


# ---------------------------------------------------------------------------
# Metric definitions
# ---------------------------------------------------------------------------


class TestFormulaDescriptor:
    def test_defaults(self):
        formula = FormulaDescriptor(source="crm", field="retained")
        assert formula.aggregation == "average"
        assert not formula.lower_is_better
        assert formula.filters == {}

    def test_source_must_be_identifier(self):
        with pytest.raises(ValidationError):
            FormulaDescriptor(source="crm; drop table", field="retained")

    def test_filter_keys_must_be_identifiers(self):
        with pytest.raises(ValidationError):
            FormulaDescriptor(source="crm", field="retained", filters={"Bad Key": 1})

    def test_unknown_aggregation_rejected(self):
        with pytest.raises(ValidationError):
            FormulaDescriptor(source="crm", field="retained", aggregation="median")


class TestMetricDefinition:
    def test_metric_id_must_be_snake_case(self):
        with pytest.raises(ValidationError):
            MetricDefinition(metric_id="Task-Rate", name="x", formula=FormulaDescriptor(source="a", field="b"))

    def test_weight_upper_bound(self):
        with pytest.raises(ValidationError):
            MetricDefinition(metric_id="x", name="x", formula=FormulaDescriptor(source="a", field="b"), weight=11)

    def test_aggregation_property(self):
        metric = MetricDefinition(
            metric_id="x", name="x", formula=FormulaDescriptor(source="a", field="b", aggregation="sum"),
        )
        assert metric.aggregation == "sum"


class TestMetricCatalog:
    def test_all_metrics_have_targets(self):
        assert DEFAULT_METRICS
        for metric in DEFAULT_METRICS.values():
            assert metric.target_value is not None
            assert 0 < metric.suggestion_confidence <= 100

    def test_get_metric(self):
        assert get_metric("task_completion_rate").name == "Task Completion Rate"
        assert get_metric("nope") is None

    def test_catalog_by_weight_sorted(self):
        ordered = catalog_by_weight()
        keys = [(-m.weight, m.metric_id) for m in ordered]
        assert keys == sorted(keys)

    def test_response_time_is_lower_better(self):
        assert get_metric("client_email_response_time").formula.lower_is_better


# ---------------------------------------------------------------------------
# Model outputs and runs
# ---------------------------------------------------------------------------


class TestModelOutputs:
    def test_scores_out_of_range_rejected(self):
        with pytest.raises(ValidationError):
            KeywordOutput(user_id="u1", organization_id="o1", trait_scores={"openness": 101}, confidence=50)

    def test_outputs_are_frozen(self):
        output = KeywordOutput(user_id="u1", organization_id="o1", trait_scores={"openness": 60}, confidence=50)
        with pytest.raises(ValidationError):
            output.confidence = 10

    def test_checksum_ignores_identity_fields(self):
        a = KeywordOutput(user_id="u1", organization_id="o1", trait_scores={"openness": 60}, confidence=50)
        b = KeywordOutput(user_id="u1", organization_id="o1", trait_scores={"openness": 60}, confidence=50)
        assert a.output_id != b.output_id
        assert a.checksum == b.checksum

    def test_tokens_change_checksum(self):
        base = dict(user_id="u1", organization_id="o1", trait_scores={"empathy": 70}, confidence=80)
        assert LlmValidationOutput(**base).checksum != LlmValidationOutput(**base, tokens_used=10).checksum

    def test_tagged_union_round_trip(self):
        outputs = [
            KeywordOutput(user_id="u1", organization_id="o1", trait_scores={"openness": 60}, confidence=50),
            LlmValidationOutput(user_id="u1", organization_id="o1", trait_scores={"empathy": 70},
                                confidence=80, tokens_used=120),
        ]
        restored = MODEL_OUTPUT_LIST.validate_json(MODEL_OUTPUT_LIST.dump_json(outputs))
        assert [type(o) for o in restored] == [KeywordOutput, LlmValidationOutput]
        assert restored[1].tokens_used == 120


class TestAnalysisRunTransitions:
    def test_happy_path(self):
        run = AnalysisRun(organization_id="o1")
        running = run.transition("running")
        done = running.transition("completed", users_processed=3)
        assert run.status == "pending"
        assert done.status == "completed"
        assert done.users_processed == 3
        assert done.is_terminal

    def test_pending_cannot_complete(self):
        with pytest.raises(RunStateError, match="pending -> completed"):
            AnalysisRun().transition("completed")

    def test_terminal_never_left(self):
        failed = AnalysisRun().transition("failed")
        with pytest.raises(RunStateError):
            failed.transition("running")


class TestUserJob:
    def test_defaults(self):
        job = UserJob(run_id="r1", user_id="u1")
        assert job.status == "pending"
        assert job.attempts == 0
        assert job.max_attempts == 1
        assert job.started_at is None

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError):
            UserJob(run_id="r1", user_id="u1", status="retrying")
