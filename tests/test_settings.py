"""Tests for lib_profiling.settings."""

import json
import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from lib_profiling.settings import (
    EngineSettings,
    FusionWeights,
    OrchestratorSettings,
    ValidatorSettings,
    WindowSettings,
)


class TestDefaults:
    """Default values."""

    def test_engine_defaults(self):
        settings = EngineSettings()
        assert settings.fusion.behavioral == 0.30
        assert settings.validator.confidence_threshold == 70
        assert settings.validator.sample_rate == 0.10
        assert settings.model_bank.min_messages_for_traits == 20
        assert settings.windows.window_days == 7
        assert settings.orchestrator.max_attempts_per_user == 3
        assert settings.orchestrator.max_failed_users is None

    def test_for_model(self):
        weights = FusionWeights()
        assert weights.for_model("tier2_llm") == 0.20
        with pytest.raises(ValueError, match="Unknown model type"):
            weights.for_model("tier3_oracle")


class TestValidation:
    """Field and model validators."""

    def test_conflict_band(self):
        with pytest.raises(ValidationError, match="conflict_low_score"):
            ValidatorSettings(conflict_low_score=60, conflict_high_score=60)

    def test_rollup_multiple_of_window(self):
        with pytest.raises(ValidationError, match="multiple"):
            WindowSettings(window_days=7, rollup_days=30)

    def test_sample_rate_bounds(self):
        with pytest.raises(ValidationError):
            ValidatorSettings(sample_rate=1.5)

    def test_attempts_per_user_at_least_one(self):
        with pytest.raises(ValidationError):
            OrchestratorSettings(max_attempts_per_user=0)

    def test_failed_user_limit_not_negative(self):
        with pytest.raises(ValidationError):
            OrchestratorSettings(max_failed_users=-1)


class TestFromEnv:
    """Tests for EngineSettings.from_env."""

    @patch("lib_profiling.settings.load_dotenv")
    @patch.dict(os.environ, {}, clear=True)
    def test_defaults_without_env(self, _mock_dotenv):
        assert EngineSettings.from_env() == EngineSettings()

    @patch("lib_profiling.settings.load_dotenv")
    @patch.dict(os.environ, {
        "PROFILING_TIER2_CONFIDENCE_THRESHOLD": "65",
        "PROFILING_TIER2_SAMPLE_RATE": "0.25",
        "PROFILING_WEIGHT_LLM": "0.4",
        "PROFILING_MAX_WORKERS": "8",
        "PROFILING_DEFAULT_COUNTRY": "",
    }, clear=True)
    def test_overrides(self, _mock_dotenv):
        settings = EngineSettings.from_env()
        assert settings.validator.confidence_threshold == 65
        assert settings.validator.sample_rate == 0.25
        assert settings.fusion.llm == 0.4
        assert settings.orchestrator.max_workers == 8
        assert settings.cultural.default_country == "US"

    @patch("lib_profiling.settings.load_dotenv")
    @patch.dict(os.environ, {
        "PROFILING_MAX_ATTEMPTS_PER_USER": "5",
        "PROFILING_MAX_FAILED_USERS": "2",
    }, clear=True)
    def test_retry_budget_overrides(self, _mock_dotenv):
        settings = EngineSettings.from_env()
        assert settings.orchestrator.max_attempts_per_user == 5
        assert settings.orchestrator.max_failed_users == 2

    @patch("lib_profiling.settings.load_dotenv")
    @patch.dict(os.environ, {"PROFILING_MAX_WORKERS": "lots"}, clear=True)
    def test_invalid_value(self, _mock_dotenv):
        with pytest.raises(ValidationError):
            EngineSettings.from_env()

    @patch("lib_profiling.settings.load_dotenv")
    def test_settings_file_with_override(self, _mock_dotenv, tmp_path):
        path = tmp_path / "calibration.json"
        path.write_text(json.dumps({"validator": {"confidence_threshold": 55, "sample_rate": 0.5}}))
        env = {"PROFILING_SETTINGS_FILE": str(path), "PROFILING_TIER2_SAMPLE_RATE": "0.05"}
        with patch.dict(os.environ, env, clear=True):
            settings = EngineSettings.from_env()
        assert settings.validator.confidence_threshold == 55
        assert settings.validator.sample_rate == 0.05


class TestFilePersistence:
    """Tests for from_file and save."""

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "settings.json"
        original = EngineSettings(fusion=FusionWeights(keyword=0.1))
        original.save(path)
        assert EngineSettings.from_file(path) == original

    def test_missing_file(self, tmp_path):
        with pytest.raises(ValueError, match="Failed to load settings"):
            EngineSettings.from_file(tmp_path / "missing.json")

    def test_bad_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        with pytest.raises(ValueError, match="Failed to load settings"):
            EngineSettings.from_file(path)
