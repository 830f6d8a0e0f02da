"""
Unit tests for configuration loading and validation.
"""

import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from config.settings import (
    AppConfig,
    AssemblyConfig,
    AsymmetryConfig,
    IngestionConfig,
    RegionalConfig,
    reload_config,
)
from flow_asymmetry.exceptions import ConfigurationError


class TestDefaults:
    """Default thresholds."""

    def test_default_config_is_valid(self):
        config = AppConfig()
        assert config.validate() is config

    def test_default_thresholds(self):
        config = AsymmetryConfig()
        assert config.min_destinations == 5
        assert config.min_total_magnitude == 100
        assert config.flag_ratio_threshold == 2.0
        assert config.min_edge_volume == 100
        assert config.high_asymmetry_cv == 1.0
        assert RegionalConfig().min_groups_per_region == 2
        assert AssemblyConfig().authoritative_role == "destination"


class TestValidation:
    """Invalid settings fail fast."""

    @pytest.mark.parametrize("overrides", [
        {"min_edge_volume": -1},
        {"min_total_magnitude": -0.5},
        {"min_destinations": 0},
        {"flag_ratio_threshold": 0},
        {"preference_share_threshold": 1.5},
        {"min_origin_population": -10},
    ])
    def test_invalid_asymmetry_settings(self, overrides):
        config = AppConfig(asymmetry=AsymmetryConfig(**overrides))
        with pytest.raises(ConfigurationError):
            config.validate()

    @pytest.mark.parametrize("overrides", [
        {"max_concurrency": 0},
        {"max_retries": -1},
        {"ingestion_timeout": 0},
        {"backoff_base": -1.0},
    ])
    def test_invalid_ingestion_settings(self, overrides):
        config = AppConfig(ingestion=IngestionConfig(**overrides))
        with pytest.raises(ConfigurationError):
            config.validate()

    def test_invalid_authoritative_role(self):
        config = AppConfig(assembly=AssemblyConfig(authoritative_role="whichever came first"))
        with pytest.raises(ConfigurationError):
            config.validate()

    def test_invalid_regional_minimum(self):
        config = AppConfig(regional=RegionalConfig(min_groups_per_region=0))
        with pytest.raises(ConfigurationError):
            config.validate()


class TestEnvironment:
    """Environment variables feed the defaults."""

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("FLOW_MAX_CONCURRENCY", "9")
        monkeypatch.setenv("CENSUS_YEAR", "2019")
        config = reload_config()
        assert config.ingestion.max_concurrency == 9
        assert config.census.year == 2019

        monkeypatch.delenv("FLOW_MAX_CONCURRENCY")
        monkeypatch.delenv("CENSUS_YEAR")
        reload_config()
