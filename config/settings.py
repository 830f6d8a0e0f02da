"""
Configuration settings for the Migration Flow Asymmetry research project.

This module contains all configurable parameters for the flow-asymmetry study,
including data retrieval, ingestion concurrency, reconciliation rules, and the
empirically chosen analysis thresholds.

Note: The asymmetry thresholds (minimum volumes, the 2x concentration ratio,
CV > 1.0 as "high asymmetry") were chosen empirically for the Texas county
study and are expected to be recalibrated per dataset.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from flow_asymmetry.exceptions import ConfigurationError

load_dotenv()

# Base paths
PROJECT_ROOT = Path(__file__).parent.parent.absolute()
DATA_DIR = PROJECT_ROOT / "data"
RAW_DATA_DIR = DATA_DIR / "raw"
PROCESSED_DATA_DIR = DATA_DIR / "processed"
RESULTS_DIR = DATA_DIR / "results"

ANCHOR_ROLES = ("origin", "destination")


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


@dataclass
class CensusConfig:
    """Configuration for the Census Bureau data API."""

    api_key: str = field(default_factory=lambda: os.getenv("CENSUS_API_KEY", ""))
    base_url: str = field(
        default_factory=lambda: os.getenv("CENSUS_BASE_URL", "https://api.census.gov/data")
    )
    year: int = field(default_factory=lambda: _env_int("CENSUS_YEAR", 2022))
    request_timeout: int = 60
    user_agent: str = "FlowAsymmetryResearch/1.0 (research@example.com)"


@dataclass
class IngestionConfig:
    """Configuration for concurrent per-anchor flow ingestion."""

    max_concurrency: int = field(default_factory=lambda: _env_int("FLOW_MAX_CONCURRENCY", 4))
    max_retries: int = 3
    backoff_base: float = 1.0  # seconds
    backoff_max: float = 30.0  # seconds
    ingestion_timeout: float = field(
        default_factory=lambda: _env_float("FLOW_INGESTION_TIMEOUT", 600.0)
    )

    # International regions and unrecognized aggregates are dropped by default
    include_non_primary: bool = False


@dataclass
class AssemblyConfig:
    """Configuration for duplicate-edge reconciliation."""

    # ACS flow estimates are published as whole persons
    reconciliation_tolerance: float = 1.0
    authoritative_role: str = "destination"


@dataclass
class AsymmetryConfig:
    """Configuration for concentration statistics and flagging."""

    # Group eligibility
    min_destinations: int = 5
    min_total_magnitude: float = 100.0
    min_origin_population: Optional[int] = None

    # Concentration flags
    flag_ratio_threshold: float = 2.0
    min_edge_volume: float = 100.0

    # Summary thresholds
    high_asymmetry_cv: float = 1.0

    # Pairwise symmetry
    pair_min_total: float = 10.0

    # Destination-region preference
    preference_min_total: float = 200.0
    preference_share_threshold: float = 0.6


@dataclass
class RegionalConfig:
    """Configuration for regional comparison."""

    min_groups_per_region: int = 2
    region_mapping_path: Optional[Path] = field(
        default_factory=lambda: (
            Path(os.environ["FLOW_REGION_MAPPING"]) if os.getenv("FLOW_REGION_MAPPING") else None
        )
    )


@dataclass
class AppConfig:
    """Main application configuration."""

    env: str = field(default_factory=lambda: os.getenv("FLOW_ENV", "development"))

    # Sub-configurations
    census: CensusConfig = field(default_factory=CensusConfig)
    ingestion: IngestionConfig = field(default_factory=IngestionConfig)
    assembly: AssemblyConfig = field(default_factory=AssemblyConfig)
    asymmetry: AsymmetryConfig = field(default_factory=AsymmetryConfig)
    regional: RegionalConfig = field(default_factory=RegionalConfig)

    def validate(self) -> "AppConfig":
        """
        Check every threshold for internal consistency.

        Raises
        ------
        ConfigurationError
            On the first invalid setting found.
        """
        ing = self.ingestion
        if ing.max_concurrency < 1:
            raise ConfigurationError(f"max_concurrency must be >= 1, got {ing.max_concurrency}")
        if ing.max_retries < 0:
            raise ConfigurationError(f"max_retries must be >= 0, got {ing.max_retries}")
        if ing.backoff_base < 0 or ing.backoff_max < 0:
            raise ConfigurationError("backoff durations must be non-negative")
        if ing.ingestion_timeout <= 0:
            raise ConfigurationError(
                f"ingestion_timeout must be positive, got {ing.ingestion_timeout}"
            )

        asm = self.assembly
        if asm.reconciliation_tolerance < 0:
            raise ConfigurationError(
                f"reconciliation_tolerance must be non-negative, got {asm.reconciliation_tolerance}"
            )
        if asm.authoritative_role not in ANCHOR_ROLES:
            raise ConfigurationError(
                f"authoritative_role must be one of {ANCHOR_ROLES}, got {asm.authoritative_role!r}"
            )

        sym = self.asymmetry
        if sym.min_destinations < 1:
            raise ConfigurationError(f"min_destinations must be >= 1, got {sym.min_destinations}")
        for name in ("min_total_magnitude", "min_edge_volume", "pair_min_total", "preference_min_total"):
            if getattr(sym, name) < 0:
                raise ConfigurationError(f"{name} must be non-negative, got {getattr(sym, name)}")
        if sym.min_origin_population is not None and sym.min_origin_population < 0:
            raise ConfigurationError("min_origin_population must be non-negative")
        if sym.flag_ratio_threshold <= 0:
            raise ConfigurationError(
                f"flag_ratio_threshold must be positive, got {sym.flag_ratio_threshold}"
            )
        if sym.high_asymmetry_cv < 0:
            raise ConfigurationError("high_asymmetry_cv must be non-negative")
        if not 0 < sym.preference_share_threshold <= 1:
            raise ConfigurationError(
                f"preference_share_threshold must be in (0, 1], got {sym.preference_share_threshold}"
            )

        if self.regional.min_groups_per_region < 1:
            raise ConfigurationError("min_groups_per_region must be >= 1")

        return self


# Global configuration instance
config = AppConfig()


def get_config() -> AppConfig:
    """Get the global configuration instance."""
    return config


def reload_config() -> AppConfig:
    """Reload configuration from environment."""
    global config
    load_dotenv(override=True)
    config = AppConfig()
    return config
