"""
Shared fixtures for the validation pipeline test suite.

Provides seeded random generators, a statistical engine, the default
scenario and a hand-built comparison result for formatter tests.
"""

from __future__ import annotations

import numpy as np
import pytest

from experiment_design.scenario_config import PRESETS, ScenarioConfig
from statistical_engine import ComparisonResult, DescriptiveStats, StatisticalEngine


@pytest.fixture
def rng() -> np.random.Generator:
    """Seeded random generator for reproducibility."""
    return np.random.default_rng(42)


@pytest.fixture
def engine() -> StatisticalEngine:
    """Engine at the default 95% confidence level."""
    return StatisticalEngine()


@pytest.fixture
def default_scenario() -> ScenarioConfig:
    """A private copy of the default preset, safe to modify."""
    return ScenarioConfig.from_dict(PRESETS["default"].to_dict())


@pytest.fixture
def comparison_result() -> ComparisonResult:
    """A fixed result with round, easily checked values."""
    return ComparisonResult(
        metric="throughput",
        baseline=DescriptiveStats(mean=1.2, std=0.1, count=1000),
        enhanced=DescriptiveStats(mean=3.0, std=0.15, count=1000),
        f_statistic=101234.5,
        p_value=0.000123,
        effect_size=14.1876,
        ci_lower=2.9907,
        ci_upper=3.0093,
        confidence_level=0.95,
        statistical_power=1.0,
        interpretation="large positive effect",
    )
