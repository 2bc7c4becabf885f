"""
Scenario configuration

Per-metric distribution parameters for the baseline and enhanced conditions,
plus the confidence level, sample count and seed of a validation run.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
from pathlib import Path
from math import isfinite
import json

from statistical_engine import CORRECTION_METHODS
from validation_errors import ConfigurationError


@dataclass(frozen=True)
class MetricParameters:
    mean: float
    std: float
    count: Optional[int] = None  # Falls back to ScenarioConfig.sample_count

    def to_dict(self) -> Dict[str, Any]:
        data = {'mean': self.mean, 'std': self.std}
        if self.count is not None:
            data['count'] = self.count
        return data


@dataclass
class ScenarioConfig:
    """
    Configuration for one baseline-vs-enhanced validation run.

    Metric order follows the order of the `baseline` mapping and is kept
    in every downstream result and report.
    """
    name: str = "default"
    baseline: Dict[str, MetricParameters] = field(default_factory=dict)
    enhanced: Dict[str, MetricParameters] = field(default_factory=dict)
    confidence_level: float = 0.95
    sample_count: int = 1000
    seed: int = 42
    correction: Optional[str] = None

    @property
    def metrics(self) -> List[str]:
        return list(self.baseline)

    def parameters(self, metric: str) -> Dict[str, tuple]:
        """(mean, std, count) per condition for one metric"""
        def resolve(params: MetricParameters) -> tuple:
            count = self.sample_count if params.count is None else params.count
            return (params.mean, params.std, count)

        return {
            'baseline': resolve(self.baseline[metric]),
            'enhanced': resolve(self.enhanced[metric]),
        }

    def validate(self) -> "ScenarioConfig":
        """Check run-level settings; raise ConfigurationError on the first violation"""
        if not isinstance(self.confidence_level, (int, float)) or not 0 < self.confidence_level < 1:
            raise ConfigurationError(
                f"Confidence level must lie in (0, 1), got {self.confidence_level!r}",
                value=self.confidence_level
            )

        if isinstance(self.sample_count, bool) or not isinstance(self.sample_count, int) or self.sample_count < 1:
            raise ConfigurationError(
                f"Sample count must be a positive integer, got {self.sample_count!r}",
                value=self.sample_count
            )

        if isinstance(self.seed, bool) or not isinstance(self.seed, int) or self.seed < 0:
            raise ConfigurationError(
                f"Seed must be a non-negative integer, got {self.seed!r}", value=self.seed
            )

        if not self.baseline:
            raise ConfigurationError("Scenario defines no metrics", value=self.name)

        missing = [m for m in self.baseline if m not in self.enhanced]
        extra = [m for m in self.enhanced if m not in self.baseline]
        if missing or extra:
            raise ConfigurationError(
                f"Baseline and enhanced metric sets differ (missing enhanced: {missing}, "
                f"missing baseline: {extra})",
                metric=(missing + extra)[0],
                value={'missing_enhanced': missing, 'missing_baseline': extra}
            )

        for condition, table in (('baseline', self.baseline), ('enhanced', self.enhanced)):
            for metric, params in table.items():
                if params.count is not None and params.count < 1:
                    raise ConfigurationError(
                        f"{condition} count must be a positive integer, got {params.count!r}",
                        metric=metric, value=params.count
                    )

        if self.correction is not None and self.correction not in CORRECTION_METHODS:
            raise ConfigurationError(
                f"Unknown correction method: {self.correction}", value=self.correction
            )

        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'confidence_level': self.confidence_level,
            'sample_count': self.sample_count,
            'seed': self.seed,
            'correction': self.correction,
            'baseline': {m: p.to_dict() for m, p in self.baseline.items()},
            'enhanced': {m: p.to_dict() for m, p in self.enhanced.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScenarioConfig":
        """Build a config from plain data.

        Enhanced entries may carry `multiplier` instead of `mean`; the mean
        is then the baseline mean scaled by it and `std` defaults to the
        baseline standard deviation.
        """
        data = dict(data)
        raw_baseline = data.pop('baseline', {}) or {}
        raw_enhanced = data.pop('enhanced', {}) or {}

        unknown = set(data) - {'name', 'confidence_level', 'sample_count', 'seed', 'correction'}
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {sorted(unknown)}", value=sorted(unknown))

        baseline = {
            metric: _parse_parameters(metric, 'baseline', entry)
            for metric, entry in raw_baseline.items()
        }
        enhanced = {}
        for metric, entry in raw_enhanced.items():
            entry = dict(entry)
            if 'multiplier' in entry:
                if metric not in baseline:
                    raise ConfigurationError(
                        "Multiplier given for a metric without baseline parameters",
                        metric=metric, value=entry['multiplier']
                    )
                if 'mean' in entry:
                    raise ConfigurationError(
                        "Enhanced entry sets both mean and multiplier",
                        metric=metric, value=entry
                    )
                entry['mean'] = baseline[metric].mean * _number(metric, 'multiplier', entry.pop('multiplier'))
                entry.setdefault('std', baseline[metric].std)
            enhanced[metric] = _parse_parameters(metric, 'enhanced', entry)

        return cls(baseline=baseline, enhanced=enhanced, **data).validate()

    def save(self, path: Path):
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: Path) -> "ScenarioConfig":
        path = Path(path)
        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Invalid JSON in {path}: {exc}", value=str(path)) from exc
        except OSError as exc:
            raise ConfigurationError(f"Cannot read scenario file {path}: {exc}", value=str(path)) from exc
        return cls.from_dict(data)


def _number(metric: str, key: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not isfinite(value):
        raise ConfigurationError(f"'{key}' must be a finite number, got {value!r}", metric=metric, value=value)
    return float(value)


def _parse_parameters(metric: str, condition: str, entry: Dict[str, Any]) -> MetricParameters:
    if not isinstance(entry, dict) or 'mean' not in entry or 'std' not in entry:
        raise ConfigurationError(
            f"{condition} parameters need 'mean' and 'std', got {entry!r}", metric=metric, value=entry
        )
    count = entry.get('count')
    if count is not None and (isinstance(count, bool) or not isinstance(count, int) or count < 1):
        raise ConfigurationError(f"'count' must be a positive integer, got {count!r}", metric=metric, value=count)
    return MetricParameters(
        mean=_number(metric, 'mean', entry['mean']),
        std=_number(metric, 'std', entry['std']),
        count=count
    )


# Preset scenarios
PRESETS = {
    "default": ScenarioConfig(
        name="default",
        baseline={
            'throughput': MetricParameters(mean=1.2, std=0.1),
            'latency': MetricParameters(mean=20.0, std=2.0),
            'coverage': MetricParameters(mean=50.0, std=5.0),
        },
        enhanced={
            'throughput': MetricParameters(mean=3.0, std=0.15),
            'latency': MetricParameters(mean=12.0, std=1.5),
            'coverage': MetricParameters(mean=75.0, std=6.0),
        },
    ),
    "small_sample": ScenarioConfig(
        name="small_sample",
        baseline={
            'throughput': MetricParameters(mean=1.2, std=0.1),
            'latency': MetricParameters(mean=20.0, std=2.0),
        },
        enhanced={
            'throughput': MetricParameters(mean=1.3, std=0.1),
            'latency': MetricParameters(mean=19.0, std=2.0),
        },
        sample_count=30,
        correction='holm',
    ),
}
