import numpy as np
import pandas as pd
from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass, field
from enum import Enum
from math import isfinite
import logging

from validation_errors import InvalidParameter


logger = logging.getLogger(__name__)


class Condition(Enum):
    BASELINE = "baseline"
    ENHANCED = "enhanced"


@dataclass(frozen=True, eq=False)
class MetricSample:
    metric: str
    condition: Condition
    values: np.ndarray = field(repr=False)

    def __post_init__(self):
        values = np.array(self.values, dtype=float)
        values.setflags(write=False)
        object.__setattr__(self, 'values', values)

    @property
    def count(self) -> int:
        return int(self.values.size)

    @property
    def mean(self) -> float:
        return float(np.mean(self.values))

    @property
    def std(self) -> float:
        """Sample standard deviation (ddof=1); nan for a single observation"""
        if self.count < 2:
            return float('nan')
        return float(np.std(self.values, ddof=1))

    def __len__(self) -> int:
        return self.count

    def __iter__(self):
        return iter(self.values.tolist())

    def to_series(self) -> pd.Series:
        return pd.Series(self.values, name=f"{self.metric}_{self.condition.value}")


def generate_samples(
    metric: str,
    condition: Condition,
    mean: float,
    std: float,
    count: int,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None
) -> MetricSample:
    """Draw `count` normal samples for one condition of one metric.

    Exactly one of `seed` or a caller-owned `rng` must be given so that no
    generation depends on process-wide random state.
    """
    condition = Condition(condition)

    if (seed is None) == (rng is None):
        raise InvalidParameter(
            "Exactly one of seed or rng must be supplied", metric=metric, value=(seed, rng)
        )
    if isinstance(count, bool) or not isinstance(count, (int, np.integer)) or count < 1:
        raise InvalidParameter(f"Sample count must be a positive integer, got {count!r}",
                               metric=metric, value=count)
    if not isfinite(mean):
        raise InvalidParameter(f"Mean must be finite, got {mean!r}", metric=metric, value=mean)
    if not isfinite(std) or std < 0:
        raise InvalidParameter(f"Standard deviation must be finite and >= 0, got {std!r}",
                               metric=metric, value=std)

    generator = rng if rng is not None else np.random.default_rng(seed)
    values = generator.normal(loc=mean, scale=std, size=int(count))

    logger.debug("Generated %d %s samples for %s (mean=%s, std=%s)",
                 count, condition.value, metric, mean, std)
    return MetricSample(metric=metric, condition=condition, values=values)


class SampleGenerator:
    """Derives independent, reproducible random streams per metric and condition"""

    def __init__(self, seed: int):
        if isinstance(seed, bool) or not isinstance(seed, (int, np.integer)) or seed < 0:
            raise InvalidParameter(f"Seed must be a non-negative integer, got {seed!r}", value=seed)
        self.seed = int(seed)

    def streams(self, metrics: List[str]) -> Dict[str, Tuple[np.random.Generator, np.random.Generator]]:
        """One (baseline, enhanced) generator pair per metric, keyed by metric order"""
        children = np.random.SeedSequence(self.seed).spawn(len(metrics))
        streams = {}
        for metric, child in zip(metrics, children):
            baseline_seq, enhanced_seq = child.spawn(2)
            streams[metric] = (np.random.default_rng(baseline_seq), np.random.default_rng(enhanced_seq))
        return streams

    def generate_pair(
        self,
        metric: str,
        baseline: Tuple[float, float, int],
        enhanced: Tuple[float, float, int],
        stream: Tuple[np.random.Generator, np.random.Generator]
    ) -> Tuple[MetricSample, MetricSample]:
        """Generate baseline and enhanced samples from (mean, std, count) tuples"""
        baseline_rng, enhanced_rng = stream
        baseline_sample = generate_samples(metric, Condition.BASELINE, *baseline, rng=baseline_rng)
        enhanced_sample = generate_samples(metric, Condition.ENHANCED, *enhanced, rng=enhanced_rng)
        return baseline_sample, enhanced_sample
