import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.stats.power import tt_ind_solve_power
from statsmodels.stats.multitest import multipletests
from typing import Dict, List, Tuple, Optional, Any, Union, Sequence
import math
import warnings
from dataclasses import dataclass, asdict

from experiment_design.sample_generator import MetricSample
from validation_errors import (
    ConfigurationError,
    DegenerateDistribution,
    InsufficientData,
    InvalidParameter,
)


# Multiple comparison corrections and their statsmodels names
CORRECTION_METHODS = {
    'bonferroni': 'bonferroni',
    'holm': 'holm',
    'benjamini_hochberg': 'fdr_bh',
}

SampleLike = Union[MetricSample, np.ndarray, pd.Series, Sequence[float]]


def _mean(values: np.ndarray) -> float:
    """Correctly rounded mean; independent of the order of the values"""
    return math.fsum(values) / len(values)


def _variance(values: np.ndarray) -> float:
    """Sample variance (ddof=1); exactly zero for a constant sample"""
    if np.ptp(values) == 0:
        return 0.0
    return float(np.var(values, ddof=1))


@dataclass(frozen=True)
class DescriptiveStats:
    mean: float
    std: float
    count: int


@dataclass(frozen=True)
class ComparisonResult:
    metric: str
    baseline: DescriptiveStats
    enhanced: DescriptiveStats
    f_statistic: float
    p_value: float
    effect_size: float
    ci_lower: float
    ci_upper: float
    confidence_level: float
    statistical_power: float
    interpretation: str
    adjusted_p_value: Optional[float] = None

    @property
    def percent_change(self) -> float:
        """Relative change of the enhanced mean over the baseline mean, in percent"""
        if self.baseline.mean == 0:
            return float('nan')
        return (self.enhanced.mean - self.baseline.mean) / abs(self.baseline.mean) * 100

    @property
    def confidence_interval(self) -> Tuple[float, float]:
        return (self.ci_lower, self.ci_upper)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['percent_change'] = self.percent_change
        return data

    def __str__(self) -> str:
        return (
            f"{self.metric}: F(1, {self.baseline.count + self.enhanced.count - 2})={self.f_statistic:.3f}, "
            f"p={self.p_value:.6f}, d={self.effect_size:.2f}, "
            f"{self.confidence_level:.0%} CI [{self.ci_lower:.4f}, {self.ci_upper:.4f}]"
        )


class StatisticalEngine:
    """Baseline-vs-enhanced comparison: one-way ANOVA, Cohen's d and t confidence intervals"""

    def __init__(self, confidence_level: float = 0.95, correction: Optional[str] = None):
        self.confidence_level = self._check_confidence_level(confidence_level)
        if correction is not None and correction not in CORRECTION_METHODS:
            raise ConfigurationError(f"Unknown correction method: {correction}", value=correction)
        self.correction = correction

    def compare(
        self,
        baseline: SampleLike,
        enhanced: SampleLike,
        metric: Optional[str] = None
    ) -> ComparisonResult:
        """Full comparison of one metric's baseline and enhanced samples"""
        if metric is None:
            metric = getattr(baseline, 'metric', None) or getattr(enhanced, 'metric', None) or 'metric'

        baseline_values = self._as_array(baseline, metric, 'baseline')
        enhanced_values = self._as_array(enhanced, metric, 'enhanced')

        # Pooled std is checked before the F-test so a degenerate pair never reaches a division
        effect_size = self.cohens_d(baseline_values, enhanced_values, metric=metric)
        f_stat, p_value = self.one_way_anova(baseline_values, enhanced_values, metric=metric)
        ci_lower, ci_upper = self.mean_confidence_interval(enhanced_values, metric=metric)

        power = self.calculate_statistical_power(
            effect_size, len(baseline_values), len(enhanced_values),
            significance_level=1 - self.confidence_level
        )

        return ComparisonResult(
            metric=metric,
            baseline=self.describe(baseline_values),
            enhanced=self.describe(enhanced_values),
            f_statistic=f_stat,
            p_value=p_value,
            effect_size=effect_size,
            ci_lower=ci_lower,
            ci_upper=ci_upper,
            confidence_level=self.confidence_level,
            statistical_power=power,
            interpretation=self.interpret_effect_size(effect_size)
        )

    def one_way_anova(self, *groups: SampleLike, metric: Optional[str] = None) -> Tuple[float, float]:
        """F-statistic and p-value for equal group means.

        SS_between = sum n_i (mean_i - grand_mean)^2, SS_within = sum of
        squared deviations from each group mean, F = MS_between / MS_within
        with (k - 1, N - k) degrees of freedom.
        """
        arrays = [self._as_array(g, metric, f'group {i}') for i, g in enumerate(groups)]
        k = len(arrays)
        if k < 2:
            raise InsufficientData(f"ANOVA needs at least 2 groups, got {k}", metric=metric, value=k)

        n_total = sum(len(arr) for arr in arrays)
        grand_mean = _mean(np.concatenate(arrays))

        ss_between = sum(len(arr) * (_mean(arr) - grand_mean) ** 2 for arr in arrays)
        ss_within = sum((len(arr) - 1) * _variance(arr) for arr in arrays)

        if ss_within == 0:
            raise DegenerateDistribution(
                "Within-group variance is zero; F-statistic undefined", metric=metric, value=0.0
            )

        df_between = k - 1
        df_within = n_total - k
        f_stat = (ss_between / df_between) / (ss_within / df_within)
        p_value = stats.f.sf(f_stat, df_between, df_within)

        return float(f_stat), float(p_value)

    def pooled_std(self, baseline: SampleLike, enhanced: SampleLike, metric: Optional[str] = None) -> float:
        """Square root of the (n_i - 1)-weighted average of group variances"""
        a = self._as_array(baseline, metric, 'baseline')
        b = self._as_array(enhanced, metric, 'enhanced')
        n1, n2 = len(a), len(b)
        pooled_var = ((n1 - 1) * _variance(a) + (n2 - 1) * _variance(b)) / (n1 + n2 - 2)
        return float(np.sqrt(pooled_var))

    def cohens_d(self, baseline: SampleLike, enhanced: SampleLike, metric: Optional[str] = None) -> float:
        """Standardized mean difference; positive when the enhanced mean is higher"""
        a = self._as_array(baseline, metric, 'baseline')
        b = self._as_array(enhanced, metric, 'enhanced')

        pooled = self.pooled_std(a, b, metric=metric)
        if pooled == 0:
            raise DegenerateDistribution(
                "Pooled standard deviation is zero; effect size undefined", metric=metric, value=pooled
            )

        return float((_mean(b) - _mean(a)) / pooled)

    def mean_confidence_interval(
        self,
        data: SampleLike,
        confidence_level: float = None,
        metric: Optional[str] = None
    ) -> Tuple[float, float]:
        """Two-sided Student-t interval for the mean: mean +/- t * s / sqrt(n)"""
        level = self._check_confidence_level(
            self.confidence_level if confidence_level is None else confidence_level, metric
        )
        values = self._as_array(data, metric, 'sample')
        n = len(values)

        mean = _mean(values)
        sem = float(np.sqrt(_variance(values))) / np.sqrt(n)
        t_crit = stats.t.ppf((1 + level) / 2, df=n - 1)
        half_width = float(t_crit * sem)

        return (mean - half_width, mean + half_width)

    def describe(self, data: SampleLike) -> DescriptiveStats:
        values = self._as_array(data, None, 'sample')
        return DescriptiveStats(
            mean=_mean(values),
            std=float(np.sqrt(_variance(values))),
            count=len(values)
        )

    def calculate_statistical_power(
        self,
        observed_effect_size: float,
        baseline_size: int,
        enhanced_size: int,
        significance_level: float = None
    ) -> float:
        """Power of a two-sided independent two-sample t-test at the observed effect"""
        alpha = significance_level or (1 - self.confidence_level)

        power = tt_ind_solve_power(
            effect_size=abs(observed_effect_size),
            nobs1=baseline_size,
            alpha=alpha,
            ratio=enhanced_size / baseline_size,
            alternative='two-sided'
        )
        power = float(power)

        if not np.isfinite(power):
            warnings.warn(
                f"Statistical power could not be computed for d={observed_effect_size:.3f}",
                RuntimeWarning
            )

        return power

    def correct_multiple_comparisons(
        self,
        p_values: List[float],
        method: str = None
    ) -> List[float]:
        """Adjust p-values across metrics"""
        method = method or self.correction or 'bonferroni'
        if method not in CORRECTION_METHODS:
            raise ConfigurationError(f"Unknown correction method: {method}", value=method)
        if not p_values:
            return []

        _, corrected, _, _ = multipletests(p_values, method=CORRECTION_METHODS[method])
        return [float(p) for p in corrected]

    @staticmethod
    def interpret_effect_size(d: float) -> str:
        """Conventional Cohen's d magnitude plus direction"""
        abs_d = abs(d)
        if abs_d < 0.2:
            size = "negligible"
        elif abs_d < 0.5:
            size = "small"
        elif abs_d < 0.8:
            size = "medium"
        else:
            size = "large"

        direction = "positive" if d > 0 else "negative" if d < 0 else "no"
        return f"{size} {direction} effect"

    def _check_confidence_level(self, level: float, metric: Optional[str] = None) -> float:
        if isinstance(level, bool) or not isinstance(level, (int, float, np.floating)) or not 0 < level < 1:
            raise ConfigurationError(
                f"Confidence level must lie in (0, 1), got {level!r}", metric=metric, value=level
            )
        return float(level)

    def _as_array(self, data: SampleLike, metric: Optional[str], label: str) -> np.ndarray:
        """Coerce a sample set to a 1-d float array with at least two finite observations"""
        if isinstance(data, MetricSample):
            values = data.values
        elif isinstance(data, pd.Series):
            values = data.to_numpy(dtype=float)
        else:
            values = np.asarray(data, dtype=float)

        values = values.ravel()

        if len(values) < 2:
            raise InsufficientData(
                f"{label} has {len(values)} observation(s); at least 2 are required",
                metric=metric, value=len(values)
            )
        if not np.all(np.isfinite(values)):
            raise InvalidParameter(
                f"{label} contains non-finite values", metric=metric, value=int((~np.isfinite(values)).sum())
            )

        return values
