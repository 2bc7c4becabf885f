from typing import Dict, List, Optional, Any, Tuple
from dataclasses import dataclass, replace
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
import argparse
import logging
import sys

from experiment_design.sample_generator import Condition, SampleGenerator, generate_samples
from experiment_design.scenario_config import PRESETS, ScenarioConfig
from statistical_engine import CORRECTION_METHODS, ComparisonResult, StatisticalEngine
from statistical_analysis.report_formatter import FormatterConfig, Report, ReportFormatter
from validation_errors import DomainError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationRun:
    scenario: str
    results: Dict[str, ComparisonResult]
    failures: Dict[str, DomainError]
    report: Report

    @property
    def succeeded(self) -> bool:
        return not self.failures


class ValidationFramework:
    """Runs the generate -> compare -> format pipeline for one scenario"""

    def __init__(self, config: ScenarioConfig, formatter_config: Optional[FormatterConfig] = None):
        self.config = config.validate()
        self.statistical_engine = StatisticalEngine(
            confidence_level=config.confidence_level,
            correction=config.correction
        )
        self.formatter = ReportFormatter(formatter_config)
        self.sample_generator = SampleGenerator(config.seed)

    def run(self, isolate_failures: bool = False, max_workers: Optional[int] = None) -> ValidationRun:
        """Compare every configured metric and format the report.

        With isolate_failures a metric's DomainError is recorded and the
        remaining metrics still run; otherwise the first failure (in metric
        order) is raised. Results are only assembled once every metric has
        finished, whether or not a thread pool is used.
        """
        metrics = self.config.metrics
        streams = self.sample_generator.streams(metrics)
        logger.info("Running scenario %s: %d metrics, seed=%d, confidence=%.3f",
                    self.config.name, len(metrics), self.config.seed, self.config.confidence_level)

        if max_workers and max_workers > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as pool:
                futures = {m: pool.submit(self._compare_metric, m, streams[m]) for m in metrics}
                outcomes = {m: self._outcome(futures[m].exception, futures[m].result) for m in metrics}
        else:
            outcomes = {}
            for metric in metrics:
                try:
                    outcomes[metric] = (self._compare_metric(metric, streams[metric]), None)
                except DomainError as error:
                    if not isolate_failures:
                        raise
                    outcomes[metric] = (None, error)

        results: Dict[str, ComparisonResult] = {}
        failures: Dict[str, DomainError] = {}
        for metric in metrics:
            result, error = outcomes[metric]
            if error is None:
                results[metric] = result
                continue
            if not isolate_failures:
                raise error
            logger.warning("Comparison failed for %s: %s", metric, error)
            failures[metric] = error

        results = self._apply_correction(results)
        report = self.formatter.format(results, failures)

        logger.info("Scenario %s finished: %d compared, %d failed",
                    self.config.name, len(results), len(failures))
        return ValidationRun(scenario=self.config.name, results=results, failures=failures, report=report)

    def compare_metric(self, metric: str) -> ComparisonResult:
        """Run a single metric with the same stream it gets in a full run"""
        if metric not in self.config.baseline:
            raise KeyError(f"Metric {metric} not configured")
        streams = self.sample_generator.streams(self.config.metrics)
        return self._compare_metric(metric, streams[metric])

    def sample_size_sweep(self, metric: str, sample_sizes: List[int]) -> List[Tuple[int, float]]:
        """(n, confidence interval width) of the enhanced mean for each sample size"""
        if metric not in self.config.enhanced:
            raise KeyError(f"Metric {metric} not configured")

        parameters = self.config.enhanced[metric]
        series = []
        for n in sample_sizes:
            sample = generate_samples(
                metric, Condition.ENHANCED, parameters.mean, parameters.std, n, seed=self.config.seed
            )
            lower, upper = self.statistical_engine.mean_confidence_interval(sample, metric=metric)
            series.append((n, upper - lower))
        return series

    def _compare_metric(self, metric: str, stream) -> ComparisonResult:
        parameters = self.config.parameters(metric)
        baseline, enhanced = self.sample_generator.generate_pair(
            metric, parameters['baseline'], parameters['enhanced'], stream
        )
        result = self.statistical_engine.compare(baseline, enhanced, metric=metric)
        logger.debug("%s", result)
        return result

    def _apply_correction(self, results: Dict[str, ComparisonResult]) -> Dict[str, ComparisonResult]:
        if not self.config.correction or not results:
            return results

        adjusted = self.statistical_engine.correct_multiple_comparisons(
            [r.p_value for r in results.values()], method=self.config.correction
        )
        return {
            metric: replace(result, adjusted_p_value=p)
            for (metric, result), p in zip(results.items(), adjusted)
        }

    @staticmethod
    def _outcome(get_exception, get_result) -> Tuple[Optional[ComparisonResult], Optional[DomainError]]:
        error = get_exception()
        if error is None:
            return get_result(), None
        if isinstance(error, DomainError):
            return None, error
        raise error


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Compare baseline and enhanced metric samples and print a validation report"
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--config", type=str, help="Scenario JSON file")
    source.add_argument("--preset", type=str, choices=sorted(PRESETS), default="default",
                        help="Built-in scenario")
    parser.add_argument("--seed", type=int, help="Root random seed")
    parser.add_argument("--samples", type=int, help="Samples per condition")
    parser.add_argument("--confidence", type=float, help="Confidence level in (0, 1)")
    parser.add_argument("--correction", choices=sorted(CORRECTION_METHODS),
                        help="Multiple comparison correction across metrics")
    parser.add_argument("--isolate", action="store_true",
                        help="Keep going when one metric's comparison fails")
    parser.add_argument("--workers", type=int, default=None, help="Compare metrics on a thread pool")
    parser.add_argument("--output", type=str, help="Write the report to this file instead of stdout")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    try:
        config = ScenarioConfig.load(Path(args.config)) if args.config else PRESETS[args.preset]
        overrides: Dict[str, Any] = {}
        if args.seed is not None:
            overrides['seed'] = args.seed
        if args.samples is not None:
            overrides['sample_count'] = args.samples
        if args.confidence is not None:
            overrides['confidence_level'] = args.confidence
        if args.correction is not None:
            overrides['correction'] = args.correction
        config = replace(config, **overrides)

        run = ValidationFramework(config).run(isolate_failures=args.isolate, max_workers=args.workers)
    except DomainError as error:
        logger.error("Validation aborted: %s", error)
        return 2

    text = run.report.render()
    if args.output:
        output = Path(args.output)
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(text + "\n", encoding="utf-8")
        logger.info("Report written to %s", output)
    else:
        print(text)

    return 0 if run.succeeded else 1


if __name__ == "__main__":
    sys.exit(main())
