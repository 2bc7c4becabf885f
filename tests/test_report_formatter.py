"""
Tests for statistical_analysis/report_formatter.py

Covers column layout, configurable widths and precisions, the
parse-back round trip, overflow handling and the DataFrame view.
"""

from __future__ import annotations

import math
from dataclasses import replace

import pandas as pd
import pytest

from statistical_analysis.report_formatter import (
    NUMERIC_COLUMNS,
    FormatterConfig,
    ReportFormatter,
)
from validation_errors import ConfigurationError, InsufficientData


def _tolerance(precision: int) -> float:
    return 0.5 * 10 ** -precision + 1e-12


class TestLayout:
    """Every row and the header share the same column positions."""

    def test_header_and_row_widths_match(self, comparison_result):
        formatter = ReportFormatter()
        row = formatter.format_row("throughput", comparison_result)
        assert len(row.line) == len(formatter.header())

    def test_spans_cover_row(self, comparison_result):
        config = FormatterConfig()
        spans = config.column_spans()
        row = ReportFormatter(config).format_row("throughput", comparison_result)
        assert list(spans) == ["metric"] + [name for name, _, _ in NUMERIC_COLUMNS]
        assert spans["ci_upper"][1] == len(row.line)

    def test_default_precisions(self, comparison_result):
        row = ReportFormatter().format_row("throughput", comparison_result)
        assert row.fields["p_value"] == "0.000123"
        assert row.fields["effect_size"] == "14.19"
        assert row.fields["ci_lower"] == "2.99"
        assert row.fields["ci_upper"] == "3.01"
        assert row.fields["percent_change"] == "150.0"

    def test_custom_widths_and_precision(self, comparison_result):
        config = FormatterConfig(name_width=20, column_width=10,
                                 column_widths={"p_value": 14}, p_value_precision=8)
        formatter = ReportFormatter(config)
        row = formatter.format_row("throughput", comparison_result)
        start, end = config.column_spans()["p_value"]
        assert end - start == 14
        assert row.line[start:end].strip() == "0.00012300"
        assert row.line[:20] == "throughput".ljust(20)

    def test_separator(self, comparison_result):
        config = FormatterConfig(separator=" | ")
        formatter = ReportFormatter(config)
        row = formatter.format_row("throughput", comparison_result)
        assert row.line.count(" | ") == len(NUMERIC_COLUMNS)
        assert formatter.parse_row(row.line)["p_value"] == pytest.approx(0.000123)


class TestRoundTrip:
    """Parsing a row by column position recovers the inputs within rounding."""

    @pytest.mark.parametrize("config", [
        FormatterConfig(),
        FormatterConfig(mean_precision=5, ci_precision=4, effect_size_precision=3, column_width=14),
        FormatterConfig(mean_precision=0, percent_precision=0, ci_precision=0, effect_size_precision=0),
    ])
    def test_round_trip(self, comparison_result, config):
        formatter = ReportFormatter(config)
        row = formatter.format_row("throughput", comparison_result)
        parsed = formatter.parse_row(row.line)

        assert parsed["metric"] == "throughput"
        for name, _, _ in NUMERIC_COLUMNS:
            assert parsed[name] == pytest.approx(row.values[name], abs=_tolerance(config.precision(name)))

    def test_round_trip_negative_values(self, comparison_result):
        result = replace(comparison_result, effect_size=-3.456, ci_lower=-1.234, ci_upper=-0.5)
        formatter = ReportFormatter()
        parsed = formatter.parse_row(formatter.format_row("latency", result).line)
        assert parsed["effect_size"] == pytest.approx(-3.46)
        assert parsed["ci_lower"] == pytest.approx(-1.23)


class TestOverflow:
    """Values that cannot fit their column are rejected instead of shifting columns."""

    def test_value_too_wide(self, comparison_result):
        result = replace(comparison_result, ci_upper=123456789.0)
        with pytest.raises(ConfigurationError) as exc_info:
            ReportFormatter(FormatterConfig(column_width=8)).format_row("throughput", result)
        assert exc_info.value.metric == "throughput"

    def test_metric_name_too_wide(self, comparison_result):
        with pytest.raises(ConfigurationError):
            ReportFormatter(FormatterConfig(name_width=4)).format_row("throughput", comparison_result)

    def test_nan_renders(self, comparison_result):
        from statistical_engine import DescriptiveStats
        result = replace(comparison_result, baseline=DescriptiveStats(mean=0.0, std=1.0, count=10))
        formatter = ReportFormatter()
        row = formatter.format_row("throughput", result)
        assert row.fields["percent_change"] == "nan"
        assert math.isnan(formatter.parse_row(row.line)["percent_change"])


class TestConfigValidation:
    """Invalid formatter settings raise ConfigurationError."""

    @pytest.mark.parametrize("kwargs", [
        {"name_width": 0},
        {"column_width": 0},
        {"column_widths": {"p_value": 0}},
        {"column_widths": {"no_such_column": 10}},
        {"p_value_precision": -1},
        {"separator": ""},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ConfigurationError):
            FormatterConfig(**kwargs)


class TestReport:
    """Report assembly, rendering and DataFrame export."""

    def test_rows_follow_mapping_order(self, comparison_result):
        results = {
            "throughput": comparison_result,
            "latency": replace(comparison_result, metric="latency"),
            "coverage": replace(comparison_result, metric="coverage"),
        }
        report = ReportFormatter().format(results)
        assert report.metrics == ["throughput", "latency", "coverage"]
        assert len(report) == 3

    def test_render(self, comparison_result):
        formatter = ReportFormatter()
        report = formatter.format({"throughput": comparison_result})
        lines = report.render().splitlines()
        assert lines[0] == formatter.header()
        assert set(lines[1]) == {"-"}
        assert lines[2].startswith("throughput")

    def test_failures_listed_after_rows(self, comparison_result):
        error = InsufficientData("1 observation", metric="coverage", value=1)
        report = ReportFormatter().format({"throughput": comparison_result}, {"coverage": error})
        last = report.lines()[-1]
        assert last.startswith("coverage: FAILED (InsufficientData")

    def test_to_dataframe(self, comparison_result):
        report = ReportFormatter().format({"throughput": comparison_result})
        frame = report.to_dataframe()
        assert isinstance(frame, pd.DataFrame)
        assert frame.index.name == "metric"
        assert list(frame.index) == ["throughput"]
        assert frame.loc["throughput", "p_value"] == 0.000123
        assert frame.loc["throughput", "percent_change"] == pytest.approx(150.0)
