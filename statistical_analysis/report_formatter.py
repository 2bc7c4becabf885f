import pandas as pd
from typing import Dict, List, Tuple, Optional, Any, Mapping
from dataclasses import dataclass, field
import logging

from statistical_engine import ComparisonResult
from validation_errors import ConfigurationError


logger = logging.getLogger(__name__)


# (field, header label, precision attribute on FormatterConfig)
NUMERIC_COLUMNS: List[Tuple[str, str, str]] = [
    ('baseline_mean', 'Baseline', 'mean_precision'),
    ('enhanced_mean', 'Enhanced', 'mean_precision'),
    ('percent_change', 'Change %', 'percent_precision'),
    ('p_value', 'p-value', 'p_value_precision'),
    ('effect_size', "Cohen's d", 'effect_size_precision'),
    ('ci_lower', 'CI lower', 'ci_precision'),
    ('ci_upper', 'CI upper', 'ci_precision'),
]


@dataclass(frozen=True)
class FormatterConfig:
    name_width: int = 14
    column_width: int = 12
    column_widths: Dict[str, int] = field(default_factory=dict)  # Per-column overrides
    separator: str = " "
    mean_precision: int = 3
    percent_precision: int = 1
    p_value_precision: int = 6
    effect_size_precision: int = 2
    ci_precision: int = 2

    def __post_init__(self):
        known = {name for name, _, _ in NUMERIC_COLUMNS}
        unknown = set(self.column_widths) - known
        if unknown:
            raise ConfigurationError(f"Unknown report columns: {sorted(unknown)}", value=sorted(unknown))

        for name in ['name_width', 'column_width']:
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be >= 1", value=getattr(self, name))
        for column, width in self.column_widths.items():
            if width < 1:
                raise ConfigurationError(f"Width of column {column} must be >= 1", value=width)
        for _, _, precision_attr in NUMERIC_COLUMNS:
            if getattr(self, precision_attr) < 0:
                raise ConfigurationError(f"{precision_attr} must be >= 0", value=getattr(self, precision_attr))
        if not self.separator:
            raise ConfigurationError("Column separator must not be empty", value=self.separator)

    def width(self, column: str) -> int:
        if column == 'metric':
            return self.name_width
        return self.column_widths.get(column, self.column_width)

    def precision(self, column: str) -> int:
        for name, _, precision_attr in NUMERIC_COLUMNS:
            if name == column:
                return getattr(self, precision_attr)
        raise KeyError(column)

    def column_spans(self) -> Dict[str, Tuple[int, int]]:
        """[start, end) character offsets of every column in a formatted row"""
        spans = {'metric': (0, self.name_width)}
        position = self.name_width
        for name, _, _ in NUMERIC_COLUMNS:
            start = position + len(self.separator)
            position = start + self.width(name)
            spans[name] = (start, position)
        return spans


@dataclass(frozen=True)
class ReportRow:
    metric: str
    fields: Dict[str, str]
    values: Dict[str, float]
    line: str


@dataclass(frozen=True)
class Report:
    header: str
    rows: Tuple[ReportRow, ...]
    failures: Dict[str, str] = field(default_factory=dict)

    def __iter__(self):
        return iter(self.rows)

    def __len__(self) -> int:
        return len(self.rows)

    @property
    def metrics(self) -> List[str]:
        return [row.metric for row in self.rows]

    def lines(self) -> List[str]:
        """Header, rule, one line per metric, then any failed metrics"""
        lines = [self.header, "-" * len(self.header)]
        lines.extend(row.line for row in self.rows)
        for metric, reason in self.failures.items():
            lines.append(f"{metric}: FAILED ({reason})")
        return lines

    def render(self) -> str:
        return "\n".join(self.lines())

    def to_dataframe(self) -> pd.DataFrame:
        """Unrounded values, one row per metric"""
        columns = [name for name, _, _ in NUMERIC_COLUMNS]
        frame = pd.DataFrame(
            [row.values for row in self.rows],
            index=pd.Index(self.metrics, name='metric'),
            columns=columns
        )
        return frame


class ReportFormatter:
    """Renders comparison results as fixed-width text rows"""

    def __init__(self, config: Optional[FormatterConfig] = None):
        self.config = config or FormatterConfig()

    def header(self) -> str:
        config = self.config
        parts = ["Metric"[:config.name_width].ljust(config.name_width)]
        for name, label, _ in NUMERIC_COLUMNS:
            width = config.width(name)
            parts.append(config.separator + label[:width].rjust(width))
        return "".join(parts)

    def format(
        self,
        results: Mapping[str, ComparisonResult],
        failures: Optional[Mapping[str, Any]] = None
    ) -> Report:
        """Format results in mapping order; failures are listed after the rows"""
        rows = tuple(self.format_row(metric, result) for metric, result in results.items())
        failure_text = {
            metric: f"{type(error).__name__}: {error}" if isinstance(error, BaseException) else str(error)
            for metric, error in (failures or {}).items()
        }
        logger.debug("Formatted %d report rows (%d failures)", len(rows), len(failure_text))
        return Report(header=self.header(), rows=rows, failures=failure_text)

    def format_row(self, metric: str, result: ComparisonResult) -> ReportRow:
        config = self.config

        if len(metric) > config.name_width:
            raise ConfigurationError(
                f"Metric name is wider than the name column ({config.name_width})",
                metric=metric, value=len(metric)
            )

        values = {
            'baseline_mean': result.baseline.mean,
            'enhanced_mean': result.enhanced.mean,
            'percent_change': result.percent_change,
            'p_value': result.p_value,
            'effect_size': result.effect_size,
            'ci_lower': result.ci_lower,
            'ci_upper': result.ci_upper,
        }

        fields = {}
        parts = [metric.ljust(config.name_width)]
        for name, _, _ in NUMERIC_COLUMNS:
            text = f"{values[name]:.{config.precision(name)}f}"
            width = config.width(name)
            if len(text) > width:
                raise ConfigurationError(
                    f"Value {text} does not fit column {name} (width {width})",
                    metric=metric, value=values[name]
                )
            fields[name] = text
            parts.append(config.separator + text.rjust(width))

        return ReportRow(metric=metric, fields=fields, values=values, line="".join(parts))

    def parse_row(self, line: str) -> Dict[str, Any]:
        """Read a formatted row back by column position"""
        parsed: Dict[str, Any] = {}
        for name, (start, end) in self.config.column_spans().items():
            text = line[start:end].strip()
            parsed[name] = text if name == 'metric' else float(text)
        return parsed
