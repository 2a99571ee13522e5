"""
Industry benchmark scoring.
Loads industry averages from the bundled JSON; falls back to built-in
construction/infrastructure constants when the file cannot be read.
"""

from dataclasses import dataclass, field
import json
import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

BENCHMARK_FILE = Path(__file__).parent / "industry_benchmarks.json"

DEFAULT_INDUSTRY = "인프라/건설"

DEFAULT_BENCHMARKS = {
    "매출총이익율": {"value": 20, "unit": "%"},
    "영업이익율": {"value": 8, "unit": "%"},
    "수금율": {"value": 85, "unit": "%"},
    "DSO": {"value": 60, "unit": "일", "lower_is_better": True},
    "매출성장률": {"value": 5, "unit": "%"},
    "계획달성률": {"value": 100, "unit": "%"},
    "공헌이익율": {"value": 15, "unit": "%"},
}

# within ±10% of the benchmark counts as 'at'
AT_BAND = 0.1


@dataclass
class BenchmarkMetric:
    name: str
    value: float
    benchmark: float
    unit: str
    status: str          # 'above', 'at', 'below' ('above' is always the favourable side)
    gap: float           # value - benchmark
    gap_percent: float
    score: float         # 0-100 contribution to the overall score


@dataclass
class BenchmarkResult:
    industry: str
    metrics: list[BenchmarkMetric] = field(default_factory=list)
    overall_score: float = 0.0


def load_benchmarks() -> dict:
    """Load the benchmark file. Returns built-in defaults if it is missing or malformed."""
    try:
        with open(BENCHMARK_FILE, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Failed to load benchmark file: {e}")
        return {"industries": {DEFAULT_INDUSTRY: DEFAULT_BENCHMARKS},
                "_metadata": {"note": "Bundled benchmark file unavailable; using built-in defaults"}}


def get_industry_list() -> list:
    industries = list(load_benchmarks().get("industries", {}).keys())
    industries.sort()
    return industries


def get_industry_benchmarks(industry: str) -> dict:
    industries = load_benchmarks().get("industries", {})
    return industries.get(industry) or industries.get(DEFAULT_INDUSTRY) or DEFAULT_BENCHMARKS


def get_benchmark_metadata() -> dict:
    return load_benchmarks().get("_metadata", {})


def benchmark_status(value: float, benchmark: float, lower_is_better: bool = False) -> str:
    if lower_is_better:
        if value < benchmark * (1 - AT_BAND):
            return "above"
        if value > benchmark * (1 + AT_BAND):
            return "below"
        return "at"
    if value > benchmark * (1 + AT_BAND):
        return "above"
    if value < benchmark * (1 - AT_BAND):
        return "below"
    return "at"


def benchmark_score(value: float, benchmark: float, lower_is_better: bool = False) -> float:
    """100 at or past the benchmark, scaled down proportionally on the unfavourable side."""
    if lower_is_better:
        if value <= benchmark:
            return 100.0
        return max(0.0, 100 - (value - benchmark) / abs(benchmark) * 100) if benchmark != 0 else 0.0
    if value >= benchmark:
        return 100.0
    return max(0.0, value / benchmark * 100) if benchmark != 0 else 0.0


def calc_benchmark_comparison(actuals: dict[str, Optional[float]],
                              industry: str = DEFAULT_INDUSTRY) -> BenchmarkResult:
    """
    Compare actual KPIs (keyed by metric name, e.g. '영업이익율') against the
    industry averages. Metrics missing from `actuals`, or given as None,
    are left out of both the list and the overall score.
    """
    benchmarks = get_industry_benchmarks(industry)
    metrics = []
    for name, bench in benchmarks.items():
        value = actuals.get(name)
        if value is None:
            continue
        target = float(bench.get("value", 0))
        lower_is_better = bool(bench.get("lower_is_better", False))
        gap = value - target
        metrics.append(BenchmarkMetric(
            name=name,
            value=value,
            benchmark=target,
            unit=bench.get("unit", ""),
            status=benchmark_status(value, target, lower_is_better),
            gap=gap,
            gap_percent=gap / abs(target) * 100 if target != 0 else 0.0,
            score=benchmark_score(value, target, lower_is_better),
        ))

    overall = sum(m.score for m in metrics) / len(metrics) if metrics else 0.0
    return BenchmarkResult(industry, metrics, overall)
