import pytest

from erpsight.benchmarks import industry
from erpsight.benchmarks.industry import (
    DEFAULT_INDUSTRY, benchmark_score, benchmark_status, calc_benchmark_comparison, get_benchmark_metadata,
    get_industry_benchmarks, get_industry_list, load_benchmarks,
)


def test_bundled_file_loads():
    data = load_benchmarks()
    assert DEFAULT_INDUSTRY in data["industries"]
    assert get_industry_list() == [DEFAULT_INDUSTRY]
    assert get_benchmark_metadata()["default_industry"] == DEFAULT_INDUSTRY


def test_missing_file_falls_back_to_defaults(monkeypatch, tmp_path, caplog):
    monkeypatch.setattr(industry, "BENCHMARK_FILE", tmp_path / "missing.json")
    data = load_benchmarks()
    assert data["industries"][DEFAULT_INDUSTRY]["DSO"]["lower_is_better"] is True
    assert "Failed to load benchmark file" in caplog.text


def test_malformed_file_falls_back_to_defaults(monkeypatch, tmp_path):
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    monkeypatch.setattr(industry, "BENCHMARK_FILE", broken)
    assert get_industry_benchmarks("없는업종")["영업이익율"]["value"] == 8


def test_unknown_industry_uses_default():
    assert get_industry_benchmarks("없는업종") == get_industry_benchmarks(DEFAULT_INDUSTRY)


@pytest.mark.parametrize("value, lower, expected", [
    (10, False, "above"), (8, False, "at"), (7, False, "below"),
    (50, True, "above"), (60, True, "at"), (70, True, "below"),
])
def test_benchmark_status(value, lower, expected):
    benchmark = 60 if lower else 8
    assert benchmark_status(value, benchmark, lower) == expected


def test_benchmark_score():
    assert benchmark_score(10, 8) == 100.0
    assert benchmark_score(4, 8) == pytest.approx(50.0)
    assert benchmark_score(-4, 8) == 0.0
    assert benchmark_score(45, 60, lower_is_better=True) == 100.0
    assert benchmark_score(90, 60, lower_is_better=True) == pytest.approx(50.0)


def test_comparison_skips_missing_metrics():
    result = calc_benchmark_comparison({"영업이익율": 4, "DSO": 45, "수금율": None})
    assert [m.name for m in result.metrics] == ["영업이익율", "DSO"]
    op, dso = result.metrics
    assert op.status == "below"
    assert op.gap == -4
    assert op.gap_percent == pytest.approx(-50.0)
    assert dso.status == "above"
    assert result.overall_score == pytest.approx(75.0)


def test_comparison_with_nothing_to_compare():
    result = calc_benchmark_comparison({})
    assert result.metrics == []
    assert result.overall_score == 0.0
