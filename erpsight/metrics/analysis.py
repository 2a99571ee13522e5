"""
Analysis orchestrator.

Applies the org / date filters to a dataset, runs the calculators that feed
the dashboard overview, scores the industry benchmarks and synthesises the
insights and the monthly report. Each calculator stays independent; this
module only wires their outputs together.
"""

from dataclasses import dataclass, field
import logging
from typing import Optional

from erpsight.benchmarks.industry import BenchmarkResult, calc_benchmark_comparison
from erpsight.commentary.insights import Insight, InsightInputs, forecast_accuracy, generate_insights
from erpsight.commentary.report import MonthlyReport, ReportInput, generate_monthly_report
from erpsight.config import Settings, get_settings
from erpsight.metrics.aggregation import is_finite, pct, sum_field
from erpsight.metrics.cashcycle import (
    CCCAnalysis, DSOMetric, calc_ccc_analysis, calc_ccc_by_org, calc_dso_by_org, calc_overall_dso,
)
from erpsight.metrics.kpi import (
    MonthlyTrend, OverviewKpis, RankedAmount, calc_monthly_trends, calc_org_ranking, calc_overview_kpis,
    calc_top_customers,
)
from erpsight.metrics.pipeline import PipelineStage, calc_o2c_pipeline
from erpsight.metrics.receivables import (
    AgingSummary, RiskAssessment, calc_aging_summary, calc_risk_assessments,
)
from erpsight.metrics.segmentation import ChurnSummary, ParetoItem, calc_sales_pareto, predict_churn
from erpsight.metrics.timeseries import AnomalyStats, detect_sales_anomalies
from erpsight.records.models import ErpDataset
from erpsight.utils.dates import calc_change_rate, filter_by_date_range, filter_by_org
from erpsight.utils.orgs import filter_by_org_fuzzy

logger = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    """Everything the overview, export and report consumers need for one filter state."""
    period: str = ""
    kpis: OverviewKpis = field(default_factory=OverviewKpis)
    monthly_trends: list[MonthlyTrend] = field(default_factory=list)
    org_ranking: list[RankedAmount] = field(default_factory=list)
    top_customers: list[RankedAmount] = field(default_factory=list)
    pipeline: list[PipelineStage] = field(default_factory=list)
    aging_summary: AgingSummary = field(default_factory=AgingSummary)
    risk_assessments: list[RiskAssessment] = field(default_factory=list)
    dso_metrics: list[DSOMetric] = field(default_factory=list)
    overall_dso: Optional[float] = None       # None when unmeasurable
    ccc_analysis: CCCAnalysis = field(default_factory=CCCAnalysis)
    customer_pareto: list[ParetoItem] = field(default_factory=list)
    product_pareto: list[ParetoItem] = field(default_factory=list)
    churn: ChurnSummary = field(default_factory=ChurnSummary)
    anomalies: AnomalyStats = field(default_factory=AnomalyStats)
    benchmark: Optional[BenchmarkResult] = None
    insights: list[Insight] = field(default_factory=list)
    report: Optional[MonthlyReport] = None


# ── Filtering ─────────────────────────────────────────────────────────────────

def apply_filters(dataset: ErpDataset, org_names=None, date_range: Optional[dict] = None) -> ErpDataset:
    """
    Return a new dataset restricted to the selected orgs and month range.
    Transaction lists match org names exactly; the profit reports, whose team
    names carry suffixes, match fuzzily. Profit reports have no dates.
    """
    org_names = set(org_names or [])
    return ErpDataset(
        organizations=list(dataset.organizations),
        sales=filter_by_date_range(filter_by_org(dataset.sales, org_names), date_range, "sales_date"),
        orders=filter_by_date_range(filter_by_org(dataset.orders, org_names), date_range, "order_date"),
        collections=filter_by_date_range(filter_by_org(dataset.collections, org_names), date_range,
                                         "collection_date"),
        receivables=filter_by_org(dataset.receivables, org_names),
        org_profit=filter_by_org_fuzzy(dataset.org_profit, org_names, "org_team"),
        team_contribution=filter_by_org_fuzzy(dataset.team_contribution, org_names, "org_team"),
        profitability=filter_by_org_fuzzy(dataset.profitability, org_names, "org_team"),
        customer_item_detail=filter_by_org_fuzzy(dataset.customer_item_detail, org_names, "org_team"),
        item_cost=filter_by_org_fuzzy(dataset.item_cost, org_names, "org_team"),
    )


# ── Derived ratios ────────────────────────────────────────────────────────────

def _period_label(trends: list[MonthlyTrend], date_range: Optional[dict]) -> str:
    if date_range and date_range.get("from") and date_range.get("to"):
        start, end = date_range["from"], date_range["to"]
    elif trends:
        start, end = trends[0].month, trends[-1].month
    else:
        return "전체 기간"
    return start if start == end else f"{start} ~ {end}"


def _sales_growth(trends: list[MonthlyTrend]) -> Optional[float]:
    """Last month against the month before; None with fewer than two months."""
    if len(trends) < 2:
        return None
    return calc_change_rate(trends[-1].sales, trends[-2].sales)


def _net_collection_rate(dataset: ErpDataset, total_sales: float) -> Optional[float]:
    if total_sales <= 0:
        return None
    collected = sum_field(dataset.collections, lambda r: r.book_amount)
    prepaid = sum_field(dataset.collections, lambda r: r.book_prepayment)
    return pct(collected - prepaid, total_sales)


def _profit_rate(dataset: ErpDataset, attr: str) -> Optional[float]:
    sales = sum_field(dataset.org_profit, lambda r: r.sales.actual)
    if sales <= 0:
        return None
    return pct(sum_field(dataset.org_profit, lambda r: getattr(r, attr).actual), sales)


def benchmark_actuals(kpis: OverviewKpis, gp_rate: Optional[float], cm_rate: Optional[float],
                      dso: Optional[float], growth: Optional[float]) -> dict[str, Optional[float]]:
    return {
        "매출총이익율": gp_rate,
        "영업이익율": kpis.operating_profit_rate if gp_rate is not None else None,
        "수금율": kpis.collection_rate if kpis.total_sales > 0 else None,
        "DSO": dso,
        "매출성장률": growth,
        "계획달성률": kpis.sales_plan_achievement if kpis.sales_plan_achievement > 0 else None,
        "공헌이익율": cm_rate,
    }


# ── Entry point ───────────────────────────────────────────────────────────────

def run_analysis(
    dataset: ErpDataset,
    org_names=None,
    date_range: Optional[dict] = None,
    settings: Optional[Settings] = None,
) -> AnalysisResult:
    """
    Main entry point: filter the dataset and run the overview calculators.
    date_range: {"from": "YYYY-MM", "to": "YYYY-MM"} or None for all months.
    """
    settings = settings or get_settings()
    data = apply_filters(dataset, org_names, date_range)

    result = AnalysisResult()
    result.kpis = calc_overview_kpis(data.sales, data.orders, data.collections, data.org_profit)
    result.monthly_trends = calc_monthly_trends(data.sales, data.orders, data.collections)
    result.period = _period_label(result.monthly_trends, date_range)
    result.org_ranking = calc_org_ranking(data.sales)
    result.top_customers = calc_top_customers(data.sales, settings.top_n)
    result.pipeline = calc_o2c_pipeline(data.orders, data.sales, data.collections)

    # ── Receivables / cash cycle ──────────────────────────────────────────────
    result.aging_summary = calc_aging_summary(data.receivables)
    result.risk_assessments = calc_risk_assessments(data.receivables)
    result.dso_metrics = calc_dso_by_org(data.receivables, data.sales)
    overall_dso = calc_overall_dso(data.receivables, data.sales) if data.receivables else None
    result.overall_dso = overall_dso if overall_dso is not None and is_finite(overall_dso) else None
    result.ccc_analysis = calc_ccc_analysis(calc_ccc_by_org(result.dso_metrics, data.team_contribution))

    # ── Segmentation / time series ────────────────────────────────────────────
    result.customer_pareto = calc_sales_pareto(data.sales, "customer")
    result.product_pareto = calc_sales_pareto(data.sales, "product")
    result.churn = predict_churn(data.sales)
    result.anomalies = detect_sales_anomalies(data.sales, settings.anomaly_multiplier)

    # ── Benchmarks / insights / report ────────────────────────────────────────
    gp_rate = _profit_rate(data, "gross_profit")
    cm_rate = _profit_rate(data, "contribution_margin")
    growth = _sales_growth(result.monthly_trends)
    result.benchmark = calc_benchmark_comparison(
        benchmark_actuals(result.kpis, gp_rate, cm_rate, result.overall_dso, growth),
        settings.industry,
    )

    plan_sales = sum_field(data.org_profit, lambda r: r.sales.plan)
    actual_sales = sum_field(data.org_profit, lambda r: r.sales.actual)
    result.insights = generate_insights(InsightInputs(
        kpis=result.kpis,
        net_collection_rate=_net_collection_rate(data, result.kpis.total_sales),
        dso=result.overall_dso,
        ccc=result.ccc_analysis.avg_ccc if result.ccc_analysis.metrics else None,
        forecast_accuracy=forecast_accuracy(actual_sales, plan_sales),
        contribution_margin_rate=cm_rate,
    ))

    ranking = result.org_ranking
    result.report = generate_monthly_report(
        ReportInput(
            total_sales=result.kpis.total_sales,
            total_orders=result.kpis.total_orders,
            total_collections=result.kpis.total_collection,
            collection_rate=result.kpis.collection_rate,
            gp_rate=gp_rate or 0.0,
            op_rate=result.kpis.operating_profit_rate,
            plan_achievement=result.kpis.sales_plan_achievement,
            dso=result.overall_dso,
            sales_growth=growth or 0.0,
            top_org=ranking[0].name if ranking else "",
            bottom_org=ranking[-1].name if len(ranking) > 1 else "",
            at_risk_customers=result.churn.at_risk_customers,
            total_customers=result.churn.total_customers,
        ),
        result.period,
        result.insights,
    )

    logger.info(
        f"Analysis complete for {result.period}: {len(data.sales)} sales rows, "
        f"{len(result.insights)} insights"
    )
    return result
