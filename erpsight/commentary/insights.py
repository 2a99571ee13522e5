"""
Rule-based management insights.

Each rule looks at one metric and emits at most one Insight. Rules do not
depend on each other; `generate_insights` only sorts the combined list so the
most severe items come first.
"""

from dataclasses import dataclass
import logging
from typing import Optional

from erpsight.metrics.aggregation import is_finite
from erpsight.metrics.kpi import OverviewKpis

logger = logging.getLogger(__name__)

SEVERITY_ORDER = {"critical": 0, "warning": 1, "neutral": 2, "positive": 3}

# Category taxonomy shown on the dashboard
CATEGORY_SALES = "매출"
CATEGORY_COLLECTION = "수금"
CATEGORY_PROFIT = "수익성"
CATEGORY_ORDERS = "수주"
CATEGORY_RECEIVABLES = "미수금"


@dataclass
class Insight:
    id: str
    title: str
    message: str
    severity: str                  # 'critical', 'warning', 'positive', 'neutral'
    category: str
    metric: Optional[str] = None
    value: Optional[float] = None


@dataclass
class InsightInputs:
    kpis: OverviewKpis
    net_collection_rate: Optional[float] = None    # excludes prepayments
    dso: Optional[float] = None
    ccc: Optional[float] = None
    forecast_accuracy: Optional[float] = None
    contribution_margin_rate: Optional[float] = None


def _known(value: Optional[float]) -> bool:
    return value is not None and is_finite(value)


# ── Rules ─────────────────────────────────────────────────────────────────────

def _collection_rule(data: InsightInputs) -> Optional[Insight]:
    rate = data.net_collection_rate
    if not _known(rate):
        rate = data.kpis.collection_rate
    if rate >= 95:
        return Insight("col-high", "순수 수금율 우수",
                       f"순수 수금율 {rate:.1f}%로 매우 양호합니다 (선수금 제외 기준).",
                       "positive", CATEGORY_COLLECTION, "collection_rate", rate)
    if rate < 70:
        return Insight("col-low", "순수 수금율 저조 경고",
                       f"순수 수금율 {rate:.1f}%로 목표(70%) 미달입니다 (선수금 제외 기준). "
                       f"연체 거래처 집중 관리가 필요합니다.",
                       "critical", CATEGORY_COLLECTION, "collection_rate", rate)
    if rate < 85:
        return Insight("col-med", "순수 수금율 주의",
                       f"순수 수금율 {rate:.1f}%로 개선이 필요합니다 (선수금 제외 기준).",
                       "warning", CATEGORY_COLLECTION, "collection_rate", rate)
    return None


def _operating_margin_rule(data: InsightInputs) -> Optional[Insight]:
    rate = data.kpis.operating_profit_rate
    if rate < 0:
        return Insight("op-neg", "영업적자 발생",
                       f"영업이익율 {rate:.1f}%로 적자 상태입니다. 비용 구조 점검이 시급합니다.",
                       "critical", CATEGORY_PROFIT, "operating_profit_rate", rate)
    if rate < 5:
        return Insight("op-low", "영업이익율 저조",
                       f"영업이익율 {rate:.1f}%로 수익성 개선이 필요합니다. "
                       f"원가절감 또는 고마진 제품 확대를 검토하세요.",
                       "warning", CATEGORY_PROFIT, "operating_profit_rate", rate)
    if rate >= 10:
        return Insight("op-high", "영업이익율 양호",
                       f"영업이익율 {rate:.1f}%로 수익성이 양호합니다.",
                       "positive", CATEGORY_PROFIT, "operating_profit_rate", rate)
    return None


def _plan_rule(data: InsightInputs) -> Optional[Insight]:
    rate = data.kpis.sales_plan_achievement
    if rate <= 0:
        return None
    if rate >= 100:
        return Insight("plan-over", "매출 계획 초과 달성",
                       f"매출계획달성률 {rate:.1f}%로 목표를 초과 달성했습니다.",
                       "positive", CATEGORY_SALES, "sales_plan_achievement", rate)
    if rate < 80:
        return Insight("plan-low", "매출 계획 미달",
                       f"매출계획달성률 {rate:.1f}%로 목표(80%) 미달입니다. 영업 활동 강화가 필요합니다.",
                       "warning", CATEGORY_SALES, "sales_plan_achievement", rate)
    return None


def _dso_rule(data: InsightInputs) -> Optional[Insight]:
    dso = data.dso
    if not _known(dso):
        return None
    if dso > 90:
        return Insight("dso-high", "DSO 과다",
                       f"매출채권 회수기간 {dso:.0f}일로 매우 길어 현금흐름에 부정적입니다. "
                       f"채권 회수 속도 개선이 시급합니다.",
                       "critical", CATEGORY_RECEIVABLES, "dso", dso)
    if dso > 60:
        return Insight("dso-med", "DSO 주의",
                       f"매출채권 회수기간 {dso:.0f}일로 업종 평균(60일) 이상입니다.",
                       "warning", CATEGORY_RECEIVABLES, "dso", dso)
    if 0 < dso <= 30:
        return Insight("dso-low", "DSO 우수",
                       f"매출채권 회수기간 {dso:.0f}일로 현금 회수가 빠릅니다.",
                       "positive", CATEGORY_RECEIVABLES, "dso", dso)
    return None


def _ccc_rule(data: InsightInputs) -> Optional[Insight]:
    ccc = data.ccc
    if not _known(ccc):
        return None
    if ccc < 0:
        return Insight("ccc-neg", "현금전환주기 우수",
                       f"CCC {ccc:.0f}일로 매입 결제 전에 매출 회수가 이루어지고 있습니다.",
                       "positive", CATEGORY_COLLECTION, "ccc", ccc)
    if ccc > 60:
        return Insight("ccc-high", "현금전환주기 주의",
                       f"CCC {ccc:.0f}일로 운전자본 부담이 큽니다. DSO 단축과 DPO 연장을 동시에 추진하세요.",
                       "warning", CATEGORY_COLLECTION, "ccc", ccc)
    return None


def _forecast_rule(data: InsightInputs) -> Optional[Insight]:
    accuracy = data.forecast_accuracy
    if not _known(accuracy):
        return None
    if accuracy < 70:
        return Insight("fc-low", "예측 정확도 저조",
                       f"매출 예측 정확도 {accuracy:.1f}%로 계획 수립 프로세스 개선이 필요합니다.",
                       "warning", CATEGORY_SALES, "forecast_accuracy", accuracy)
    if accuracy >= 90:
        return Insight("fc-high", "예측 정확도 우수",
                       f"매출 예측 정확도 {accuracy:.1f}%로 계획 신뢰도가 높습니다.",
                       "positive", CATEGORY_SALES, "forecast_accuracy", accuracy)
    return None


def _contribution_rule(data: InsightInputs) -> Optional[Insight]:
    rate = data.contribution_margin_rate
    if not _known(rate):
        return None
    if rate < 20:
        return Insight("cm-low", "공헌이익률 저조",
                       f"공헌이익률 {rate:.1f}%로 고정비 회수가 어려울 수 있습니다.",
                       "warning", CATEGORY_PROFIT, "contribution_margin_rate", rate)
    return None


RULES = [
    _collection_rule,
    _operating_margin_rule,
    _plan_rule,
    _dso_rule,
    _ccc_rule,
    _forecast_rule,
    _contribution_rule,
]


# ── Public API ────────────────────────────────────────────────────────────────

def sort_insights(insights: list[Insight]) -> list[Insight]:
    return sorted(insights, key=lambda i: SEVERITY_ORDER.get(i.severity, len(SEVERITY_ORDER)))


def generate_insights(data: InsightInputs) -> list[Insight]:
    """Run every rule and return the triggered insights, critical first."""
    insights = []
    for rule in RULES:
        insight = rule(data)
        if insight is not None:
            insights.append(insight)
    logger.debug(f"{len(insights)} insights generated")
    return sort_insights(insights)


def forecast_accuracy(actual: float, plan: float) -> Optional[float]:
    """100 minus the absolute percentage error of actual against plan, floored at 0. None without a plan."""
    if plan == 0:
        return None
    return max(0.0, 100 - abs(actual - plan) / abs(plan) * 100)
