"""
Auto-generated monthly management report.

The report is a list of prioritised sections built from headline figures and
the rule-based insights. Every section builder returns None when it has
nothing to say; `generate_monthly_report` drops those.
"""

from dataclasses import dataclass, field
from datetime import date
import logging
from typing import Optional

from erpsight.commentary.insights import Insight
from erpsight.utils.formatters import format_percent, format_won

logger = logging.getLogger(__name__)


@dataclass
class ReportSection:
    title: str
    content: str
    type: str          # 'summary', 'highlight', 'risk', 'recommendation', 'insight'
    priority: str      # 'high', 'medium', 'low'


@dataclass
class ReportInput:
    total_sales: float = 0.0
    total_orders: float = 0.0
    total_collections: float = 0.0
    collection_rate: float = 0.0
    gp_rate: float = 0.0
    op_rate: float = 0.0
    plan_achievement: float = 0.0
    dso: Optional[float] = None
    sales_growth: float = 0.0
    top_org: str = ""
    bottom_org: str = ""
    at_risk_customers: int = 0
    total_customers: int = 0


@dataclass
class MonthlyReport:
    title: str
    period: str
    generated_at: str
    sections: list[ReportSection] = field(default_factory=list)

    @property
    def summary(self) -> str:
        return self.sections[0].content if self.sections else ""


# ── Section builders ──────────────────────────────────────────────────────────

def _summary_section(data: ReportInput, period: str) -> ReportSection:
    return ReportSection(
        "경영 요약",
        f"{period} 기준 총 매출 {format_won(data.total_sales)}, 수주 {format_won(data.total_orders)}, "
        f"수금 {format_won(data.total_collections)}을 기록하였습니다. "
        f"수금율은 {format_percent(data.collection_rate)}, 매출총이익율 {format_percent(data.gp_rate)}, "
        f"영업이익율 {format_percent(data.op_rate)}입니다.",
        "summary", "high",
    )


def _plan_section(data: ReportInput) -> Optional[ReportSection]:
    rate = data.plan_achievement
    if rate <= 0:
        return None
    if rate >= 100:
        content = f"매출 계획 달성({rate:.1f}%). 목표 초과 달성으로 양호한 성과입니다."
    else:
        content = (f"매출 계획 미달({rate:.1f}%). 목표 대비 {100 - rate:.1f}%p 부족합니다. "
                   f"잔여 기간 집중 관리가 필요합니다.")
    return ReportSection(
        "계획 달성 현황", content,
        "highlight" if rate >= 100 else "risk",
        "medium" if rate >= 90 else "high",
    )


def _growth_section(data: ReportInput) -> ReportSection:
    growth = data.sales_growth
    if growth > 5:
        tail = "양호한 성장세를 유지하고 있습니다."
    elif growth > 0:
        tail = "소폭 성장 중이나 추가 성장 동력이 필요합니다."
    else:
        tail = "역성장 상태로 원인 분석 및 대응이 시급합니다."
    return ReportSection(
        "성장 추세",
        f"전기 대비 매출 성장률 {growth:+.1f}%. {tail}",
        "highlight" if growth > 0 else "risk",
        "high" if growth < 0 else "medium",
    )


def _collection_risk_section(data: ReportInput) -> Optional[ReportSection]:
    dso = data.dso if data.dso is not None else 0.0
    low_collection = data.collection_rate < 80
    if not low_collection and dso <= 90:
        return None
    content = (f"수금율 {format_percent(data.collection_rate)}{' (주의)' if low_collection else ''}, "
               f"DSO {dso:.0f}일{' (경고)' if dso > 90 else ''}. ")
    if dso > 90:
        content += "매출채권 회수 기간이 업종 평균(60일) 대비 길어 현금흐름 관리가 필요합니다."
    else:
        content += "양호한 수준입니다."
    return ReportSection("수금 리스크", content, "risk", "high" if dso > 90 else "medium")


def _org_section(data: ReportInput) -> Optional[ReportSection]:
    if not data.top_org and not data.bottom_org:
        return None
    content = f"최우수 조직: {data.top_org or '-'}."
    if data.bottom_org:
        content += f" 개선 필요 조직: {data.bottom_org}. 조직 간 성과 격차 해소를 위한 지원 방안 검토가 필요합니다."
    return ReportSection("조직별 성과", content, "summary", "medium")


def _churn_section(data: ReportInput) -> Optional[ReportSection]:
    if data.at_risk_customers <= 0:
        return None
    ratio = data.at_risk_customers / data.total_customers * 100 if data.total_customers > 0 else 0.0
    return ReportSection(
        "거래처 이탈 위험",
        f"전체 {data.total_customers}개 거래처 중 {data.at_risk_customers}개({ratio:.1f}%)가 "
        f"이탈 위험 상태입니다. 핵심 거래처 리텐션 캠페인을 검토하십시오.",
        "risk", "high" if ratio > 20 else "medium",
    )


def _recommendation_section(data: ReportInput) -> Optional[ReportSection]:
    items = []
    if data.collection_rate < 85:
        items.append("수금율 개선을 위한 채권 관리 강화")
    if data.op_rate < 5:
        items.append("영업이익율 제고를 위한 비용 구조 개선")
    if data.sales_growth < 0:
        items.append("매출 역성장 원인 분석 및 신규 수주 확대")
    if data.dso is not None and data.dso > 60:
        items.append("DSO 단축을 위한 선수금 비중 확대 검토")
    if not items:
        return None
    content = "\n".join(f"{i}. {item}" for i, item in enumerate(items, start=1))
    return ReportSection("핵심 권고사항", content, "recommendation", "high")


def _insight_lines(insights: list[Insight]) -> str:
    return "\n".join(f"[{i.category}] {i.title}: {i.message}" for i in insights)


def _insight_sections(insights: list[Insight]) -> list[ReportSection]:
    sections = []
    alerts = [i for i in insights if i.severity in ("critical", "warning")]
    positives = [i for i in insights if i.severity == "positive"]
    if alerts:
        sections.append(ReportSection("주요 경영 인사이트 (경고)", _insight_lines(alerts), "insight", "high"))
    if positives:
        sections.append(ReportSection("긍정적 인사이트", _insight_lines(positives), "insight", "low"))
    return sections


# ── Public API ────────────────────────────────────────────────────────────────

def generate_monthly_report(
    data: ReportInput,
    period: str,
    insights: Optional[list[Insight]] = None,
    generated_at: Optional[date] = None,
) -> MonthlyReport:
    """Build the report sections in display order. `generated_at` defaults to today."""
    candidates = [
        _summary_section(data, period),
        _plan_section(data),
        _growth_section(data),
        _collection_risk_section(data),
        _org_section(data),
        _churn_section(data),
        _recommendation_section(data),
    ]
    sections = [s for s in candidates if s is not None]
    sections.extend(_insight_sections(insights or []))

    stamp = (generated_at or date.today()).isoformat()
    logger.info(f"Monthly report for {period}: {len(sections)} sections")
    return MonthlyReport(f"{period} 경영 보고서", period, stamp, sections)


def report_to_text(report: MonthlyReport) -> str:
    """Plain-text rendering with one '## title' heading per section."""
    parts = [f"# {report.title}", f"생성일: {report.generated_at}"]
    for section in report.sections:
        parts.append(f"## {section.title}\n{section.content}")
    return "\n\n".join(parts)
