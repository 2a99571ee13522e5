from datetime import date
import math

import pytest

from erpsight.commentary.insights import Insight, InsightInputs, forecast_accuracy, generate_insights, sort_insights
from erpsight.commentary.report import ReportInput, generate_monthly_report, report_to_text
from erpsight.metrics.kpi import OverviewKpis


def ids(insights):
    return [i.id for i in insights]


# ── Insights ──────────────────────────────────────────────────────────────────

def test_insights_sorted_by_severity():
    insights = generate_insights(InsightInputs(
        kpis=OverviewKpis(collection_rate=60, operating_profit_rate=-2),
        dso=100, ccc=-5, contribution_margin_rate=10,
    ))
    assert ids(insights) == ["col-low", "op-neg", "dso-high", "cm-low", "ccc-neg"]
    assert insights[0].message.startswith("순수 수금율 60.0%로 목표(70%) 미달입니다")
    assert insights[0].category == "수금"


def test_net_collection_rate_takes_precedence():
    insights = generate_insights(InsightInputs(kpis=OverviewKpis(collection_rate=60), net_collection_rate=96))
    assert "col-high" in ids(insights)
    assert "col-low" not in ids(insights)


def test_collection_rate_falls_back_when_net_rate_unknown():
    insights = generate_insights(InsightInputs(kpis=OverviewKpis(collection_rate=80), net_collection_rate=math.nan))
    assert "col-med" in ids(insights)


@pytest.mark.parametrize("achievement, expected", [(0, None), (-5, None), (79, "plan-low"), (90, None),
                                                   (100, "plan-over")])
def test_plan_rule(achievement, expected):
    found = [i for i in ids(generate_insights(InsightInputs(
        kpis=OverviewKpis(collection_rate=90, operating_profit_rate=7, sales_plan_achievement=achievement))))
        if i.startswith("plan")]
    assert found == ([expected] if expected else [])


@pytest.mark.parametrize("dso, expected", [
    (None, None), (math.inf, None), (0, None), (20, "dso-low"), (45, None), (61, "dso-med"), (91, "dso-high"),
])
def test_dso_rule_guards(dso, expected):
    found = [i for i in ids(generate_insights(InsightInputs(kpis=OverviewKpis(collection_rate=90,
                                                                              operating_profit_rate=7), dso=dso)))
             if i.startswith("dso")]
    assert found == ([expected] if expected else [])


def test_forecast_rules():
    low = generate_insights(InsightInputs(kpis=OverviewKpis(collection_rate=90, operating_profit_rate=7),
                                          forecast_accuracy=50))
    assert ids(low) == ["fc-low"]
    high = generate_insights(InsightInputs(kpis=OverviewKpis(collection_rate=90, operating_profit_rate=7),
                                           forecast_accuracy=95))
    assert ids(high) == ["fc-high"]


def test_forecast_accuracy():
    assert forecast_accuracy(90, 100) == pytest.approx(90.0)
    assert forecast_accuracy(250, 100) == 0.0
    assert forecast_accuracy(10, 0) is None


def test_sort_insights_puts_unknown_severity_last():
    items = [Insight("a", "", "", "other", ""), Insight("b", "", "", "positive", ""),
             Insight("c", "", "", "critical", "")]
    assert ids(sort_insights(items)) == ["c", "b", "a"]


# ── Monthly report ────────────────────────────────────────────────────────────

@pytest.fixture
def healthy():
    return ReportInput(total_sales=320_000_000, total_orders=400_000_000, total_collections=300_000_000,
                       collection_rate=93.75, gp_rate=22, op_rate=9, plan_achievement=105, dso=40,
                       sales_growth=7, top_org="인프라1팀", bottom_org="플랜트팀", total_customers=50)


def test_healthy_report_sections(healthy):
    report = generate_monthly_report(healthy, "2024-03", generated_at=date(2024, 4, 1))
    assert report.title == "2024-03 경영 보고서"
    assert report.generated_at == "2024-04-01"
    assert [s.title for s in report.sections] == ["경영 요약", "계획 달성 현황", "성장 추세", "조직별 성과"]
    assert report.summary.startswith("2024-03 기준 총 매출 3.2억원")
    assert "수금율은 93.8%" in report.summary
    assert report.sections[1].type == "highlight"


def test_troubled_report_sections(healthy):
    healthy.collection_rate = 70
    healthy.op_rate = 3
    healthy.plan_achievement = 85
    healthy.sales_growth = -4
    healthy.dso = 95
    healthy.at_risk_customers = 15
    insights = [
        Insight("op-low", "영업이익율 저조", "msg", "warning", "수익성"),
        Insight("ccc-neg", "현금전환주기 우수", "msg", "positive", "수금"),
    ]
    report = generate_monthly_report(healthy, "2024-03", insights)
    titles = [s.title for s in report.sections]
    assert titles == ["경영 요약", "계획 달성 현황", "성장 추세", "수금 리스크", "조직별 성과", "거래처 이탈 위험",
                      "핵심 권고사항", "주요 경영 인사이트 (경고)", "긍정적 인사이트"]
    sections = {s.title: s for s in report.sections}
    assert "목표 대비 15.0%p 부족" in sections["계획 달성 현황"].content
    assert sections["계획 달성 현황"].priority == "high"
    assert sections["성장 추세"].priority == "high"
    assert "DSO 95일 (경고)" in sections["수금 리스크"].content
    assert sections["거래처 이탈 위험"].priority == "high"
    assert sections["핵심 권고사항"].content.splitlines() == [
        "1. 수금율 개선을 위한 채권 관리 강화",
        "2. 영업이익율 제고를 위한 비용 구조 개선",
        "3. 매출 역성장 원인 분석 및 신규 수주 확대",
        "4. DSO 단축을 위한 선수금 비중 확대 검토",
    ]
    assert sections["주요 경영 인사이트 (경고)"].content == "[수익성] 영업이익율 저조: msg"


def test_report_to_text(healthy):
    text = report_to_text(generate_monthly_report(healthy, "2024-03", generated_at=date(2024, 4, 1)))
    assert text.startswith("# 2024-03 경영 보고서\n\n생성일: 2024-04-01")
    assert "## 성장 추세\n전기 대비 매출 성장률 +7.0%." in text


def test_org_section_skipped_without_orgs(healthy):
    healthy.top_org = healthy.bottom_org = ""
    report = generate_monthly_report(healthy, "2024-03")
    assert "조직별 성과" not in [s.title for s in report.sections]


def test_org_section_with_single_org(healthy):
    healthy.bottom_org = ""
    report = generate_monthly_report(healthy, "2024-03")
    section = next(s for s in report.sections if s.title == "조직별 성과")
    assert section.content == "최우수 조직: 인프라1팀."
    assert section.type == "summary"
    assert section.priority == "medium"


def test_org_section_names_both_orgs(healthy):
    section = next(s for s in generate_monthly_report(healthy, "2024-03").sections if s.title == "조직별 성과")
    assert section.content.startswith("최우수 조직: 인프라1팀. 개선 필요 조직: 플랜트팀.")
    assert section.content.endswith("지원 방안 검토가 필요합니다.")
