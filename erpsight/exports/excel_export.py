"""
Excel report generation using xlsxwriter.
Produces a multi-tab workbook from an AnalysisResult with colour-coded statuses.
"""

import io
import logging
from datetime import date

import xlsxwriter

from erpsight.metrics.receivables import AGING_BUCKETS
from erpsight.utils.formatters import format_days, format_percent, format_won

logger = logging.getLogger(__name__)

STATUS_FILL = {
    "green": "#DCFCE7",
    "amber": "#FEF3C7",
    "red": "#FEE2E2",
    "grey": "#F3F4F6",
}
STATUS_FONT = {
    "green": "#16A34A",
    "amber": "#D97706",
    "red": "#DC2626",
    "grey": "#6B7280",
}
NAVY = "#1B2A4A"
WHITE = "#FFFFFF"
LIGHT_GREY = "#F3F4F6"

# Domain status → traffic light
RISK_STATUS = {"low": "green", "medium": "amber", "high": "red"}
DSO_STATUS = {"excellent": "green", "good": "green", "fair": "amber", "poor": "red"}
BENCHMARK_STATUS = {"above": "green", "at": "amber", "below": "red"}
SEVERITY_STATUS = {"positive": "green", "neutral": "grey", "warning": "amber", "critical": "red"}
GRADE_STATUS = {"A": "green", "B": "amber", "C": "grey"}

RISK_LABELS = {"low": "낮음", "medium": "보통", "high": "높음"}
BENCHMARK_LABELS = {"above": "우수", "at": "평균", "below": "미달"}
AGING_LABELS = {
    "month1": "1개월", "month2": "2개월", "month3": "3개월", "month4": "4개월",
    "month5": "5개월", "month6": "6개월", "overdue": "6개월 초과",
}

PARETO_ROWS = 50


def generate_excel_report(result, session_info: dict) -> bytes:
    """
    Generate an Excel workbook and return as bytes.
    Tabs: Overview | Pipeline | Receivables | Cash Cycle | Pareto | Benchmarks | Insights
    """
    buffer = io.BytesIO()
    wb = xlsxwriter.Workbook(buffer, {"in_memory": True})

    company = session_info.get("company_name", "ERPSight")
    org_label = session_info.get("org_label", "전체 조직")
    period = result.period or session_info.get("period", "")
    wb.set_properties({"title": f"ERPSight {period}", "subject": _amounts_caption(result)})

    # ── Shared formats ─────────────────────────────────────────────────────
    hdr_fmt = wb.add_format({
        "bold": True, "font_color": WHITE, "bg_color": NAVY,
        "border": 1, "align": "center", "valign": "vcenter",
        "text_wrap": True,
    })
    title_fmt = wb.add_format({
        "bold": True, "font_size": 14, "font_color": NAVY,
    })
    sub_fmt = wb.add_format({
        "font_size": 10, "font_color": "#6B7280",
    })
    section_fmt = wb.add_format({
        "bold": True, "font_size": 11, "font_color": NAVY,
        "bg_color": LIGHT_GREY, "border": 1,
    })
    normal_fmt = wb.add_format({"border": 1, "valign": "vcenter"})
    won_fmt = wb.add_format({
        "num_format": '#,##0', "border": 1, "valign": "vcenter",
    })
    wrap_fmt = wb.add_format({"text_wrap": True, "valign": "top", "border": 1})

    def status_fmt(status):
        return wb.add_format({
            "bold": True,
            "font_color": STATUS_FONT.get(status, "#6B7280"),
            "bg_color": STATUS_FILL.get(status, "#F3F4F6"),
            "border": 1, "align": "center", "valign": "vcenter",
        })

    def write_header(ws, row, labels):
        for col, label in enumerate(labels):
            ws.write(row, col, label, hdr_fmt)

    # ── Sheet 1: Overview ─────────────────────────────────────────────────
    ws = wb.add_worksheet("Overview")
    ws.set_column("A:A", 26)
    ws.set_column("B:B", 22)
    ws.set_column("C:C", 90)

    row = 0
    ws.write(row, 0, f"ERPSight 경영 분석 - {company}", title_fmt)
    row += 1
    ws.write(row, 0, f"조직: {org_label} | 기간: {period} | 생성일: {date.today()}", sub_fmt)
    row += 2

    kpis = result.kpis
    ws.merge_range(row, 0, row, 1, "핵심 지표", section_fmt)
    row += 1
    for label, value, is_amount in [
        ("총 매출", kpis.total_sales, True),
        ("총 수주", kpis.total_orders, True),
        ("총 수금", kpis.total_collection, True),
        ("수금율", kpis.collection_rate, False),
        ("미수금", kpis.total_receivables, True),
        ("영업이익율", kpis.operating_profit_rate, False),
        ("매출계획달성률", kpis.sales_plan_achievement, False),
    ]:
        ws.write(row, 0, label, normal_fmt)
        if is_amount:
            ws.write_number(row, 1, value, won_fmt)
        else:
            ws.write(row, 1, format_percent(value), normal_fmt)
        row += 1
    ws.write(row, 0, "DSO", normal_fmt)
    ws.write(row, 1, format_days(result.overall_dso), normal_fmt)
    row += 2

    if result.report is not None:
        ws.merge_range(row, 0, row, 2, result.report.title, section_fmt)
        row += 1
        for section in result.report.sections:
            ws.write(row, 0, section.title, normal_fmt)
            ws.write(row, 1, section.priority, status_fmt(
                {"high": "red", "medium": "amber", "low": "green"}.get(section.priority, "grey")))
            ws.write(row, 2, section.content, wrap_fmt)
            row += 1

    # ── Sheet 2: Pipeline ──────────────────────────────────────────────────
    ws2 = wb.add_worksheet("Pipeline")
    ws2.set_column("A:A", 20)
    ws2.set_column("B:D", 18)

    write_header(ws2, 0, ["단계", "금액", "수주 대비", "건수"])
    p_row = 1
    for stage in result.pipeline:
        ws2.write(p_row, 0, stage.stage, normal_fmt)
        ws2.write_number(p_row, 1, stage.amount, won_fmt)
        ws2.write(p_row, 2, format_percent(stage.percentage), normal_fmt)
        ws2.write_number(p_row, 3, stage.count, normal_fmt)
        p_row += 1

    p_row += 1
    ws2.merge_range(p_row, 0, p_row, 3, "월별 추이", section_fmt)
    p_row += 1
    write_header(ws2, p_row, ["월", "수주", "매출", "수금"])
    p_row += 1
    for trend in result.monthly_trends:
        ws2.write(p_row, 0, trend.month, normal_fmt)
        ws2.write_number(p_row, 1, trend.orders, won_fmt)
        ws2.write_number(p_row, 2, trend.sales, won_fmt)
        ws2.write_number(p_row, 3, trend.collections, won_fmt)
        p_row += 1

    # ── Sheet 3: Receivables ───────────────────────────────────────────────
    ws3 = wb.add_worksheet("Receivables")
    ws3.set_column("A:A", 28)
    ws3.set_column("B:F", 16)

    ws3.merge_range(0, 0, 0, 1, "연령별 미수금", section_fmt)
    r_row = 1
    for bucket in AGING_BUCKETS:
        ws3.write(r_row, 0, AGING_LABELS[bucket], normal_fmt)
        ws3.write_number(r_row, 1, getattr(result.aging_summary, bucket), won_fmt)
        r_row += 1
    ws3.write(r_row, 0, "합계", section_fmt)
    ws3.write_number(r_row, 1, result.aging_summary.total, won_fmt)
    r_row += 2

    write_header(ws3, r_row, ["거래처", "조직", "담당자", "미수금", "연체비율", "위험등급"])
    r_row += 1
    for ra in result.risk_assessments:
        ws3.write(r_row, 0, ra.customer_name or ra.customer, normal_fmt)
        ws3.write(r_row, 1, ra.org, normal_fmt)
        ws3.write(r_row, 2, ra.rep, normal_fmt)
        ws3.write_number(r_row, 3, ra.total, won_fmt)
        ws3.write(r_row, 4, format_percent(ra.overdue_ratio), normal_fmt)
        ws3.write(r_row, 5, RISK_LABELS.get(ra.risk_grade, ra.risk_grade), status_fmt(RISK_STATUS.get(ra.risk_grade)))
        r_row += 1

    # ── Sheet 4: Cash Cycle ────────────────────────────────────────────────
    ws4 = wb.add_worksheet("Cash Cycle")
    ws4.set_column("A:A", 24)
    ws4.set_column("B:E", 14)
    ws4.set_column("F:F", 80)

    ccc = result.ccc_analysis
    ws4.write(0, 0, "현금전환주기 (CCC = DSO - DPO)", title_fmt)
    ws4.write(1, 0, f"평균 DSO {format_days(ccc.avg_dso)} | 평균 DPO {format_days(ccc.avg_dpo)} | "
                    f"평균 CCC {format_days(ccc.avg_ccc)}", sub_fmt)

    write_header(ws4, 3, ["조직", "DSO", "DPO", "CCC", "등급", "권고"])
    c_row = 4
    for m in ccc.metrics:
        ws4.write(c_row, 0, m.org, normal_fmt)
        ws4.write(c_row, 1, format_days(m.dso), normal_fmt)
        ws4.write(c_row, 2, format_days(m.dpo), normal_fmt)
        ws4.write(c_row, 3, format_days(m.ccc), normal_fmt)
        ws4.write(c_row, 4, m.classification, status_fmt(DSO_STATUS.get(m.classification)))
        ws4.write(c_row, 5, m.recommendation, wrap_fmt)
        c_row += 1

    # ── Sheet 5: Pareto ────────────────────────────────────────────────────
    ws5 = wb.add_worksheet("Pareto")
    ws5.set_column("A:A", 30)
    ws5.set_column("B:E", 14)
    ws5.set_column("F:F", 4)
    ws5.set_column("G:G", 30)
    ws5.set_column("H:K", 14)

    for offset, label, items in [
        (0, "거래처 ABC", result.customer_pareto),
        (6, "품목 ABC", result.product_pareto),
    ]:
        ws5.merge_range(0, offset, 0, offset + 4, label, section_fmt)
        for col, header in enumerate(["이름", "매출", "비중", "누적비중", "등급"]):
            ws5.write(1, offset + col, header, hdr_fmt)
        for i, item in enumerate(items[:PARETO_ROWS]):
            prow = i + 2
            ws5.write(prow, offset, item.name or item.code, normal_fmt)
            ws5.write_number(prow, offset + 1, item.value, won_fmt)
            ws5.write(prow, offset + 2, format_percent(item.share), normal_fmt)
            ws5.write(prow, offset + 3, format_percent(item.cum_share), normal_fmt)
            ws5.write(prow, offset + 4, item.grade, status_fmt(GRADE_STATUS.get(item.grade)))

    # ── Sheet 6: Benchmarks ────────────────────────────────────────────────
    ws6 = wb.add_worksheet("Benchmarks")
    ws6.set_column("A:A", 24)
    ws6.set_column("B:F", 16)

    benchmark = result.benchmark
    industry = benchmark.industry if benchmark is not None else ""
    ws6.write(0, 0, "업종 벤치마크 비교", title_fmt)
    ws6.write(1, 0, f"업종: {industry}", sub_fmt)

    write_header(ws6, 3, ["지표", "실적", "업종 평균", "차이", "상태", "점수"])
    b_row = 4
    if benchmark is not None:
        for m in benchmark.metrics:
            unit = m.unit
            ws6.write(b_row, 0, m.name, normal_fmt)
            ws6.write(b_row, 1, f"{m.value:.1f}{unit}", normal_fmt)
            ws6.write(b_row, 2, f"{m.benchmark:.1f}{unit}", normal_fmt)
            ws6.write(b_row, 3, f"{m.gap:+.1f}{unit}", normal_fmt)
            ws6.write(b_row, 4, BENCHMARK_LABELS.get(m.status, m.status),
                      status_fmt(BENCHMARK_STATUS.get(m.status)))
            ws6.write_number(b_row, 5, round(m.score, 1), normal_fmt)
            b_row += 1
        ws6.write(b_row + 1, 0, f"종합 점수: {benchmark.overall_score:.1f} / 100", section_fmt)

    # ── Sheet 7: Insights ──────────────────────────────────────────────────
    ws7 = wb.add_worksheet("Insights")
    ws7.set_column("A:A", 12)
    ws7.set_column("B:B", 10)
    ws7.set_column("C:C", 26)
    ws7.set_column("D:D", 90)

    write_header(ws7, 0, ["심각도", "분류", "제목", "내용"])
    i_row = 1
    for insight in result.insights:
        ws7.write(i_row, 0, insight.severity, status_fmt(SEVERITY_STATUS.get(insight.severity)))
        ws7.write(i_row, 1, insight.category, normal_fmt)
        ws7.write(i_row, 2, insight.title, normal_fmt)
        ws7.write(i_row, 3, insight.message, wrap_fmt)
        i_row += 1
    if not result.insights:
        ws7.write(i_row, 0, "표시할 인사이트가 없습니다.", sub_fmt)

    wb.close()
    buffer.seek(0)
    logger.info(f"Excel report generated for {company} ({period})")
    return buffer.getvalue()


def _amounts_caption(result) -> str:
    return f"매출 {format_won(result.kpis.total_sales)} / 수금 {format_won(result.kpis.total_collection)}"
