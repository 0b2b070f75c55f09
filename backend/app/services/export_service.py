"""
Survey response export: CSV and JSON rows over completed responses, and a
PDF rendering of the analytics snapshot.

Row building is pure; ``export_survey`` is the only function that touches
the database.
"""
from __future__ import annotations

import csv
import io
import json
import logging
import re
import uuid
from datetime import datetime
from typing import Any, Sequence
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import (
    KeepTogether,
    PageBreak,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.domain import ResponseStatus
from app.core.errors import ValidationError
from app.core.metrics import survey_exports_total
from app.core.permissions import AuthContext
from app.models.response import Answer, Response
from app.models.survey import Question, Survey
from app.services import analytics_service
from app.services.answer_values import decode_answer
from app.services.permission_service import PermissionService

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("csv", "json", "pdf")
HEADER_PREFIX_CHARS = 50
_COMPLETED = ResponseStatus.COMPLETED.value
FIXED_HEADERS = ["Response ID", "Respondent", "Started At", "Completed At"]

PRIMARY = colors.HexColor("#4f46e5")
TEXT_MUTED = colors.HexColor("#64748b")
BORDER = colors.HexColor("#e2e8f0")
BACKGROUND = colors.HexColor("#f8fafc")
SUCCESS = colors.HexColor("#16a34a")
WARNING = colors.HexColor("#ca8a04")
DANGER = colors.HexColor("#dc2626")


# ── Rows ──────────────────────────────────────────────────────────────


def question_header(question: Any) -> str:
    return f"Q{question.order_index + 1}: {question.content[:HEADER_PREFIX_CHARS]}"


def flatten_value(value: Any) -> str:
    """Render one answer for a CSV cell."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, list):
        return "; ".join(flatten_value(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return str(value)


def _iso(value: datetime | None) -> str:
    return value.isoformat() if value else ""


def respondent_label(survey: Any, response: Any) -> str:
    if survey.is_anonymous:
        return "Anonymous"
    return response.anonymous_token or "Unknown"


def build_export_rows(
    survey: Any,
    questions: Sequence[Any],
    responses: Sequence[Any],
    answers: dict[uuid.UUID, dict[uuid.UUID, Any]],
) -> tuple[list[str], list[list[Any]]]:
    """Headers plus one row of native values per response.

    ``answers`` maps response id -> question id -> stored answer value.
    """
    headers = FIXED_HEADERS + [question_header(q) for q in questions]
    rows = []
    for r in responses:
        per_question = answers.get(r.id, {})
        row: list[Any] = [
            str(r.id),
            respondent_label(survey, r),
            _iso(r.started_at),
            _iso(r.completed_at),
        ]
        for q in questions:
            raw = per_question.get(q.id)
            row.append(None if raw is None else decode_answer(raw))
        rows.append(row)
    return headers, rows


def to_csv(headers: list[str], rows: list[list[Any]]) -> str:
    out = io.StringIO()
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow([flatten_value(v) for v in row])
    # No trailing newline after the last record
    return out.getvalue().rstrip("\n")


def to_json_rows(headers: list[str], rows: list[list[Any]]) -> dict:
    keys = ["responseId", "respondent", "startedAt", "completedAt"] + headers[len(FIXED_HEADERS):]
    data = []
    for row in rows:
        item = dict(zip(keys, row))
        for key in keys[len(FIXED_HEADERS):]:
            if item[key] is None:
                item[key] = ""
        data.append(item)
    return {"data": data, "total": len(data)}


def export_filename(title: str, extension: str) -> str:
    stem = re.sub(r"[^a-zA-Z0-9]", "_", title or "survey")
    return f"{stem}_responses.{extension}"


# ── PDF ───────────────────────────────────────────────────────────────


def _styles() -> dict[str, ParagraphStyle]:
    base = getSampleStyleSheet()
    return {
        "brand": ParagraphStyle("brand", parent=base["Normal"], fontSize=12,
                                textColor=TEXT_MUTED, alignment=1, spaceAfter=60),
        "title": ParagraphStyle("title", parent=base["Title"], fontSize=28, leading=34),
        "subtitle": ParagraphStyle("subtitle", parent=base["Normal"], fontSize=16,
                                   textColor=PRIMARY, alignment=1, spaceBefore=12),
        "h2": ParagraphStyle("h2", parent=base["Heading2"], textColor=PRIMARY, spaceBefore=12),
        "h3": ParagraphStyle("h3", parent=base["Heading3"], spaceBefore=10),
        "body": base["Normal"],
        "muted": ParagraphStyle("muted", parent=base["Normal"], textColor=TEXT_MUTED, fontSize=9),
    }


def _table(data: list[list[Any]], col_widths: list[float] | None = None) -> Table:
    table = Table(data, colWidths=col_widths, hAlign="LEFT")
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), BACKGROUND),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("GRID", (0, 0), (-1, -1), 0.5, BORDER),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("TOPPADDING", (0, 0), (-1, -1), 4),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ]))
    return table


def _nps_color(score: int) -> colors.Color:
    if score >= 50:
        return SUCCESS
    if score >= 0:
        return WARNING
    return DANGER


def _duration(seconds: int) -> str:
    if not seconds:
        return "-"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs}s" if minutes else f"{secs}s"


def _page_number(canvas, doc) -> None:
    canvas.saveState()
    canvas.setFont("Helvetica", 8)
    canvas.setFillColor(TEXT_MUTED)
    canvas.drawRightString(A4[0] - 20 * mm, 12 * mm, f"Page {doc.page}")
    canvas.drawString(20 * mm, 12 * mm, "Qualitivate Analytics")
    canvas.restoreState()


def render_pdf_report(
    overview: dict, questions: list[dict], company_name: str | None = None
) -> bytes:
    """Render the analytics snapshot (overview + question breakdown) to PDF bytes."""
    styles = _styles()
    survey = overview["survey"]
    stats = overview["overview"]
    story: list[Any] = []

    # Cover
    story.append(Spacer(1, 40 * mm))
    story.append(Paragraph("QUALITIVATE", styles["brand"]))
    story.append(Paragraph(escape(survey["title"]), styles["title"]))
    story.append(Paragraph("Analytics Report", styles["subtitle"]))
    if company_name:
        story.append(Paragraph(escape(company_name), styles["subtitle"]))
    story.append(Spacer(1, 20 * mm))
    story.append(_table([
        ["Responses", "Completion rate", "Questions"],
        [stats["totalResponses"], f"{stats['completionRate']}%", overview["questionCount"]],
    ], col_widths=[50 * mm] * 3))
    story.append(Spacer(1, 10 * mm))
    story.append(Paragraph(f"Generated {datetime.now().strftime('%Y-%m-%d %H:%M')}", styles["muted"]))
    story.append(PageBreak())

    # Executive summary
    story.append(Paragraph("Executive Summary", styles["h2"]))
    story.append(_table([
        ["Metric", "Value"],
        ["Total responses", stats["totalResponses"]],
        ["Completed", stats["completedResponses"]],
        ["In progress", stats["inProgressResponses"]],
        ["Abandoned", stats["abandonedResponses"]],
        ["Completion rate", f"{stats['completionRate']}%"],
        ["Average completion time", _duration(stats["avgCompletionTimeSeconds"])],
        ["Survey type", survey["type"].upper()],
        ["Status", survey["status"]],
    ], col_widths=[70 * mm, 70 * mm]))

    nps = overview.get("nps")
    if nps:
        story.append(Paragraph("Net Promoter Score", styles["h2"]))
        score_style = ParagraphStyle("nps", parent=styles["title"], textColor=_nps_color(nps["score"]))
        story.append(Paragraph(str(nps["score"]), score_style))
        story.append(_table([
            ["Segment", "Count", "Share"],
            ["Promoters (9-10)", nps["promoters"]["count"], f"{nps['promoters']['percentage']}%"],
            ["Passives (7-8)", nps["passives"]["count"], f"{nps['passives']['percentage']}%"],
            ["Detractors (0-6)", nps["detractors"]["count"], f"{nps['detractors']['percentage']}%"],
        ], col_widths=[60 * mm, 30 * mm, 30 * mm]))

    active_days = [t for t in overview.get("trend", []) if t["count"]]
    if active_days:
        story.append(Paragraph("Response Trend (last 30 days)", styles["h2"]))
        story.append(_table(
            [["Date", "Started", "Completed"]]
            + [[t["date"], t["count"], t["completed"]] for t in active_days],
            col_widths=[50 * mm, 30 * mm, 30 * mm],
        ))

    # Question analysis
    story.append(PageBreak())
    story.append(Paragraph("Question Analysis", styles["h2"]))
    for i, q in enumerate(questions, start=1):
        block: list[Any] = [
            Paragraph(f"Q{i}. {escape(q['questionText'])}", styles["h3"]),
            Paragraph(f"{q['type']} | {q['totalAnswers']} answers", styles["muted"]),
        ]
        qstats = q.get("stats") or {}
        if "average" in qstats:
            block.append(_table([
                ["Average", "Min", "Max", "Count"],
                [qstats["average"], qstats["min"], qstats["max"], qstats["count"]],
            ]))
        elif "avgLength" in qstats:
            block.append(Paragraph(
                f"{qstats['count']} text answers, average length {qstats['avgLength']} characters",
                styles["body"],
            ))
        distribution = q.get("distribution") or {}
        flat = {k: v for k, v in distribution.items() if isinstance(v, int)}
        if flat:
            total = sum(flat.values()) or 1
            block.append(Spacer(1, 3 * mm))
            block.append(_table(
                [["Answer", "Count", "Share"]]
                + [[k, v, f"{analytics_service.js_round(v / total * 100)}%"] for k, v in flat.items()],
                col_widths=[80 * mm, 25 * mm, 25 * mm],
            ))
        elif distribution:
            rows = [["Row", "Answer", "Count"]]
            for row_key, cells in distribution.items():
                for cell, count in cells.items():
                    rows.append([row_key, cell, count])
            block.append(_table(rows, col_widths=[60 * mm, 50 * mm, 20 * mm]))
        story.append(KeepTogether(block))

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=20 * mm,
        rightMargin=20 * mm,
        topMargin=20 * mm,
        bottomMargin=20 * mm,
        title="Survey Analytics Report",
        author="Qualitivate",
    )
    doc.build(story, onFirstPage=_page_number, onLaterPages=_page_number)
    return buffer.getvalue()


# ── Entry point ───────────────────────────────────────────────────────


async def export_survey(
    db: AsyncSession, ctx: AuthContext, survey_id: uuid.UUID, fmt: str = "csv"
) -> tuple[str, Any, str]:
    """Return (format, body, filename). Body is str for csv, dict for json, bytes for pdf."""
    if fmt not in EXPORT_FORMATS:
        raise ValidationError("Invalid export format", allowed=list(EXPORT_FORMATS))
    survey: Survey = await PermissionService.load_survey_for_analytics(db, ctx, survey_id)

    if fmt == "pdf":
        overview = await analytics_service.survey_overview(db, ctx, survey.id)
        breakdown = await analytics_service.question_breakdown(db, ctx, survey.id)
        company_name = survey.company.name if survey.company else None
        body = render_pdf_report(overview, breakdown["questions"], company_name)
        survey_exports_total.labels(format=fmt).inc()
        return fmt, body, export_filename(survey.title, "pdf")

    questions = (
        await db.execute(
            select(Question).where(Question.survey_id == survey.id).order_by(Question.order_index)
        )
    ).scalars().all()
    responses = (
        await db.execute(
            select(Response)
            .where(Response.survey_id == survey.id, Response.status == _COMPLETED)
            .order_by(Response.completed_at.desc())
        )
    ).scalars().all()

    answers: dict[uuid.UUID, dict[uuid.UUID, Any]] = {}
    if responses:
        result = await db.execute(
            select(Answer.response_id, Answer.question_id, Answer.value).where(
                Answer.response_id.in_([r.id for r in responses])
            )
        )
        for rid, qid, value in result.all():
            answers.setdefault(rid, {})[qid] = value

    headers, rows = build_export_rows(survey, questions, responses, answers)
    survey_exports_total.labels(format=fmt).inc()
    logger.info("Exported %d responses of survey %s as %s", len(rows), survey.id, fmt)
    if fmt == "json":
        return fmt, to_json_rows(headers, rows), export_filename(survey.title, "json")
    return fmt, to_csv(headers, rows), export_filename(survey.title, "csv")
