"""Render the compliance certificate PDF for one audit."""

from collections.abc import Sequence
from datetime import date, datetime, timezone
from io import BytesIO
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from codepassport.schemas.findings import (
    LicenseFinding,
    RiskGrade,
    SecretFinding,
    VulnerabilityFinding,
)

BRAND_COLOR = colors.HexColor("#002B5B")
PASS_COLOR = colors.HexColor("#008000")
FAIL_COLOR = colors.HexColor("#FF0000")

# Rows shown per detail table.
MAX_DETAIL_ROWS = 50


def _p(text: str, style: ParagraphStyle) -> Paragraph:
    return Paragraph(escape(text), style)


def _detail_table(header: list[str], rows: list[list[str]], style: ParagraphStyle) -> Table:
    data = [header] + [[_p(cell, style) for cell in row] for row in rows[:MAX_DETAIL_ROWS]]
    table = Table(data, colWidths=[2.2 * inch, 2.2 * inch, 2.1 * inch], repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), BRAND_COLOR),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.whitesmoke),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
    ]))
    return table


def render_certificate(
    grade: RiskGrade,
    licenses: Sequence[LicenseFinding],
    vulns: Sequence[VulnerabilityFinding],
    secrets: Sequence[SecretFinding],
    scan_id: str,
    repo_url: str,
    issued_on: date | None = None,
    compress: bool = True,
) -> bytes:
    """
    Build the certificate and return the PDF bytes.

    licenses, vulns and secrets are the evidence lists (viral licenses, critical
    vulnerabilities, secrets). repo_url must already be free of credentials. Output
    is byte-for-byte reproducible for identical inputs. With compress=False the page
    streams are written uncompressed, so the certificate text can be searched.
    """
    issued_on = issued_on or datetime.now(timezone.utc).date()
    styles = getSampleStyleSheet()
    body = styles["Normal"]
    small = ParagraphStyle("Small", parent=body, fontSize=8, leading=10)
    brand = ParagraphStyle("Brand", parent=styles["Title"], textColor=BRAND_COLOR, fontSize=24)
    subtitle = ParagraphStyle(
        "Subtitle", parent=styles["Heading2"], textColor=BRAND_COLOR, alignment=TA_CENTER
    )
    badge_color = PASS_COLOR if grade == "A" else FAIL_COLOR
    badge_style = ParagraphStyle(
        "Badge", parent=body, fontName="Helvetica-Bold", fontSize=60, leading=66,
        alignment=TA_CENTER, textColor=badge_color,
    )

    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=letter,
        title="Certificate of Software Compliance",
        author="CodePassport.io",
        invariant=True,
        pageCompression=1 if compress else 0,
    )
    story = [
        _p("CodePassport.io", brand),
        _p("Certificate of Software Compliance", subtitle),
        Spacer(1, 0.3 * inch),
    ]

    badge = Table([[Paragraph(grade, badge_style)]], colWidths=[1.4 * inch], rowHeights=[1.4 * inch])
    badge.setStyle(TableStyle([
        ("BOX", (0, 0), (-1, -1), 2, badge_color),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
    ]))
    story += [badge, Spacer(1, 0.3 * inch)]

    meta = Table(
        [
            ["Repository:", _p(repo_url, body)],
            ["Scan ID:", _p(scan_id, body)],
            ["Date:", issued_on.isoformat()],
        ],
        colWidths=[1.2 * inch, 5.3 * inch],
    )
    meta.setStyle(TableStyle([
        ("FONTNAME", (0, 0), (0, -1), "Helvetica"),
        ("FONTNAME", (1, 0), (1, -1), "Helvetica-Bold"),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
    ]))
    story += [meta, Spacer(1, 0.3 * inch)]

    story.append(_p("Audit Summary", styles["Heading2"]))
    story.append(_p(f"• Viral Licenses Found: {len(licenses)}", body))
    story.append(_p(f"• Critical Vulnerabilities: {len(vulns)}", body))
    story.append(_p(f"• Hardcoded Secrets: {len(secrets)}", body))
    story.append(Spacer(1, 0.3 * inch))

    if secrets:
        story.append(_p("Hardcoded Secrets", styles["Heading3"]))
        story.append(_detail_table(
            ["File", "Rule", "Match (masked)"],
            [
                [f"{s.file_path}:{s.line_number}" if s.line_number else s.file_path, s.rule, s.masked_snippet]
                for s in secrets
            ],
            small,
        ))
        story.append(Spacer(1, 0.2 * inch))
    if licenses:
        story.append(_p("Viral Licenses", styles["Heading3"]))
        story.append(_detail_table(
            ["Package", "License", ""],
            [[lic.package_name, lic.license_id, ""] for lic in licenses],
            small,
        ))
        story.append(Spacer(1, 0.2 * inch))
    if vulns:
        story.append(_p("Critical Vulnerabilities", styles["Heading3"]))
        story.append(_detail_table(
            ["Vulnerability", "Package", "Installed version"],
            [[v.vulnerability_id, v.package_name, v.installed_version or "-"] for v in vulns],
            small,
        ))
    if not (secrets or licenses or vulns):
        story.append(_p("No secrets, viral licenses or critical vulnerabilities were found.", body))

    doc.build(story)
    return buffer.getvalue()
