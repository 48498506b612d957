"""
PDF report generation utilities.
"""
import logging
from io import BytesIO
from datetime import datetime, timezone
from typing import Any, Dict, List

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle
from reportlab.lib.enums import TA_CENTER, TA_LEFT, TA_JUSTIFY
from reportlab.platypus.flowables import HRFlowable

from app.services import section_registry

logger = logging.getLogger(__name__)


class PDFReportBuilder:
    """Builder class for the final audit report PDF."""

    # Severity colors
    SEVERITY_COLORS = {
        'critica': colors.HexColor('#c0392b'),
        'alta': colors.HexColor('#e74c3c'),
        'media': colors.HexColor('#f39c12'),
        'baja': colors.HexColor('#3498db'),
    }

    TIER_COLORS = {
        'excelente': colors.HexColor('#27ae60'),
        'satisfactorio': colors.HexColor('#2ecc71'),
        'aceptable': colors.HexColor('#f39c12'),
        'deficiente': colors.HexColor('#e67e22'),
        'critico': colors.HexColor('#c0392b'),
    }

    SEVERITY_ORDER = ['critica', 'alta', 'media', 'baja']

    def __init__(self, audit: Any, report: Any, findings: List[Any]):
        """
        Initialize PDF report builder.

        Args:
            audit: Audit model instance
            report: Report model instance
            findings: Finding model instances of the audit
        """
        self.audit = audit
        self.report = report
        self.findings = findings
        self.buffer = BytesIO()
        self.story = []
        self._setup_document()
        self._setup_styles()

    def _setup_document(self):
        self.doc = SimpleDocTemplate(
            self.buffer,
            pagesize=letter,
            topMargin=0.75*inch,
            bottomMargin=0.75*inch,
            leftMargin=0.75*inch,
            rightMargin=0.75*inch,
            title=f"Informe {self.report.code}",
        )

    def _setup_styles(self):
        styles = getSampleStyleSheet()

        self.title_style = ParagraphStyle(
            'TitleStyle',
            parent=styles['Heading1'],
            fontSize=24,
            textColor=colors.HexColor('#2c3e50'),
            spaceAfter=16,
            alignment=TA_CENTER,
            fontName='Helvetica-Bold',
            leading=30
        )

        self.subtitle_style = ParagraphStyle(
            'SubtitleStyle',
            parent=styles['Normal'],
            fontSize=11,
            textColor=colors.HexColor('#7f8c8d'),
            alignment=TA_CENTER,
            spaceAfter=15
        )

        self.section_style = ParagraphStyle(
            'SectionStyle',
            parent=styles['Heading2'],
            fontSize=16,
            textColor=colors.HexColor('#2c3e50'),
            spaceAfter=12,
            spaceBefore=20,
            fontName='Helvetica-Bold'
        )

        self.score_style = ParagraphStyle(
            'ScoreStyle',
            parent=styles['Normal'],
            fontSize=44,
            leading=52,
            textColor=colors.HexColor('#2c3e50'),
            alignment=TA_CENTER,
            fontName='Helvetica-Bold',
            spaceAfter=10
        )

        self.normal_style = ParagraphStyle(
            'NormalStyle',
            parent=styles['Normal'],
            fontSize=10,
            leading=14,
            alignment=TA_LEFT
        )

        self.finding_code_style = ParagraphStyle(
            'FindingCodeStyle',
            parent=styles['Normal'],
            fontSize=11,
            fontName='Helvetica-Bold',
            spaceAfter=6
        )

        self.finding_desc_style = ParagraphStyle(
            'FindingDescStyle',
            parent=styles['Normal'],
            fontSize=10,
            leading=14,
            alignment=TA_JUSTIFY,
            spaceAfter=8
        )

        self.footer_style = ParagraphStyle(
            'FooterStyle',
            parent=styles['Normal'],
            fontSize=9,
            textColor=colors.HexColor('#95a5a6'),
            alignment=TA_CENTER,
            spaceBefore=20
        )

    def _add_title_page(self):
        self.story.append(Spacer(1, 0.3*inch))
        self.story.append(Paragraph("Informe Final de Auditoría", self.title_style))
        self.story.append(Paragraph(f"{self.report.code} (revisión {self.report.revision})", self.subtitle_style))
        self.story.append(HRFlowable(width="100%", thickness=2, color=colors.HexColor('#34495e'), spaceBefore=5, spaceAfter=15))

        metadata_items = [
            f"<b>Auditoría:</b> {self.audit.code}",
            f"<b>Título:</b> {self.audit.title}",
            f"<b>Proveedor:</b> {self.audit.provider_id}",
            f"<b>Estado del informe:</b> {self.report.approval_state.value}",
        ]
        self.story.append(Paragraph(" | ".join(metadata_items), self.normal_style))
        self.story.append(Spacer(1, 0.15*inch))

        generated = self.report.generated_at.strftime("%Y-%m-%d %H:%M UTC")
        self.story.append(Paragraph(f"<i>Consolidado: {generated}</i>", self.subtitle_style))
        self.story.append(Spacer(1, 0.3*inch))

    def _add_score_section(self):
        tier = self.report.compliance_tier.value
        self.story.append(Paragraph(f"{self.report.total_score:.2f}/100", self.score_style))

        tier_style = ParagraphStyle(
            'TierStyle',
            parent=self.normal_style,
            fontSize=14,
            textColor=self.TIER_COLORS.get(tier, colors.black),
            alignment=TA_CENTER,
            fontName='Helvetica-Bold',
            spaceAfter=15
        )
        conclusion = self.report.conclusion.value.replace('_', ' ').upper()
        self.story.append(Paragraph(f"{tier.upper()} - {conclusion}", tier_style))

        if self.report.requires_follow_up:
            self.story.append(Paragraph(
                "<b>Requiere seguimiento:</b> existen hallazgos críticos abiertos o discrepancias de ubicación.",
                self.normal_style,
            ))
        self.story.append(Spacer(1, 0.2*inch))

    def _add_sections_table(self):
        self.story.append(Paragraph("Puntuación por sección", self.section_style))
        scores: Dict[str, float] = self.report.section_scores or {}

        rows = [["Sección", "Obligatoria", "Puntuación"]]
        for section in section_registry.list_all():
            score = scores.get(section.id)
            rows.append([
                section.name,
                "Sí" if section.obligatory else "No",
                f"{score:.2f}" if score is not None else "-",
            ])

        table = Table(rows, colWidths=[3.6*inch, 1.2*inch, 1.2*inch])
        table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#34495e')),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 9),
            ('ALIGN', (1, 1), (-1, -1), 'CENTER'),
            ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#f8f9fa')]),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#bdc3c7')),
        ]))
        self.story.append(table)

    def _add_finding_item(self, finding: Any):
        severity = finding.severity.value
        severity_hex = self.SEVERITY_COLORS.get(severity, colors.HexColor('#7f8c8d')).hexval()[2:]

        code_text = (
            f"<font color='#{severity_hex}'>{finding.code}</font> "
            f"<font color='#7f8c8d'>({severity.upper()} / {finding.tracking_state.value})</font>"
        )
        self.story.append(Paragraph(code_text, self.finding_code_style))
        self.story.append(Paragraph(f"<b>{finding.title}:</b> {finding.description}", self.finding_desc_style))

        if finding.remediation_deadline:
            deadline = finding.remediation_deadline.strftime("%Y-%m-%d %H:%M UTC")
            self.story.append(Paragraph(f"<b>Fecha límite de corrección:</b> {deadline}", self.finding_desc_style))
        if finding.corrective_action:
            self.story.append(Paragraph(f"<b>Acción correctiva:</b> {finding.corrective_action}", self.finding_desc_style))

        self.story.append(HRFlowable(width="100%", thickness=0.5, color=colors.HexColor('#bdc3c7'), spaceBefore=5, spaceAfter=10))

    def _add_findings_section(self):
        self.story.append(Paragraph("Hallazgos", self.section_style))

        if not self.findings:
            self.story.append(Paragraph("No se registraron hallazgos durante las visitas.", self.normal_style))
            return

        for severity in self.SEVERITY_ORDER:
            group = [f for f in self.findings if f.severity.value == severity]
            if not group:
                continue
            severity_style = ParagraphStyle(
                'SeverityHeaderStyle',
                parent=self.section_style,
                fontSize=13,
                textColor=self.SEVERITY_COLORS[severity],
                spaceBefore=10,
                spaceAfter=8
            )
            self.story.append(Paragraph(f"{severity.upper()} ({len(group)})", severity_style))
            for finding in group:
                self._add_finding_item(finding)

    def _add_footer(self):
        self.story.append(Spacer(1, 0.3*inch))
        self.story.append(HRFlowable(width="100%", thickness=1, color=colors.HexColor('#ecf0f1'), spaceBefore=10, spaceAfter=10))

        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
        self.story.append(Paragraph(
            f"Generado por Audit Portal | {timestamp} | sha256 {self.report.content_digest[:16]}",
            self.footer_style,
        ))

    def build(self) -> bytes:
        """
        Build the complete PDF report and return PDF bytes.

        Returns:
            bytes: Raw PDF bytes
        """
        self._add_title_page()
        self._add_score_section()
        self._add_sections_table()
        self._add_findings_section()
        self._add_footer()

        try:
            self.doc.build(self.story)
            return self.buffer.getvalue()
        except Exception as e:
            logger.error(f"Error generating PDF for report {self.report.code}: {e}", exc_info=True)
            raise
        finally:
            self.buffer.close()


def generate_report_pdf(audit: Any, report: Any, findings: List[Any]) -> bytes:
    """
    Generate the PDF of an audit's final report.

    Args:
        audit: Audit model instance
        report: Report model instance
        findings: Findings of the audit

    Returns:
        bytes: Raw PDF bytes
    """
    builder = PDFReportBuilder(audit, report, findings)
    return builder.build()
