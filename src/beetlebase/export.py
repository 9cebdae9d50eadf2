"""PDF export of pedigree sheets and QR labels."""

from pathlib import Path
from typing import List

from loguru import logger
from reportlab.graphics.barcode.qr import QrCodeWidget
from reportlab.graphics.shapes import Drawing
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch, mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .records import latest_weight
from .schemas import Individual
from .utils import ensure_dir, utcnow


LABEL_COLUMNS = 3
QR_SIZE = 28 * mm


def _stage_label(individual: Individual) -> str:
    return individual.stage.value if hasattr(individual.stage, "value") else str(individual.stage)


def _sex_label(individual: Individual) -> str:
    return individual.sex.value if hasattr(individual.sex, "value") else str(individual.sex)


def write_pedigree_pdf(individuals: List[Individual], output_path: Path) -> Path:
    """
    Write a pedigree sheet: one row per individual with sire, dam and line.

    Args:
        individuals: Records to include, in the order given
        output_path: Destination .pdf path

    Returns:
        The written path
    """
    ensure_dir(output_path.parent)

    doc = SimpleDocTemplate(
        str(output_path),
        pagesize=landscape(A4),
        rightMargin=36,
        leftMargin=36,
        topMargin=36,
        bottomMargin=18,
        title="Pedigree",
    )

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "PedigreeTitle",
        parent=styles["Heading1"],
        alignment=TA_CENTER,
        fontSize=18,
        spaceAfter=12,
    )

    story = [
        Paragraph("Pedigree Sheet", title_style),
        Paragraph(f"Generated {utcnow().strftime('%Y-%m-%d %H:%M UTC')}", styles["Normal"]),
        Spacer(1, 12),
    ]

    rows = [["Code", "Species", "Scientific name", "Stage", "Sex", "Sire", "Dam", "Line", "Born", "Latest weight"]]
    for ind in individuals:
        weight = latest_weight(ind)
        rows.append([
            ind.individual_code,
            ind.species_common,
            ind.species_scientific,
            _stage_label(ind),
            _sex_label(ind),
            ind.parent_code_m or "Unknown",
            ind.parent_code_f or "Unknown",
            ind.line_name or "-",
            ind.birth_date.isoformat() if ind.birth_date else "-",
            f"{weight}g" if weight is not None else "N/A",
        ])

    table = Table(rows, repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.darkgreen),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.whitesmoke),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, 0), 9),
        ("BOTTOMPADDING", (0, 0), (-1, 0), 8),
        ("FONTSIZE", (0, 1), (-1, -1), 8),
        ("ALIGN", (0, 0), (-1, -1), "LEFT"),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.black),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.beige]),
    ]))
    story.append(table)

    doc.build(story)
    logger.info(f"Exported pedigree of {len(individuals)} individuals to {output_path}")
    return output_path


def _qr_drawing(value: str) -> Drawing:
    widget = QrCodeWidget(value)
    x1, y1, x2, y2 = widget.getBounds()
    width, height = x2 - x1, y2 - y1
    drawing = Drawing(QR_SIZE, QR_SIZE, transform=[QR_SIZE / width, 0, 0, QR_SIZE / height, 0, 0])
    drawing.add(widget)
    return drawing


def write_qr_labels_pdf(individuals: List[Individual], output_path: Path, public_base_url: str) -> Path:
    """
    Write a sheet of QR labels, each linking to an individual's public profile.

    Args:
        individuals: Records to label
        output_path: Destination .pdf path
        public_base_url: Prefix for profile links (e.g. https://beetlebase.app)
    """
    ensure_dir(output_path.parent)

    doc = SimpleDocTemplate(
        str(output_path),
        pagesize=A4,
        rightMargin=36,
        leftMargin=36,
        topMargin=36,
        bottomMargin=36,
        title="QR Labels",
    )
    styles = getSampleStyleSheet()
    caption_style = ParagraphStyle("LabelCaption", parent=styles["Normal"], alignment=TA_CENTER, fontSize=8)

    cells = []
    for ind in individuals:
        profile = ind.public_profile_url or f"/u/{ind.individual_code.lower()}"
        link = f"{public_base_url.rstrip('/')}{profile}"
        cells.append([
            _qr_drawing(link),
            Paragraph(f"<b>{ind.individual_code}</b>", caption_style),
            Paragraph(ind.species_common, caption_style),
        ])

    rows = [cells[i:i + LABEL_COLUMNS] for i in range(0, len(cells), LABEL_COLUMNS)]
    if rows and len(rows[-1]) < LABEL_COLUMNS:
        rows[-1].extend([""] * (LABEL_COLUMNS - len(rows[-1])))

    story = []
    if rows:
        table = Table(rows, colWidths=[2.3 * inch] * LABEL_COLUMNS)
        table.setStyle(TableStyle([
            ("ALIGN", (0, 0), (-1, -1), "CENTER"),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ("BOX", (0, 0), (-1, -1), 0.5, colors.grey),
            ("INNERGRID", (0, 0), (-1, -1), 0.25, colors.lightgrey),
            ("TOPPADDING", (0, 0), (-1, -1), 6),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
        ]))
        story.append(table)
    else:
        story.append(Paragraph("No individuals selected.", styles["Normal"]))

    doc.build(story)
    logger.info(f"Exported {len(individuals)} QR labels to {output_path}")
    return output_path
