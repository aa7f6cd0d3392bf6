"""
documents.py
Invoice PDFs (reportlab) and ZIP bundles for bulk runs.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
import re
import zipfile
from typing import Iterable
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import BaseDocTemplate, Frame, Image, PageTemplate, Paragraph, Spacer, Table, TableStyle

from models import AppSettings, Invoice, InvoiceStatus, Member

logger = logging.getLogger(__name__)

GST_DIVISOR = 1.1
ORGANISATION_NAME = "Membership Administration"


def invoice_filename(member: Member, invoice: Invoice) -> str:
    safe_name = re.sub(r"\s", "_", member.name)
    return f"Invoice-{safe_name}-{invoice.financial_year.label}.pdf"


def bundle_filename(fy_label: str) -> str:
    return f"Invoices-{fy_label}.zip"


def _money(value: float) -> str:
    return f"${value:,.2f}"


def line_items(invoice: Invoice) -> list[tuple[str, float]]:
    """
    Breakdown printed on the invoice. Amounts that do not match the level's fees
    (an edited or waived amount) print as a single line.
    """
    level = invoice.level_at_time_of_invoice
    years = invoice.number_of_years
    joining = level.joining_fee if invoice.include_joining_fee else 0
    standard = round(level.annual_fee * years + joining, 2)
    if round(invoice.amount, 2) != standard:
        return [(f"Membership fee: {level.name}", invoice.amount)]

    items: list[tuple[str, float]] = []
    if level.annual_fee > 0:
        if years > 1:
            items.append((f"{years} years @ {_money(level.annual_fee)}/year", level.annual_fee * years))
        else:
            items.append((f"Annual Fee: {_money(level.annual_fee)}", level.annual_fee))
    if joining > 0:
        items.append(("Joining Fee", joining))
    if not items:
        items.append((f"Membership fee: {level.name}", 0))
    return items


def _logo(settings: AppSettings):
    if not settings.custom_logo:
        return None
    try:
        _, encoded = settings.custom_logo.split(",", 1)
        raw = base64.b64decode(encoded)
        return Image(io.BytesIO(raw), width=40 * mm, height=20 * mm, kind="proportional")
    except (ValueError, binascii.Error, OSError) as e:
        logger.warning("Ignoring unreadable logo: %s", e)
        return None


def invoice_pdf(member: Member, invoice: Invoice, settings: AppSettings) -> bytes:
    buf = io.BytesIO()
    doc = BaseDocTemplate(buf, pagesize=A4, leftMargin=20 * mm, rightMargin=20 * mm,
                          topMargin=20 * mm, bottomMargin=20 * mm, title=invoice_filename(member, invoice))
    frame = Frame(doc.leftMargin, doc.bottomMargin, doc.width, doc.height, id="normal")

    def draw_stamp(canvas, doc):
        if invoice.status not in (InvoiceStatus.PAID, InvoiceStatus.VOID):
            return
        canvas.saveState()
        canvas.setFont("Helvetica-Bold", 72)
        canvas.setFillColor(colors.green if invoice.status == InvoiceStatus.PAID else colors.red)
        canvas.setFillAlpha(0.15)
        canvas.translate(A4[0] / 2, A4[1] / 2)
        canvas.rotate(30)
        canvas.drawCentredString(0, 0, invoice.status.value.upper())
        canvas.restoreState()

    doc.addPageTemplates([PageTemplate(id="Invoice", frames=frame, onPage=draw_stamp)])

    styles = getSampleStyleSheet()
    story = []
    logo = _logo(settings)
    story.append(logo if logo is not None else Paragraph(ORGANISATION_NAME, styles["Title"]))
    story.append(Paragraph("TAX INVOICE", styles["Heading1"]))

    meta = [
        ["Invoice #", invoice.id],
        ["Date", invoice.date],
        ["Due Date", invoice.due_date or "-"],
        ["Financial Year", invoice.coverage_label()],
    ]
    meta_table = Table(meta, colWidths=[35 * mm, None], hAlign="LEFT")
    meta_table.setStyle(TableStyle([("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold")]))
    story += [meta_table, Spacer(1, 8 * mm)]

    bill_to = [f"<b>{escape(member.name)}</b>"]
    if member.contact_name:
        bill_to.append(f"Attn: {escape(member.contact_name)}")
    if member.postal_address:
        bill_to.append(escape(member.postal_address))
    if member.telephone:
        bill_to.append(escape(member.telephone))
    story.append(Paragraph("Bill To", styles["Heading3"]))
    story.append(Paragraph("<br/>".join(bill_to), styles["Normal"]))
    story.append(Spacer(1, 8 * mm))

    subtotal = invoice.amount / GST_DIVISOR
    rows = [["Description", "Amount"]]
    rows += [[desc, _money(amount)] for desc, amount in line_items(invoice)]
    rows += [
        ["Subtotal (excl. GST)", _money(subtotal)],
        ["GST", _money(invoice.amount - subtotal)],
        ["Total (incl. GST)", _money(invoice.amount)],
        ["Amount Paid", _money(invoice.amount_paid)],
        ["Balance Due", _money(invoice.balance)],
    ]
    table = Table(rows, colWidths=[120 * mm, None], repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.grey),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.whitesmoke),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("ALIGN", (1, 0), (1, -1), "RIGHT"),
        ("LINEABOVE", (0, -5), (-1, -5), 1, colors.black),
        ("FONTNAME", (0, -3), (-1, -3), "Helvetica-Bold"),
        ("GRID", (0, 0), (-1, 0), 1, colors.black),
    ]))
    story += [table, Spacer(1, 8 * mm)]

    if invoice.notes:
        story.append(Paragraph("Notes", styles["Heading3"]))
        story.append(Paragraph(escape(invoice.notes).replace("\n", "<br/>"), styles["Normal"]))
    if settings.payment_instructions and invoice.status != InvoiceStatus.PAID:
        story.append(Paragraph("How to Pay", styles["Heading3"]))
        story.append(Paragraph(escape(settings.payment_instructions).replace("\n", "<br/>"), styles["Normal"]))

    doc.build(story)
    return buf.getvalue()


def invoices_zip(pairs: Iterable[tuple[Member, Invoice]], settings: AppSettings) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for member, invoice in pairs:
            zf.writestr(invoice_filename(member, invoice), invoice_pdf(member, invoice, settings))
    return buf.getvalue()
