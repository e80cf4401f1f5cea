"""
PDF rendering for billing documents using reportlab.

The renderer is a pure function of its inputs apart from the generated-at
footer; it never touches the database or the artifact store.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional, Protocol, Sequence
from xml.sax.saxutils import escape
import io
import logging
import re

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.lib.utils import ImageReader
from reportlab.platypus import Image, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from app.core.exceptions import RenderFailed
from app.modules.documents.schemas import (
    DocumentKind, PartyProfile, PaymentTerms, RenderableDocument, RenderLineItem
)

logger = logging.getLogger(__name__)

_STATUS_PREFIX = re.compile(r"^STATUS:[^|]*\|")
_CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£"}
_LOGO_SIZE = 1.2 * inch


class DocumentRenderer(Protocol):
    def render(
        self,
        document: RenderableDocument,
        line_items: Sequence[RenderLineItem],
        owner: PartyProfile,
        counterparty: PartyProfile,
        logo: Optional[bytes] = None,
    ) -> bytes:
        ...


def clean_notes(notes: Optional[str]) -> str:
    """Strip the legacy 'STATUS:xxx|' prefix some stored notes carry"""
    if not notes:
        return ""
    return _STATUS_PREFIX.sub("", notes, count=1).strip()


def format_money(amount, currency: str) -> str:
    value = Decimal(amount or 0).quantize(Decimal("0.01"))
    symbol = _CURRENCY_SYMBOLS.get((currency or "").upper())
    if symbol:
        return f"{symbol}{value:,.2f}"
    return f"{currency} {value:,.2f}"


def _format_date(value) -> str:
    return value.strftime("%d %b %Y") if value else "-"


class PdfDocumentRenderer:
    """A4 PDF; long item lists flow onto further pages"""

    def __init__(self):
        styles = getSampleStyleSheet()
        self.title_style = ParagraphStyle("DocTitle", parent=styles["Heading1"], fontSize=22, textColor=colors.HexColor("#0f172a"))
        self.label_style = ParagraphStyle("DocLabel", parent=styles["Normal"], fontSize=9, textColor=colors.HexColor("#64748b"))
        self.value_style = ParagraphStyle("DocValue", parent=styles["Normal"], fontSize=10, textColor=colors.HexColor("#0f172a"))
        self.footer_style = ParagraphStyle("DocFooter", parent=styles["Normal"], fontSize=8, textColor=colors.HexColor("#94a3b8"))

    def render(self, document, line_items, owner, counterparty, logo=None) -> bytes:
        try:
            buffer = io.BytesIO()
            doc = SimpleDocTemplate(
                buffer,
                pagesize=A4,
                topMargin=0.5 * inch,
                bottomMargin=0.5 * inch,
                title=f"{document.kind.value.title()} {document.number}",
                author=owner.full_name,
            )
            doc.build(self._elements(document, line_items, owner, counterparty, logo))
            return buffer.getvalue()
        except Exception as e:
            logger.error(f"PDF rendering failed for {document.kind.value} {document.number}: {e}")
            raise RenderFailed(f"Could not render {document.kind.value} {document.number}") from e

    def _logo(self, logo: Optional[bytes]):
        if logo:
            try:
                width, height = ImageReader(io.BytesIO(logo)).getSize()
                scale = min(_LOGO_SIZE / width, _LOGO_SIZE / height)
                return Image(io.BytesIO(logo), width=width * scale, height=height * scale)
            except Exception as e:
                logger.warning(f"Logo could not be embedded, using placeholder: {e}")

        placeholder = Table([["No Logo"]], colWidths=[_LOGO_SIZE], rowHeights=[_LOGO_SIZE])
        placeholder.setStyle(TableStyle([
            ("BOX", (0, 0), (-1, -1), 1, colors.HexColor("#cbd5e1")),
            ("ALIGN", (0, 0), (-1, -1), "CENTER"),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ("TEXTCOLOR", (0, 0), (-1, -1), colors.HexColor("#94a3b8")),
            ("FONTSIZE", (0, 0), (-1, -1), 9),
        ]))
        return placeholder

    def _party(self, heading: str, party: PartyProfile, with_tax_ids: bool = False) -> list:
        lines = [Paragraph(f"<b>{heading}</b>", self.label_style), Paragraph(escape(party.full_name), self.value_style)]
        for value in (party.organization, party.address, party.email, party.phone, party.country):
            if value:
                lines.append(Paragraph(escape(value), self.label_style))
        if with_tax_ids:
            if party.gstin:
                lines.append(Paragraph(f"GSTIN: {escape(party.gstin)}", self.label_style))
            if party.pan:
                lines.append(Paragraph(f"PAN: {escape(party.pan)}", self.label_style))
        return lines

    def _elements(self, document, line_items, owner, counterparty, logo) -> list:
        title = "INVOICE" if document.kind == DocumentKind.INVOICE else "EXPENSE"
        heading = [
            Paragraph(title, self.title_style),
            Paragraph(f"#{escape(document.number)}", self.label_style),
        ]
        header = Table([[heading, self._logo(logo)]], colWidths=[5.0 * inch, 2.0 * inch])
        header.setStyle(TableStyle([
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ("ALIGN", (1, 0), (1, 0), "RIGHT"),
        ]))

        elements = [header, Spacer(1, 16)]

        bill_to = "Bill To" if document.kind == DocumentKind.INVOICE else "Vendor"
        parties = Table(
            [[self._party("From", owner, with_tax_ids=True), self._party(bill_to, counterparty, with_tax_ids=True)]],
            colWidths=[3.5 * inch, 3.5 * inch],
        )
        parties.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "TOP")]))
        elements.extend([parties, Spacer(1, 16)])

        dates = Table(
            [
                ["Date", "Due Date", "Status"],
                [_format_date(document.document_date), _format_date(document.due_date), document.status.value.title()],
            ],
            colWidths=[2.3 * inch, 2.3 * inch, 2.4 * inch],
        )
        dates.setStyle(TableStyle([
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 9),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.HexColor("#64748b")),
            ("BOTTOMPADDING", (0, 0), (-1, 0), 8),
        ]))
        elements.extend([dates, Spacer(1, 16)])

        rows = [["Item", "Qty", "Rate", "Amount"]]
        for line in line_items:
            rows.append([
                Paragraph(escape(line.name), self.value_style),
                f"{Decimal(line.quantity).normalize():f}",
                format_money(line.unit_price, document.currency),
                format_money(line.amount, document.currency),
            ])
        items_table = Table(rows, colWidths=[3.4 * inch, 0.8 * inch, 1.4 * inch, 1.4 * inch], repeatRows=1)
        items_table.setStyle(TableStyle([
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 9),
            ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#f1f5f9")),
            ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
            ("LINEBELOW", (0, 0), (-1, -1), 0.25, colors.HexColor("#e2e8f0")),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ]))
        elements.extend([items_table, Spacer(1, 12)])

        elements.append(self._totals(document, owner))

        notes = clean_notes(document.notes)
        if notes:
            elements.extend([
                Spacer(1, 20),
                Paragraph("<b>Notes</b>", self.label_style),
                Paragraph(escape(notes).replace("\n", "<br/>"), self.value_style),
            ])

        elements.extend([
            Spacer(1, 30),
            Paragraph(f"Generated on {datetime.now().strftime('%d %b %Y %H:%M')}", self.footer_style),
        ])
        return elements

    def _totals(self, document, owner) -> Table:
        currency = document.currency
        subtotal = Decimal(document.subtotal or 0)
        tax_rate = Decimal(document.tax_rate or 0)
        rows = [["Subtotal", format_money(subtotal, currency)]]
        if owner.gstin and tax_rate > 0:
            rows.append([f"GST @{tax_rate.normalize():f}%", format_money(subtotal * tax_rate / 100, currency)])
        rows.append(["Total", format_money(document.total, currency)])

        if document.payment_terms == PaymentTerms.ADVANCE_BALANCE:
            rows.append(["Advance", format_money(document.advance_amount, currency)])
            balance_label = "Balance Due"
            if document.balance_due_date:
                balance_label += f" (by {_format_date(document.balance_due_date)})"
            rows.append([balance_label, format_money(document.balance_due, currency)])

        total_row = [row[0] for row in rows].index("Total")
        table = Table(rows, colWidths=[5.0 * inch, 2.0 * inch])
        table.setStyle(TableStyle([
            ("FONTSIZE", (0, 0), (-1, -1), 10),
            ("ALIGN", (1, 0), (1, -1), "RIGHT"),
            ("FONTNAME", (0, total_row), (-1, total_row), "Helvetica-Bold"),
            ("LINEABOVE", (0, total_row), (-1, total_row), 1, colors.HexColor("#e2e8f0")),
        ]))
        return table
