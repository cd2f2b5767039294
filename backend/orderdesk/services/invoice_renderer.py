"""
OrderDesk Backend - Invoice Renderer
======================================

What:  Turns a populated order into a PDF invoice.
How:   `invoice_lines()` lays out the text in a fixed field order; `render()`
       draws those lines with a reportlab canvas, starting a new page when
       the current one is full, into an in-memory buffer.
Who:   OrderService, for the inline invoice view and the invoice email.

Guarantees:
    - Pure: no database or network access. Products and variants must
      already be loaded on the order.
    - Deterministic: the canvas runs in reportlab's invariant mode (fixed
      creation date and document ID), so equal orders give equal bytes.
    - Complete or nothing: bytes are returned only after the canvas wrote
      the trailing %%EOF marker. Any failure raises InvoiceRenderError.
"""

import io
import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterator, List, Optional

from reportlab.lib.pagesizes import A4
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

from orderdesk.config import settings
from orderdesk.exceptions import InvoiceRenderError
from orderdesk.models.order import Order

logger = logging.getLogger(__name__)

PDF_EOF_MARKER = b"%%EOF"
CHUNK_SIZE = 64 * 1024

DEFAULT_FONT = "Helvetica"
CUSTOM_FONT_NAME = "InvoiceFont"
FONT_SIZE = 11
TITLE_FONT_SIZE = 18
LINE_HEIGHT = 16
MARGIN = 56


def _money(value: Decimal) -> str:
    return f"{Decimal(value).quantize(Decimal('0.01'))}"


def _timestamp(value: Optional[datetime]) -> str:
    return value.isoformat() if value is not None else ""


def invoice_lines(order: Order) -> List[str]:
    """
    The invoice body, one string per printed line, in fixed order:
    order fields first, then five lines per item.
    """
    customer = order.customer
    lines = [
        f"Order code: {order.code}",
        f"Customer: {customer.full_name}",
        f"Phone: {customer.phone}",
        f"Address: {customer.address}",
        f"Email: {customer.email}",
        f"Payment method: {order.payment_method}",
        f"Payment status: {order.payment_status.value}",
        f"Delivery status: {order.delivery_status.value}",
        f"Status: {order.status.value}",
        f"Created at: {_timestamp(order.created_at)}",
        f"Updated at: {_timestamp(order.updated_at)}",
        f"Total: {_money(order.reconciled_total())}",
        "Items:",
    ]
    for item in order.items:
        lines.extend([
            f"Product: {item.product.name}",
            f"Variant: {item.variant.name}",
            f"Quantity: {item.quantity}",
            f"Price: {_money(item.unit_price)}",
            f"Total: {_money(item.line_total)}",
        ])
    return lines


class InvoiceRenderer:
    """Renders invoices. One instance serves the whole process."""

    def __init__(self, font_path: Optional[str] = None):
        self.font_name = DEFAULT_FONT
        font_path = settings.invoice_font_path if font_path is None else font_path
        if font_path:
            pdfmetrics.registerFont(TTFont(CUSTOM_FONT_NAME, font_path))
            self.font_name = CUSTOM_FONT_NAME
            logger.info("Invoice font loaded from %s", font_path)

    def render(self, order: Order) -> bytes:
        """
        Render `order` to a complete PDF document.

        Raises:
            InvoiceRenderError: Layout failed or the document came out incomplete.
        """
        buffer = io.BytesIO()
        try:
            pdf = canvas.Canvas(buffer, pagesize=A4, invariant=1)
            pdf.setTitle(f"Invoice {order.code}")
            pdf.setAuthor("OrderDesk")
            self._draw(pdf, order)
            pdf.save()
        except InvoiceRenderError:
            raise
        except Exception as e:
            logger.error("Invoice rendering failed for order %s: %s", order.code, str(e), exc_info=True)
            raise InvoiceRenderError(context={"order_code": order.code, "error_type": type(e).__name__})

        artifact = buffer.getvalue()
        if not is_complete_pdf(artifact):
            raise InvoiceRenderError(context={"order_code": order.code, "reason": "missing EOF marker"})

        logger.info("Rendered invoice for order %s (%d bytes)", order.code, len(artifact))
        return artifact

    def _draw(self, pdf: canvas.Canvas, order: Order) -> None:
        width, height = A4
        top = height - MARGIN

        pdf.setFont(self.font_name, TITLE_FONT_SIZE)
        pdf.drawCentredString(width / 2, top, "Invoice")
        y = top - 2 * LINE_HEIGHT
        pdf.setFont(self.font_name, FONT_SIZE)

        lines = invoice_lines(order)
        if self.font_name == DEFAULT_FONT and not all(_is_latin1(line) for line in lines):
            logger.warning(
                "Invoice for order %s has characters outside Latin-1 that %s cannot show; "
                "set INVOICE_FONT_PATH to a TrueType font that covers them",
                order.code, DEFAULT_FONT,
            )

        for line in lines:
            if y < MARGIN:
                pdf.showPage()
                pdf.setFont(self.font_name, FONT_SIZE)
                y = top
            pdf.drawString(MARGIN, y, line)
            y -= LINE_HEIGHT


def _is_latin1(text: str) -> bool:
    try:
        text.encode("latin-1")
    except UnicodeEncodeError:
        return False
    return True


def is_complete_pdf(artifact: bytes) -> bool:
    return bool(artifact) and artifact.rstrip().endswith(PDF_EOF_MARKER)


def iter_chunks(artifact: bytes, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """Yield a finished artifact in fixed-size chunks for a streaming response."""
    for start in range(0, len(artifact), chunk_size):
        yield artifact[start:start + chunk_size]


invoice_renderer = InvoiceRenderer()
