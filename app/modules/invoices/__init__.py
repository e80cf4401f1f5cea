"""
Invoices module

- Invoice records with ordered line items and per-owner numbering
- Payments; a fully paid invoice is marked paid, reverting it removes its payments
- Generated or uploaded PDF stored under Invoices/{owner_id}/
- Invoice, reminder and update emails queued through Celery
- Read-only client portal

Tables:
- invoices
- invoice_line_items
- payments
- invoice_sequences
"""

from .models import Invoice, InvoiceLineItem, Payment, InvoiceSequence
from .schemas import (
    InvoiceCreate, InvoiceUpdate, InvoiceOut,
    PaymentCreate, PaymentOut
)
from .service import InvoiceService
from .router import router, client_router

__all__ = [
    "Invoice", "InvoiceLineItem", "Payment", "InvoiceSequence",
    "InvoiceCreate", "InvoiceUpdate", "InvoiceOut",
    "PaymentCreate", "PaymentOut",
    "InvoiceService",
    "router", "client_router"
]
