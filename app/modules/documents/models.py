"""
Columns shared by invoices and expenses
"""
from sqlalchemy import Column, Date, Enum, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import declared_attr

from app.modules.documents.schemas import DocumentStatus, PaymentTerms


def _values(enum_cls):
    return [member.value for member in enum_cls]


class DocumentMixin:
    """Header of a billing document; subclasses add kind-specific identity and artifact columns"""

    @declared_attr
    def project_id(cls):
        return Column(Integer, ForeignKey("projects.id", ondelete="SET NULL"), nullable=True, index=True)

    due_date = Column(Date, nullable=True)
    subtotal = Column(Numeric(15, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)
    total = Column(Numeric(15, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False)
    payment_terms = Column(
        Enum(PaymentTerms, values_callable=_values, name="payment_terms"),
        nullable=False,
        default=PaymentTerms.FULL,
    )
    advance_amount = Column(Numeric(15, 2), nullable=True)
    balance_due = Column(Numeric(15, 2), nullable=True)
    balance_due_date = Column(Date, nullable=True)
    status = Column(
        Enum(DocumentStatus, values_callable=_values, name="document_status"),
        nullable=False,
        default=DocumentStatus.PENDING,
    )
    notes = Column(Text, nullable=True)
    # JSON array of reminder repetitions; legacy rows hold a bare string
    payment_reminder_repetition = Column(Text, nullable=True)


class LineItemMixin:
    """One row of a document's items table, ordered by position"""

    @declared_attr
    def item_id(cls):
        return Column(Integer, ForeignKey("items.id"), nullable=False)

    position = Column(Integer, nullable=False, default=0)
    quantity = Column(Numeric(10, 3), nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False)

    @property
    def amount(self):
        return self.quantity * self.unit_price
