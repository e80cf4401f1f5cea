from app.database.database import Base
from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint, Numeric, Enum, Date, Text
from sqlalchemy.orm import relationship
from datetime import date
from app.common.mixins import OwnerMixin, TimestampMixin
from app.modules.documents.models import DocumentMixin, LineItemMixin
import enum


class PaymentMethod(enum.Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    UPI = "upi"
    CARD = "card"
    CHEQUE = "cheque"
    OTHER = "other"


class Invoice(Base, OwnerMixin, TimestampMixin, DocumentMixin):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)

    # References
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)

    # Invoice data
    invoice_number = Column(String(50), nullable=False)
    invoice_date = Column(Date, nullable=False, default=date.today)
    total_installments = Column(Integer, nullable=False, default=1)
    current_installment = Column(Integer, nullable=False, default=1)

    # Artifact pointer: Invoices/{owner_id}/{invoice_file_name}
    invoice_file_name = Column(String(255), nullable=True)

    # Relationships
    client = relationship("Client")
    line_items = relationship(
        "InvoiceLineItem", back_populates="invoice", cascade="all, delete-orphan",
        order_by="InvoiceLineItem.position"
    )
    payments = relationship("Payment", back_populates="invoice", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("owner_id", "invoice_number", name="uq_invoice_owner_number"),
    )

    @property
    def paid_amount(self):
        return sum(payment.amount for payment in self.payments)


class InvoiceLineItem(Base, TimestampMixin, LineItemMixin):
    __tablename__ = "invoice_line_items"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)

    invoice = relationship("Invoice", back_populates="line_items")
    item = relationship("Item")


class Payment(Base, TimestampMixin):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)

    amount = Column(Numeric(15, 2), nullable=False)
    method = Column(Enum(PaymentMethod, values_callable=lambda e: [m.value for m in e]), nullable=False)
    reference = Column(String(100), nullable=True)
    payment_date = Column(Date, nullable=False, default=date.today)
    notes = Column(Text, nullable=True)

    invoice = relationship("Invoice", back_populates="payments")


class InvoiceSequence(Base, OwnerMixin, TimestampMixin):
    """Per-owner invoice numbering"""
    __tablename__ = "invoice_sequences"

    id = Column(Integer, primary_key=True, index=True)
    current_number = Column(Integer, nullable=False, default=0)
    prefix = Column(String(10), nullable=True)

    __table_args__ = (
        UniqueConstraint("owner_id", name="uq_sequence_owner"),
    )
