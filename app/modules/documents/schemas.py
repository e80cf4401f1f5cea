"""
Pydantic schemas shared by invoices and expenses
"""
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DocumentKind(str, Enum):
    INVOICE = "invoice"
    EXPENSE = "expense"


class DocumentStatus(str, Enum):
    PENDING = "pending"
    OVERDUE = "overdue"
    PAID = "paid"


class PaymentTerms(str, Enum):
    FULL = "full"
    ADVANCE_BALANCE = "advance_balance"


class ReminderRepetition(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class LineItemCreate(BaseModel):
    item_id: int = Field(..., gt=0)
    quantity: Decimal = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)


class LineItemOut(BaseModel):
    id: int
    item_id: int
    position: int
    quantity: Decimal
    unit_price: Decimal

    model_config = ConfigDict(from_attributes=True)


class DocumentOut(BaseModel):
    """Fields common to every document response"""
    id: int
    owner_id: int
    project_id: Optional[int] = None
    due_date: Optional[date] = None
    subtotal: Decimal
    tax_rate: Decimal
    total: Decimal
    currency: str
    payment_terms: PaymentTerms
    advance_amount: Optional[Decimal] = None
    balance_due: Optional[Decimal] = None
    balance_due_date: Optional[date] = None
    status: DocumentStatus
    notes: Optional[str] = None
    payment_reminder_repetition: Optional[List[ReminderRepetition]] = None
    line_items: List[LineItemOut] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("payment_reminder_repetition", mode="before")
    @classmethod
    def parse_repetition(cls, v):
        from app.modules.documents.reminders import parse_reminder_repetition
        if v is None or isinstance(v, list):
            return v
        return parse_reminder_repetition(v)

    @classmethod
    def from_record(cls, record, today: Optional[date] = None):
        """Build the response with the status recomputed against today"""
        from app.modules.documents.status import effective_status
        out = cls.model_validate(record)
        out.status = effective_status(record.status, record.due_date, today)
        return out


# ===== Render models =====

class PartyProfile(BaseModel):
    full_name: str
    organization: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    gstin: Optional[str] = None
    pan: Optional[str] = None
    country: Optional[str] = None


class RenderLineItem(BaseModel):
    name: str
    quantity: Decimal
    unit_price: Decimal

    @property
    def amount(self) -> Decimal:
        return self.quantity * self.unit_price


class RenderableDocument(BaseModel):
    kind: DocumentKind
    number: str
    document_date: Optional[date] = None
    due_date: Optional[date] = None
    subtotal: Decimal
    tax_rate: Decimal
    total: Decimal
    currency: str
    payment_terms: PaymentTerms = PaymentTerms.FULL
    advance_amount: Optional[Decimal] = None
    balance_due: Optional[Decimal] = None
    balance_due_date: Optional[date] = None
    status: DocumentStatus
    notes: Optional[str] = None


class RenderContext(BaseModel):
    """Everything the renderer needs, loaded by the record store in one read"""
    document: RenderableDocument
    line_items: List[RenderLineItem]
    owner: PartyProfile
    counterparty: PartyProfile
    logo_path: Optional[str] = None
    file_names: dict = {}
