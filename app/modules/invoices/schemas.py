from pydantic import BaseModel, Field, field_validator, model_validator
from decimal import Decimal
from typing import Optional, List
from datetime import date
from enum import Enum

from app.modules.documents.schemas import (
    DocumentOut, DocumentStatus, LineItemCreate, PaymentTerms, ReminderRepetition
)


class PaymentMethod(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    UPI = "upi"
    CARD = "card"
    CHEQUE = "cheque"
    OTHER = "other"


class EmailType(str, Enum):
    INVOICE = "invoice"
    REMINDER = "reminder"
    UPDATE = "update"


class InvoiceCreate(BaseModel):
    client_id: int = Field(..., gt=0)
    project_id: Optional[int] = None
    invoice_number: Optional[str] = Field(None, min_length=1, max_length=50)
    invoice_date: date = Field(default_factory=date.today)
    due_date: Optional[date] = None
    subtotal: Optional[Decimal] = Field(None, ge=0)
    tax_rate: Decimal = Field(Decimal("0"), ge=0, le=100, description="Tax percentage applied to the subtotal")
    total: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    total_installments: int = Field(1, ge=1)
    current_installment: int = Field(1, ge=1)
    notes: Optional[str] = None
    payment_reminder_repetition: Optional[List[ReminderRepetition]] = None
    payment_terms: PaymentTerms = PaymentTerms.FULL
    advance_amount: Optional[Decimal] = Field(None, ge=0)
    balance_due: Optional[Decimal] = Field(None, ge=0)
    balance_due_date: Optional[date] = None
    items: List[LineItemCreate] = []

    @model_validator(mode='after')
    def validate_installments(self):
        if self.current_installment > self.total_installments:
            raise ValueError('current_installment cannot exceed total_installments')
        return self

    @model_validator(mode='after')
    def validate_advance_balance(self):
        if self.payment_terms == PaymentTerms.ADVANCE_BALANCE:
            if self.advance_amount is None or self.balance_due is None:
                raise ValueError('advance_amount and balance_due are required for advance_balance terms')
        return self


class InvoiceUpdate(BaseModel):
    client_id: Optional[int] = Field(None, gt=0)
    project_id: Optional[int] = None
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    subtotal: Optional[Decimal] = Field(None, ge=0)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    total: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    total_installments: Optional[int] = Field(None, ge=1)
    current_installment: Optional[int] = Field(None, ge=1)
    notes: Optional[str] = None
    payment_reminder_repetition: Optional[List[ReminderRepetition]] = None
    payment_terms: Optional[PaymentTerms] = None
    advance_amount: Optional[Decimal] = Field(None, ge=0)
    balance_due: Optional[Decimal] = Field(None, ge=0)
    balance_due_date: Optional[date] = None
    status: Optional[DocumentStatus] = None
    items: Optional[List[LineItemCreate]] = None


class InvoiceOut(DocumentOut):
    client_id: int
    invoice_number: str
    invoice_date: date
    total_installments: int
    current_installment: int
    invoice_file_name: Optional[str] = None


class InvoiceList(BaseModel):
    invoices: List[InvoiceOut]
    total: int


class PaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0)
    method: PaymentMethod
    reference: Optional[str] = Field(None, max_length=100)
    payment_date: date = Field(default_factory=date.today)
    notes: Optional[str] = None


class PaymentOut(BaseModel):
    id: int
    invoice_id: int
    amount: Decimal
    method: PaymentMethod
    reference: Optional[str] = None
    payment_date: date
    notes: Optional[str] = None

    class Config:
        from_attributes = True

    @field_validator('method', mode='before')
    @classmethod
    def unwrap_enum(cls, v):
        return getattr(v, 'value', v)


class InvoiceEmailRequest(BaseModel):
    type: EmailType = EmailType.INVOICE


class InvoiceEmailResponse(BaseModel):
    invoice_id: int
    type: EmailType
    to_email: str
    task_id: Optional[str] = None
    message: str
