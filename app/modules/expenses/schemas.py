from pydantic import BaseModel, EmailStr, Field, model_validator
from decimal import Decimal
from typing import Optional, List
from datetime import date

from app.modules.documents.schemas import (
    DocumentOut, DocumentStatus, LineItemCreate, PaymentTerms, ReminderRepetition
)


class ExpenseCreate(BaseModel):
    vendor_name: str = Field(..., min_length=1, max_length=200)
    vendor_email: Optional[EmailStr] = None
    client_id: Optional[int] = Field(None, gt=0)
    project_id: Optional[int] = None
    bill_number: Optional[str] = Field(None, max_length=100)
    expense_date: date = Field(default_factory=date.today)
    due_date: Optional[date] = None
    subtotal: Optional[Decimal] = Field(None, ge=0)
    tax_rate: Decimal = Field(Decimal("0"), ge=0, le=100)
    total: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    notes: Optional[str] = None
    payment_reminder_repetition: Optional[List[ReminderRepetition]] = None
    payment_terms: PaymentTerms = PaymentTerms.FULL
    advance_amount: Optional[Decimal] = Field(None, ge=0)
    balance_due: Optional[Decimal] = Field(None, ge=0)
    balance_due_date: Optional[date] = None
    items: List[LineItemCreate] = []

    @model_validator(mode='after')
    def validate_advance_balance(self):
        if self.payment_terms == PaymentTerms.ADVANCE_BALANCE:
            if self.advance_amount is None or self.balance_due is None:
                raise ValueError('advance_amount and balance_due are required for advance_balance terms')
        return self


class ExpenseUpdate(BaseModel):
    vendor_name: Optional[str] = Field(None, min_length=1, max_length=200)
    vendor_email: Optional[EmailStr] = None
    client_id: Optional[int] = Field(None, gt=0)
    project_id: Optional[int] = None
    bill_number: Optional[str] = Field(None, max_length=100)
    expense_date: Optional[date] = None
    due_date: Optional[date] = None
    subtotal: Optional[Decimal] = Field(None, ge=0)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    total: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    notes: Optional[str] = None
    payment_reminder_repetition: Optional[List[ReminderRepetition]] = None
    payment_terms: Optional[PaymentTerms] = None
    advance_amount: Optional[Decimal] = Field(None, ge=0)
    balance_due: Optional[Decimal] = Field(None, ge=0)
    balance_due_date: Optional[date] = None
    status: Optional[DocumentStatus] = None
    items: Optional[List[LineItemCreate]] = None


class ExpenseOut(DocumentOut):
    client_id: Optional[int] = None
    vendor_name: str
    vendor_email: Optional[str] = None
    bill_number: Optional[str] = None
    expense_date: date
    expense_file_name: Optional[str] = None
    attachment_file_name: Optional[str] = None


class ExpenseList(BaseModel):
    expenses: List[ExpenseOut]
    total: int
