from app.database.database import Base
from sqlalchemy import Column, Integer, String, ForeignKey, Date
from sqlalchemy.orm import relationship
from datetime import date
from app.common.mixins import OwnerMixin, TimestampMixin
from app.modules.documents.models import DocumentMixin, LineItemMixin


class Expense(Base, OwnerMixin, TimestampMixin, DocumentMixin):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, index=True)

    # Optional link to the client the cost was incurred for
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="SET NULL"), nullable=True, index=True)

    vendor_name = Column(String(200), nullable=False)
    vendor_email = Column(String(255), nullable=True)
    bill_number = Column(String(100), nullable=True)
    expense_date = Column(Date, nullable=False, default=date.today)

    # Artifact pointers
    # Expense/Generated_pdfs/{owner_id}/{expense_file_name}
    expense_file_name = Column(String(255), nullable=True)
    # Expense/Uploaded_Documents/{owner_id}/{attachment_file_name}
    attachment_file_name = Column(String(255), nullable=True)

    client = relationship("Client")
    line_items = relationship(
        "ExpenseLineItem", back_populates="expense", cascade="all, delete-orphan",
        order_by="ExpenseLineItem.position"
    )


class ExpenseLineItem(Base, TimestampMixin, LineItemMixin):
    __tablename__ = "expense_line_items"

    id = Column(Integer, primary_key=True, index=True)
    expense_id = Column(Integer, ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False, index=True)

    expense = relationship("Expense", back_populates="line_items")
    item = relationship("Item")
