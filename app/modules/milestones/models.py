from app.database.database import Base
from sqlalchemy import Column, Integer, String, ForeignKey, Numeric, Date, Text
from sqlalchemy.orm import relationship
from app.common.mixins import OwnerMixin, TimestampMixin
import enum


class MilestoneStatus(enum.Enum):
    PENDING = "pending"
    CREATED = "created"


class Agreement(Base, OwnerMixin, TimestampMixin):
    __tablename__ = "agreements"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    # Billed as the item name on generated invoices
    service_type = Column(String(200), nullable=False)

    project = relationship("Project")
    payment_terms = relationship("AgreementPaymentTerm", back_populates="agreement", cascade="all, delete-orphan")


class AgreementPaymentTerm(Base, TimestampMixin):
    __tablename__ = "agreement_payment_terms"

    id = Column(Integer, primary_key=True, index=True)
    agreement_id = Column(Integer, ForeignKey("agreements.id", ondelete="CASCADE"), nullable=False, index=True)
    description = Column(Text, nullable=True)

    agreement = relationship("Agreement", back_populates="payment_terms")
    milestones = relationship("AgreementPaymentMilestone", back_populates="payment_term", cascade="all, delete-orphan")


class AgreementPaymentMilestone(Base, TimestampMixin):
    __tablename__ = "agreement_payment_milestones"

    id = Column(Integer, primary_key=True, index=True)
    payment_term_id = Column(
        Integer, ForeignKey("agreement_payment_terms.id", ondelete="CASCADE"), nullable=False, index=True
    )
    milestone_date = Column(Date, nullable=False, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    description = Column(Text, nullable=True)
    # NULL on rows created before the column existed; treated as pending
    status = Column(String(20), nullable=True, default=MilestoneStatus.PENDING.value)

    payment_term = relationship("AgreementPaymentTerm", back_populates="milestones")
