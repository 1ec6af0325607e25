from datetime import datetime
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from app.core.database import Base


class TransactionType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class TransactionSubtype(str, Enum):
    FIXED = "FIXED"
    VARIABLE = "VARIABLE"


class TransactionSource(str, Enum):
    BANK_TRANSACTION = "BANK_TRANSACTION"
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    CASH = "CASH"
    PIX = "PIX"
    OTHER = "OTHER"


class Transaction(Base):
    """Transaction model for financial transactions."""

    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_user_date", "user_id", "transaction_date"),
        Index("ix_transactions_user_source_hash", "user_id", "source_hash"),
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    type = Column(String, nullable=False)
    subtype = Column(String, nullable=False)
    source = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    # Always the magnitude; the sign lives in ``type``.
    amount = Column(Numeric(19, 2), nullable=False)
    transaction_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False)
    source_entity_id = Column(
        Integer,
        ForeignKey("transaction_source_entities.id", ondelete="SET NULL"),
        nullable=True,
    )
    external_reference = Column(String(100), nullable=True)
    source_hash = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    category = relationship("Category", back_populates="transactions")
    source_entity = relationship("TransactionSourceEntity", back_populates="transactions")
    responsibilities = relationship(
        "TransactionResponsibility",
        back_populates="transaction",
        cascade="all, delete-orphan",
    )


class TransactionResponsibility(Base):
    """Share of one transaction attributed to one responsible."""

    __tablename__ = "transaction_responsibilities"

    id = Column(Integer, primary_key=True)
    transaction_id = Column(
        Integer,
        ForeignKey("transactions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    responsible_id = Column(Integer, ForeignKey("transaction_responsibles.id"), nullable=False, index=True)
    percentage = Column(Numeric(5, 2), nullable=False)
    calculated_amount = Column(Numeric(19, 2), nullable=True)
    notes = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    transaction = relationship("Transaction", back_populates="responsibilities")
    responsible = relationship("TransactionResponsible", back_populates="responsibilities")
