from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from app.farmbook.models import Base
from app.farmbook.utils import utcnow


class CashboxMovement(Base):
    """One ledger line. Balance = deposits - cash expenses - reimbursements."""

    __tablename__ = "cashbox_movements"
    __table_args__ = (
        Index("idx_cashbox_movements_farm_created", "farm_id", "created_at"),
        Index("idx_cashbox_movements_farm_type", "farm_id", "type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    farm_id: Mapped[int] = mapped_column(ForeignKey("farms.id", ondelete="CASCADE"), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)  # DEPOSIT, EXPENSE_CASH, EXPENSE_CREDIT, REIMBURSEMENT
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str | None] = mapped_column(String(20), nullable=True)  # FEED, VET, ... ; null for deposits

    related_event_id: Mapped[int | None] = mapped_column(ForeignKey("events.id", ondelete="SET NULL"), nullable=True)
    related_expense_id: Mapped[int | None] = mapped_column(
        ForeignKey("credit_expenses.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)


class CreditExpense(Base):
    """An expense paid out of someone's pocket, owed back until fully reimbursed."""

    __tablename__ = "credit_expenses"
    __table_args__ = (
        Index("idx_credit_expenses_farm_status", "farm_id", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    farm_id: Mapped[int] = mapped_column(ForeignKey("farms.id", ondelete="CASCADE"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    remaining_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    paid_by: Mapped[str] = mapped_column(String(255), nullable=False)
    # OUTSTANDING, PARTIALLY_REIMBURSED, FULLY_REIMBURSED
    status: Mapped[str] = mapped_column(String(24), nullable=False, default="OUTSTANDING")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
