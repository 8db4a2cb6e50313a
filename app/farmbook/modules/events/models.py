from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.farmbook.models import Base
from app.farmbook.utils import utcnow


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (
        Index("idx_events_farm_date", "farm_id", "event_date"),
        Index("idx_events_farm_target", "farm_id", "target_id"),
        Index("idx_events_farm_next_due", "farm_id", "next_due_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    farm_id: Mapped[int] = mapped_column(ForeignKey("farms.id", ondelete="CASCADE"), nullable=False)

    # Target: an animals row; target_type mirrors its kind (ANIMAL for INDIVIDUAL, LOT for LOT)
    target_type: Mapped[str] = mapped_column(String(10), nullable=False)
    target_id: Mapped[int] = mapped_column(ForeignKey("animals.id", ondelete="CASCADE"), nullable=False)

    event_type: Mapped[str] = mapped_column(String(20), nullable=False)
    event_date: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    # Optional
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)  # type-specific data, e.g. {"weightKg": 410}
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    cost: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    next_due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    attachment_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
