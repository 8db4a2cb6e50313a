from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.farmbook.models import Base
from app.farmbook.utils import utcnow


class Animal(Base):
    """An individual animal or a lot (a counted group tracked as one unit)."""

    __tablename__ = "animals"
    __table_args__ = (
        UniqueConstraint("farm_id", "tag_number", name="uq_animals_farm_tag"),
        Index("idx_animals_farm_status", "farm_id", "status"),
        Index("idx_animals_farm_species", "farm_id", "species"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    farm_id: Mapped[int] = mapped_column(ForeignKey("farms.id", ondelete="CASCADE"), nullable=False)

    # Required
    tag_number: Mapped[str] = mapped_column(String(20), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False, default="INDIVIDUAL")  # INDIVIDUAL, LOT
    species: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="ACTIVE")  # ACTIVE, SOLD, DEAD

    # Optional
    sex: Mapped[str | None] = mapped_column(String(8), nullable=True)  # MALE, FEMALE; individuals only
    birth_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    estimated_age: Mapped[int | None] = mapped_column(Integer, nullable=True)  # months
    lot_count: Mapped[int | None] = mapped_column(Integer, nullable=True)  # lots only
    photo_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
