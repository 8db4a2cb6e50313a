from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.farmbook.models import Base
from app.farmbook.utils import utcnow

if TYPE_CHECKING:
    from app.farmbook.models import User


class Farm(Base):
    __tablename__ = "farms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="TND")
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="Africa/Tunis")

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    members: Mapped[list["FarmMember"]] = relationship(
        "FarmMember",
        back_populates="farm",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class FarmMember(Base):
    __tablename__ = "farm_members"
    __table_args__ = (
        UniqueConstraint("farm_id", "user_id", name="uq_farm_members_farm_user"),
        Index("idx_farm_members_user", "user_id"),
        Index("idx_farm_members_farm_status", "farm_id", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    farm_id: Mapped[int] = mapped_column(ForeignKey("farms.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="WORKER")  # OWNER, ASSOCIATE, WORKER
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="ACTIVE")  # ACTIVE, INACTIVE

    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    farm: Mapped[Farm] = relationship("Farm", back_populates="members")
    user: Mapped["User"] = relationship("User", lazy="joined")
