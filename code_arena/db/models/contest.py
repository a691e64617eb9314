# db/models/contest.py
import uuid
from datetime import datetime
from typing import List, Optional
from sqlalchemy import Boolean, CheckConstraint, DateTime, Enum as SAEnum, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from code_arena.db.models._base import Base
from code_arena.db.enums import ContestStatus
from code_arena.utils.clock import utcnow

class Contest(Base):
    __tablename__ = "contest"
    __table_args__ = (
        CheckConstraint("start_at < end_at", name="ck_contest_window"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    status: Mapped[ContestStatus] = mapped_column(
        SAEnum(ContestStatus, name="contest_status"),
        nullable=False,
        default=ContestStatus.UPCOMING,
    )
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    problems: Mapped[List["ContestProblem"]] = relationship(
        back_populates="contest",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ContestProblem.order_index",
    )
    participants: Mapped[List["Participant"]] = relationship(back_populates="contest", passive_deletes=True)
