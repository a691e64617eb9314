# db/models/participant.py
import uuid
from datetime import datetime
from typing import List
from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from code_arena.db.models._base import Base
from code_arena.utils.clock import utcnow

class Participant(Base):
    __tablename__ = "participant"
    __table_args__ = (
        UniqueConstraint("contest_id", "user_id", name="uq_participant_contest_user"),
        CheckConstraint("total_score >= 0", name="ck_participant_total_score"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    contest_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("contest.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    total_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    contest = relationship("Contest", back_populates="participants")
    user = relationship("User", back_populates="participations")
    problem_scores: Mapped[List["ProblemScore"]] = relationship(
        back_populates="participant", cascade="all, delete-orphan", passive_deletes=True
    )
