# db/models/problem_score.py
import uuid
from datetime import datetime
from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from code_arena.db.models._base import Base
from code_arena.utils.clock import utcnow

class ProblemScore(Base):
    """Best score a participant has earned on one problem of the contest."""
    __tablename__ = "problem_score"
    __table_args__ = (
        UniqueConstraint("participant_id", "problem_id", name="uq_problem_score_participant_problem"),
        CheckConstraint("best_score >= 0", name="ck_problem_score_best_score"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    participant_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("participant.id", ondelete="CASCADE"), nullable=False)
    problem_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("problem.id", ondelete="CASCADE"), nullable=False)
    best_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    best_submission_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("submission.id", ondelete="SET NULL"), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    participant = relationship("Participant", back_populates="problem_scores")
