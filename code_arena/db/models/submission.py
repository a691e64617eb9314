# db/models/submission.py
import uuid
from datetime import datetime
from sqlalchemy import CheckConstraint, DateTime, Enum as SAEnum, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from code_arena.db.models._base import Base
from code_arena.db.enums import SubmissionStatus
from code_arena.utils.clock import utcnow

class Submission(Base):
    __tablename__ = "submission"
    __table_args__ = (
        CheckConstraint("test_cases_passed >= 0 AND test_cases_passed <= total_test_cases", name="ck_submission_passed"),
        CheckConstraint("score >= 0", name="ck_submission_score"),
        Index("ix_submission_contest_user", "contest_id", "user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    contest_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("contest.id", ondelete="CASCADE"), nullable=False)
    problem_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("problem.id", ondelete="CASCADE"), nullable=False)
    language: Mapped[str] = mapped_column(String(32), nullable=False)
    code: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[SubmissionStatus] = mapped_column(
        SAEnum(SubmissionStatus, name="submission_status"),
        nullable=False,
        default=SubmissionStatus.PENDING,
    )
    test_cases_passed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_test_cases: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    evaluated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    user = relationship("User")
    problem = relationship("Problem")
