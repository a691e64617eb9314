# db/models/contest_problem.py
import uuid
from sqlalchemy import CheckConstraint, ForeignKey, Integer, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from code_arena.db.models._base import Base

class ContestProblem(Base):
    __tablename__ = "contest_problem"
    __table_args__ = (
        UniqueConstraint("contest_id", "problem_id", name="uq_contest_problem"),
        UniqueConstraint("contest_id", "order_index", name="uq_contest_problem_order"),
        CheckConstraint("points > 0", name="ck_contest_problem_points_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    contest_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("contest.id", ondelete="CASCADE"), nullable=False, index=True)
    problem_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("problem.id", ondelete="CASCADE"), nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False)

    contest = relationship("Contest", back_populates="problems")
    problem = relationship("Problem", back_populates="contest_links")
