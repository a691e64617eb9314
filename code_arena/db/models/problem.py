# db/models/problem.py
import uuid
from datetime import datetime
from typing import List, Optional
from sqlalchemy import CheckConstraint, DateTime, Enum as SAEnum, Integer, JSON, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from code_arena.db.models._base import Base
from code_arena.db.enums import Difficulty
from code_arena.utils.clock import utcnow

class Problem(Base):
    __tablename__ = "problem"
    __table_args__ = (
        CheckConstraint("time_limit_ms > 0", name="ck_problem_time_limit_positive"),
        CheckConstraint("memory_limit_kb > 0", name="ck_problem_memory_limit_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    difficulty: Mapped[Difficulty] = mapped_column(SAEnum(Difficulty, name="difficulty"), nullable=False, default=Difficulty.EASY)
    time_limit_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=2000)
    memory_limit_kb: Mapped[int] = mapped_column(Integer, nullable=False, default=262144)
    # [{"input": str, "expected_output": str, "hidden": bool}, ...] in evaluation order
    test_cases: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    boilerplate: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    contest_links: Mapped[List["ContestProblem"]] = relationship(back_populates="problem", passive_deletes=True)
