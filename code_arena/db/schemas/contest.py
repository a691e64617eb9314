# db/schemas/contest.py
import uuid
from datetime import datetime
from typing import Optional
from pydantic import Field, model_validator
from code_arena.db.schemas._base import OrmModel
from code_arena.db.schemas.problem import ProblemRead
from code_arena.db.enums import ContestStatus
from code_arena.utils.sentinels import Missing

class ContestBase(OrmModel):
    title: str
    description: str = ""
    start_at: datetime
    end_at: datetime
    is_public: bool = True

class ContestCreate(ContestBase):
    created_by: Optional[uuid.UUID] = None

    @model_validator(mode="after")
    def _check_window(self) -> "ContestCreate":
        if self.start_at >= self.end_at:
            raise ValueError("Contest start must be before its end")
        return self

class ContestUpdate(OrmModel):
    id: uuid.UUID
    title: str | Missing = Missing()
    description: str | Missing = Missing()
    start_at: datetime | Missing = Missing()
    end_at: datetime | Missing = Missing()
    is_public: bool | Missing = Missing()

class ContestRead(ContestBase):
    id: uuid.UUID
    status: ContestStatus
    created_by: Optional[uuid.UUID] = None
    created_at: datetime

class ContestProblemCreate(OrmModel):
    contest_id: uuid.UUID
    problem_id: uuid.UUID
    points: int = Field(default=100, gt=0)
    order_index: int = Field(ge=0)

class ContestProblemRead(OrmModel):
    id: uuid.UUID
    contest_id: uuid.UUID
    problem_id: uuid.UUID
    points: int
    order_index: int

class ContestProblemDetail(ContestProblemRead):
    problem: ProblemRead

class ContestStats(OrmModel):
    contest_id: uuid.UUID
    participant_count: int = 0
    submission_count: int = 0
    accepted_count: int = 0
