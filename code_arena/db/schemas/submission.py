# db/schemas/submission.py
import uuid
from datetime import datetime
from typing import Optional
from pydantic import Field
from code_arena.db.schemas._base import OrmModel
from code_arena.db.enums import SubmissionStatus

class SubmissionCreate(OrmModel):
    user_id: uuid.UUID
    contest_id: uuid.UUID
    problem_id: uuid.UUID
    language: str
    code: str = Field(min_length=1)

class SubmissionRead(OrmModel):
    id: uuid.UUID
    user_id: uuid.UUID
    contest_id: uuid.UUID
    problem_id: uuid.UUID
    language: str
    code: str
    status: SubmissionStatus = SubmissionStatus.PENDING
    test_cases_passed: int = 0
    total_test_cases: int = 0
    score: int = 0
    created_at: datetime
    evaluated_at: Optional[datetime] = None

class SubmissionVerdict(OrmModel):
    """Terminal fields the evaluation pipeline writes in a single update."""
    id: uuid.UUID
    status: SubmissionStatus
    test_cases_passed: int = Field(ge=0)
    total_test_cases: int = Field(ge=0)
    score: int = Field(ge=0)
