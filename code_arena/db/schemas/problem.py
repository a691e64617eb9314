# db/schemas/problem.py
import uuid
from datetime import datetime
from typing import Optional
from pydantic import Field
from code_arena.db.schemas._base import OrmModel
from code_arena.db.enums import Difficulty

class TestCase(OrmModel):
    __test__ = False  # not a pytest class

    input: str = ""
    expected_output: str
    hidden: bool = True

class ProblemBase(OrmModel):
    title: str
    description: str = ""
    difficulty: Difficulty = Difficulty.EASY
    time_limit_ms: int = Field(default=2000, gt=0)
    memory_limit_kb: int = Field(default=262144, gt=0)
    test_cases: list[TestCase] = Field(default_factory=list)
    boilerplate: Optional[dict[str, str]] = None

class ProblemCreate(ProblemBase): ...

class ProblemRead(ProblemBase):
    id: uuid.UUID
    created_at: datetime

    @property
    def visible_test_cases(self) -> list[TestCase]:
        return [tc for tc in self.test_cases if not tc.hidden]
