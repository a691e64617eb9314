# db/schemas/activity.py
import uuid
from datetime import datetime
from typing import Optional
from code_arena.db.schemas._base import OrmModel
from code_arena.db.enums import ContestStatus, SubmissionStatus

class SubmissionDigest(OrmModel):
    """A submission with the titles needed to list it outside its contest."""
    id: uuid.UUID
    user_id: uuid.UUID
    contest_id: uuid.UUID
    contest_title: str
    problem_id: uuid.UUID
    problem_title: str
    language: str
    status: SubmissionStatus
    score: int = 0
    created_at: datetime
    author: Optional[str] = None

class UserProfile(OrmModel):
    user_id: uuid.UUID
    display_name: str
    submission_count: int = 0
    accepted_count: int = 0
    success_rate: int = 0
    contest_count: int = 0
    total_score: int = 0
    history: list[SubmissionDigest] = []

class ArenaCounts(OrmModel):
    user_count: int = 0
    contest_count: int = 0
    problem_count: int = 0
    active_contest_count: int = 0

class ContestActivity(OrmModel):
    contest_id: uuid.UUID
    title: str
    status: ContestStatus
    participant_count: int = 0
    submission_count: int = 0
    accepted_count: int = 0

class ArenaOverview(OrmModel):
    counts: ArenaCounts
    recent_submissions: list[SubmissionDigest] = []
    contests: list[ContestActivity] = []
