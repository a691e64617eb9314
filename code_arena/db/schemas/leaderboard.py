# db/schemas/leaderboard.py
import uuid
from datetime import datetime
from typing import Optional
from code_arena.db.schemas._base import OrmModel

class LeaderboardEntry(OrmModel):
    rank: int
    user_id: uuid.UUID
    display_name: str
    participant_id: Optional[uuid.UUID] = None
    total_score: int = 0
    submission_count: int = 0
    accepted_count: int = 0
    accuracy: int = 0
    joined_at: datetime

class GlobalLeaderboardEntry(OrmModel):
    rank: int
    user_id: uuid.UUID
    display_name: str
    total_score: int = 0
    submission_count: int = 0
    accepted_count: int = 0
    success_rate: int = 0

class SubmissionTally(OrmModel):
    user_id: uuid.UUID
    submission_count: int = 0
    accepted_count: int = 0
    first_submitted_at: Optional[datetime] = None

class ScoreDrift(OrmModel):
    participant_id: uuid.UUID
    user_id: uuid.UUID
    recorded_total: int
    ledger_total: int
