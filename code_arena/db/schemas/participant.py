# db/schemas/participant.py
import uuid
from datetime import datetime
from code_arena.db.schemas._base import OrmModel

class ParticipantRead(OrmModel):
    id: uuid.UUID
    contest_id: uuid.UUID
    user_id: uuid.UUID
    total_score: int = 0
    joined_at: datetime

class ScoreDelta(OrmModel):
    """Effect of one finished evaluation on the participant standing."""
    participant_id: uuid.UUID
    previous_best: int
    new_best: int
    delta: int
    total_score: int
