# db/schemas/user.py
import uuid
from datetime import datetime
from typing import Optional
from code_arena.db.schemas._base import OrmModel
from code_arena.db.enums import UserRole
from code_arena.utils.sentinels import Missing

class UserBase(OrmModel):
    tg_id: Optional[int] = None
    tg_username: Optional[str] = None
    full_name: Optional[str] = None
    role: UserRole = UserRole.CONTESTANT

    @property
    def display_name(self) -> str:
        return self.full_name or (f"@{self.tg_username}" if self.tg_username else "anonymous")

class UserCreate(UserBase): ...

class UserUpdate(OrmModel):
    id: uuid.UUID
    tg_username: str | Missing | None = Missing()
    full_name: str | Missing | None = Missing()
    role: UserRole | Missing = Missing()

class UserRead(UserBase):
    id: uuid.UUID
    created_at: datetime
