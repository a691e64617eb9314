# db/models/user.py
import uuid
from datetime import datetime
from typing import List, Optional
from sqlalchemy import Enum as SAEnum, String, BigInteger, DateTime, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from code_arena.db.models._base import Base
from code_arena.db.enums import UserRole
from code_arena.utils.clock import utcnow

class User(Base):
    __tablename__ = "user"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tg_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True, unique=True)
    tg_username: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    role: Mapped[UserRole] = mapped_column(SAEnum(UserRole, name="user_role"), nullable=False, default=UserRole.CONTESTANT)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    participations: Mapped[List["Participant"]] = relationship(back_populates="user", passive_deletes=True)
    audit_logs: Mapped[List["AuditLog"]] = relationship(back_populates="actor", passive_deletes=True)
