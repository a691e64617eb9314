# db/models/audit_log.py
import uuid
from datetime import datetime
from sqlalchemy import DateTime, ForeignKey, String, JSON, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from code_arena.db.models._base import Base
from code_arena.utils.clock import utcnow

class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    actor_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    action: Mapped[str] = mapped_column(String(128), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow, index=True)

    actor = relationship("User", back_populates="audit_logs")
