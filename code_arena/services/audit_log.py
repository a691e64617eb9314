# services/audit_log.py
"""Audit trail of state-changing service calls, stored in the ``audit_log`` table."""
from __future__ import annotations

import inspect
import logging
import uuid
from contextvars import ContextVar, Token
from functools import wraps
from typing import Any, ClassVar, Iterable, Optional

from pydantic_core import to_jsonable_python
from sqlalchemy.exc import SQLAlchemyError

from code_arena.db.database import DataBase
from code_arena.db.schemas.audit_log import AuditLogCreate, AuditLogRead
from code_arena.db.schemas.user import UserRead

logger = logging.getLogger(__name__)

# Submitted source code lives on the submission row; audit payloads keep a prefix only.
MAX_STRING = 512

Actor = UserRead | uuid.UUID | None


def _fallback(value: Any) -> Any:
    if callable(value):
        return getattr(value, "__qualname__", repr(value))
    return repr(value)


def _clip(value: Any) -> Any:
    if isinstance(value, str) and len(value) > MAX_STRING:
        return value[:MAX_STRING] + "..."
    if isinstance(value, dict):
        return {k: _clip(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_clip(v) for v in value]
    return value


def to_payload(value: Any) -> Any:
    """JSON-friendly, size-bounded copy of ``value``."""
    return _clip(to_jsonable_python(value, fallback=_fallback))


class AuditLogService:
    _instance: ClassVar[Optional["AuditLogService"]] = None

    def __new__(cls) -> "AuditLogService":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if getattr(self, "_initialized", False):
            return

        self._actor: ContextVar[Optional[uuid.UUID]] = ContextVar("audit_actor", default=None)
        self.enabled = True
        self._initialized = True

    async def record(self, action: str, *, actor: Actor = None, payload: Optional[dict[str, Any]] = None) -> Optional[AuditLogRead]:
        """
        Store one entry. Without an explicit ``actor`` the one bound to the current
        update is used. Storage errors are logged and reported as None.
        """
        if not self.enabled:
            return None

        body = dict(payload or {})
        if isinstance(actor, UserRead):
            body["actor"] = {"id": str(actor.id), "role": actor.role.value, "name": actor.display_name}
        actor_id = actor.id if isinstance(actor, UserRead) else actor
        if actor_id is None:
            actor_id = self._actor.get()

        try:
            entry = await DataBase().create_audit_log(AuditLogCreate(action=action, actor_id=actor_id, payload=body))
        except SQLAlchemyError:
            # audit failures never fail the audited call
            logger.warning("Failed to store audit entry %s", action, exc_info=True)
            return None
        logger.debug("audit %s actor=%s entry=%s", action, actor_id or "-", entry.id)
        return entry

    async def entries(
        self,
        *,
        limit: int = 100,
        offset: int = 0,
        actor_id: Optional[uuid.UUID] = None,
        action: Optional[str] = None,
    ) -> tuple[list[AuditLogRead], int]:
        return await DataBase().list_audit_logs(limit=limit, offset=offset, actor_id=actor_id, action=action)

    def bind_actor(self, actor_id: Optional[uuid.UUID]) -> Token:
        return self._actor.set(actor_id)

    def unbind_actor(self, token: Token) -> None:
        self._actor.reset(token)

    def current_actor(self) -> Optional[uuid.UUID]:
        return self._actor.get()


audit_logger = AuditLogService()


def _audited(fn, action: str, actor_fields: tuple[str, ...]):
    if getattr(fn, "__audit_wrapped__", False):
        return fn

    params = list(inspect.signature(fn).parameters)[1:]

    def _actor_of(args: tuple[Any, ...], kwargs: dict[str, Any]) -> Actor:
        bound = dict(zip(params, args))
        bound.update(kwargs)
        for name in actor_fields:
            if bound.get(name) is not None:
                return bound[name]
        return None

    @wraps(fn)
    async def wrapper(self, *args, **kwargs):
        actor = _actor_of(args, kwargs)
        payload: dict[str, Any] = {"args": to_payload(list(args)), "kwargs": to_payload(kwargs)}
        try:
            result = await fn(self, *args, **kwargs)
        except Exception as exc:
            payload["error"] = repr(exc)
            await audit_logger.record(f"{action}.error", actor=actor, payload=payload)
            raise
        payload["result"] = to_payload(result)
        await audit_logger.record(action, actor=actor, payload=payload)
        return result

    wrapper.__audit_wrapped__ = True  # type: ignore[attr-defined]
    return wrapper


def instrument_service_class(
    cls,
    *,
    prefix: Optional[str] = None,
    include: Optional[Iterable[str]] = None,
    actor_fields: Iterable[str] = (),
) -> None:
    """Audit the named public coroutine methods of ``cls`` (all of them without ``include``).

    Actions are recorded as ``<prefix>.<method>``, failures as ``<prefix>.<method>.error``.
    ``actor_fields`` names the parameters that carry the acting user.
    """
    action_prefix = prefix or cls.__name__
    wanted = set(include) if include is not None else None
    fields = tuple(actor_fields)

    for name, attr in list(vars(cls).items()):
        if name.startswith("_") or (wanted is not None and name not in wanted):
            continue
        if inspect.iscoroutinefunction(attr):
            setattr(cls, name, _audited(attr, f"{action_prefix}.{name}", fields))


__all__ = ["AuditLogService", "audit_logger", "instrument_service_class", "to_payload"]
