# bot/middlewares/user.py
from typing import Callable, Awaitable, Any, Optional
from aiogram import BaseMiddleware
from aiogram.types import TelegramObject, User as TgUser
from code_arena.services.user import UserService
from code_arena.services.audit_log import audit_logger

Handler = Callable[[TelegramObject, dict[str, Any]], Awaitable[Any]]

class UserMiddleware(BaseMiddleware):
	"""
	Outer update middleware. Puts ``current_user`` and ``is_admin`` into the handler
	data and binds the user as the audit actor while the update is handled.
	Updates without a human sender are dropped.
	"""

	def __init__(self, user_service: Optional[UserService] = None) -> None:
		self._users = user_service or UserService()

	async def __call__(self, handler: Handler, event: TelegramObject, data: dict[str, Any]) -> Any:
		sender: Optional[TgUser] = data.get("event_from_user")
		if sender is None or sender.is_bot:
			return None

		user = await self._users.get_or_create(
			tg_id=sender.id,
			tg_username=sender.username,
			full_name=sender.full_name,
		)
		data["current_user"] = user
		data["is_admin"] = self._users.is_admin(user)

		token = audit_logger.bind_actor(user.id)
		try:
			return await handler(event, data)
		finally:
			audit_logger.unbind_actor(token)
