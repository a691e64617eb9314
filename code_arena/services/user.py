from uuid import UUID
from typing import Self, ClassVar, Optional

from sqlalchemy.exc import IntegrityError

from code_arena.config import Settings
from code_arena.db.database import DataBase
from code_arena.db.enums import UserRole
from code_arena.db.schemas.activity import UserProfile
from code_arena.db.schemas.user import UserCreate, UserRead, UserUpdate
from code_arena.services.audit_log import instrument_service_class
from code_arena.services.leaderboard import percentage


class UserService:
	_instance: ClassVar[Optional["UserService"]] = None

	def __new__(cls, *args, **kwargs) -> Self:
		if cls._instance is None:
			cls._instance = super().__new__(cls)
		return cls._instance

	def __init__(self, *, database: Optional[DataBase] = None) -> None:
		if getattr(self, "_initialized", False):
			return

		self.database = database or DataBase()
		self.users: dict[int, UserRead] = dict()
		self._initialized = True

	@classmethod
	def reset(cls) -> None:
		cls._instance = None

	@staticmethod
	def is_admin(user: UserRead) -> bool:
		return user.role == UserRole.ADMIN or (user.tg_id is not None and user.tg_id in Settings().admins)

	async def get_user(self, uid: Optional[UUID] = None, tg_id: Optional[int] = None) -> Optional[UserRead]:
		if tg_id is not None and tg_id in self.users:
			return self.users[tg_id]
		user = await self.database.get_user(uid, tg_id)
		if user is not None and user.tg_id is not None:
			self.users[user.tg_id] = user
		return user

	async def get_or_create(self, tg_id: int, tg_username: Optional[str] = None, full_name: Optional[str] = None) -> UserRead:
		"""
		Telegram user -> stored user. Username and name are kept in sync; ids listed in
		``ADMINS`` are promoted to the admin role on first sight.
		"""
		user = await self.get_user(tg_id=tg_id)
		if user is None:
			role = UserRole.ADMIN if tg_id in Settings().admins else UserRole.CONTESTANT
			try:
				user = await self.database.create_user(UserCreate(tg_id=tg_id, tg_username=tg_username, full_name=full_name, role=role))
			except IntegrityError:
				user = await self.database.get_user(tg_id=tg_id)
				if user is None:
					raise
			self.users[tg_id] = user
			return user

		tg_username = tg_username[1:] if tg_username and tg_username.startswith("@") else tg_username
		if user.tg_username != tg_username or (full_name and user.full_name != full_name):
			user = await self.update_user(UserUpdate(id=user.id, tg_username=tg_username, full_name=full_name or user.full_name))
		return user

	async def update_user(self, user: UserUpdate) -> UserRead:
		updated = await self.database.update_user(user)
		if updated.tg_id is not None:
			self.users[updated.tg_id] = updated
		return updated

	async def change_role(self, user: UserRead, role: UserRole) -> UserRead:
		return await self.update_user(UserUpdate(id=user.id, role=role))

	async def profile(self, user: UserRead, history_limit: int = 20) -> UserProfile:
		"""
		Standing of one user across every contest plus their latest submissions.

		The score is the sum of the contest totals, so only the best result per problem counts.
		"""
		tallies = await self.database.submission_tallies(user_id=user.id)
		tally = tallies.get(user.id)
		submitted = tally.submission_count if tally else 0
		accepted = tally.accepted_count if tally else 0
		contests, total = await self.database.participation_summary(user.id)
		history = await self.database.submission_digests(user_id=user.id, limit=history_limit)
		return UserProfile(
			user_id=user.id,
			display_name=user.display_name,
			submission_count=submitted,
			accepted_count=accepted,
			success_rate=percentage(accepted, submitted),
			contest_count=contests,
			total_score=total,
			history=history,
		)


instrument_service_class(
	UserService,
	prefix="services.user",
	include={"change_role"},
	actor_fields=("user",),
)
