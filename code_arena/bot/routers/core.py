# bot/routers/core.py
from html import escape

from aiogram import Router
from aiogram.filters import CommandStart, Command
from aiogram.fsm.context import FSMContext
from aiogram.types import Message

from code_arena.db.schemas.user import UserRead
from code_arena.bot.routers.utils import get_localizer

router = Router(name="core")


@router.message(CommandStart())
async def start(message: Message, current_user: UserRead, state: FSMContext) -> None:
    await state.clear()
    lz = get_localizer(message.from_user)
    await message.answer(lz.get("core.start", name=escape(current_user.display_name)))
    await message.answer(lz.get("core.help"))


@router.message(Command("help"))
async def show_help(message: Message, is_admin: bool) -> None:
    lz = get_localizer(message.from_user)
    text = lz.get("core.help")
    if is_admin:
        text += "\n" + lz.get("core.help_admin")
    await message.answer(text)


@router.message(Command("cancel"))
async def cancel(message: Message, state: FSMContext) -> None:
    lz = get_localizer(message.from_user)
    await state.clear()
    await message.answer(lz.get("core.cancelled"))
