# bot/routers/contests.py
import logging
import math
import uuid
from html import escape
from typing import Optional

from aiogram import Router, F
from aiogram.filters import Command, CommandObject
from aiogram.types import Message, CallbackQuery

from code_arena.db.enums import ContestStatus
from code_arena.db.schemas.user import UserRead
from code_arena.errors import AdmissionDenied
from code_arena.i18n import Localizer
from code_arena.services.contest import ContestService
from code_arena.bot.keyboards.inline import PAGE_SIZE, build_contest_actions, build_paged_keyboard
from code_arena.bot.routers.utils import (
    admission_error_text,
    contest_status_label,
    get_localizer,
    parse_uuid,
    render_contest,
)

router = Router(name="contests")
logger = logging.getLogger(__name__)


async def _send_contest_list(target: Message | CallbackQuery, page: int, lz: Localizer) -> None:
    svc = ContestService()
    contests, total = await svc.list_contests(page=page, page_size=PAGE_SIZE)
    if not contests and page == 0:
        text = lz.get("contests.empty")
        if isinstance(target, Message):
            await target.answer(text)
        else:
            await target.answer(text, show_alert=True)
        return

    pages = max(1, math.ceil(total / PAGE_SIZE))
    items = []
    for c in contests:
        label = lz.get("contests.item", title=c.title, status=contest_status_label(lz, c.status))
        items.append((str(c.id), label))
    kb = build_paged_keyboard(items, page, pages, "contests", lz)
    text = lz.get("contests.pick", page=page + 1, pages=pages)

    if isinstance(target, Message):
        await target.answer(text, reply_markup=kb)
    else:
        await target.message.edit_text(text, reply_markup=kb)
        await target.answer()


async def _send_contest_card(message: Message, contest_id: uuid.UUID, lz: Localizer, edit: bool = False) -> None:
    svc = ContestService()
    contest = await svc.get_contest(contest_id)
    if contest is None:
        await message.answer(lz.get("errors.admission.contest_not_found"))
        return
    problems = await svc.list_problems(contest_id)
    text = render_contest(lz, contest, len(problems))
    kb = build_contest_actions(str(contest.id), lz, can_join=contest.status == ContestStatus.ACTIVE)
    if edit:
        await message.edit_text(text, reply_markup=kb)
    else:
        await message.answer(text, reply_markup=kb)


async def _join(contest_id: uuid.UUID, user: UserRead, lz: Localizer) -> str:
    try:
        participant = await ContestService().join(contest_id, user)
    except AdmissionDenied as exc:
        return admission_error_text(lz, exc)
    logger.info("User %s joined contest %s", user.id, contest_id)
    return lz.get("contests.joined", score=participant.total_score)


async def _problems_text(contest_id: uuid.UUID, lz: Localizer) -> str:
    svc = ContestService()
    contest = await svc.get_contest(contest_id)
    if contest is None:
        return lz.get("errors.admission.contest_not_found")
    if contest.status == ContestStatus.UPCOMING:
        return lz.get("contests.problems_hidden")
    problems = await svc.list_problems(contest_id)
    if not problems:
        return lz.get("contests.no_problems")

    lines = [lz.get("contests.problems_header", title=escape(contest.title))]
    for cp in problems:
        lines.append(lz.get(
            "contests.problem_row",
            index=cp.order_index + 1,
            title=escape(cp.problem.title),
            difficulty=cp.problem.difficulty.value,
            points=cp.points,
        ))
        for tc in cp.problem.visible_test_cases[:1]:
            lines.append(lz.get("contests.sample", input=escape(tc.input), output=escape(tc.expected_output)))
    return "\n".join(lines)


@router.message(Command("contests"))
async def list_contests(message: Message) -> None:
    lz = get_localizer(message.from_user)
    await _send_contest_list(message, 0, lz)


@router.callback_query(F.data.startswith("contests.page:"))
async def contests_page(cq: CallbackQuery) -> None:
    lz = get_localizer(cq.from_user)
    try:
        page = max(0, int(cq.data.split(":", 1)[1]))
    except ValueError:
        page = 0
    await _send_contest_list(cq, page, lz)


@router.callback_query(F.data.startswith("contests.pick:"))
async def contests_pick(cq: CallbackQuery) -> None:
    lz = get_localizer(cq.from_user)
    contest_id = parse_uuid(cq.data.split(":", 1)[1])
    if contest_id is None:
        await cq.answer(lz.get("errors.bad_request"), show_alert=True)
        return
    await _send_contest_card(cq.message, contest_id, lz, edit=True)
    await cq.answer()


@router.callback_query(F.data == "contests.cancel")
async def contests_cancel(cq: CallbackQuery) -> None:
    await cq.message.edit_reply_markup(reply_markup=None)
    await cq.answer()


@router.callback_query(F.data.startswith("contest.join:"))
async def join_from_card(cq: CallbackQuery, current_user: UserRead) -> None:
    lz = get_localizer(cq.from_user)
    contest_id = parse_uuid(cq.data.split(":", 1)[1])
    if contest_id is None:
        await cq.answer(lz.get("errors.bad_request"), show_alert=True)
        return
    text = await _join(contest_id, current_user, lz)
    await cq.message.answer(text)
    await cq.answer()


@router.message(Command("join"))
async def join_command(message: Message, command: CommandObject, current_user: UserRead) -> None:
    lz = get_localizer(message.from_user)
    contest_id: Optional[uuid.UUID] = parse_uuid(command.args)
    if contest_id is None:
        await message.answer(lz.get("contests.join_usage"))
        return
    await message.answer(await _join(contest_id, current_user, lz))


@router.callback_query(F.data.startswith("contest.problems:"))
async def problems_from_card(cq: CallbackQuery) -> None:
    lz = get_localizer(cq.from_user)
    contest_id = parse_uuid(cq.data.split(":", 1)[1])
    if contest_id is None:
        await cq.answer(lz.get("errors.bad_request"), show_alert=True)
        return
    await cq.message.answer(await _problems_text(contest_id, lz))
    await cq.answer()


@router.message(Command("problems"))
async def problems_command(message: Message, command: CommandObject) -> None:
    lz = get_localizer(message.from_user)
    contest_id = parse_uuid(command.args)
    if contest_id is None:
        await message.answer(lz.get("contests.problems_usage"))
        return
    await message.answer(await _problems_text(contest_id, lz))
