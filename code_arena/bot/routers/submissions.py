# bot/routers/submissions.py
import logging
import uuid
from html import escape
from typing import List

from aiogram import Router, F, Bot
from aiogram.filters import Command, CommandObject
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import Message, CallbackQuery, InlineKeyboardMarkup, InlineKeyboardButton
from sqlalchemy.exc import SQLAlchemyError

from code_arena.db.enums import ContestStatus, ProgrammingLanguage
from code_arena.db.schemas.submission import SubmissionCreate
from code_arena.db.schemas.user import UserRead
from code_arena.errors import AdmissionDenied, UnsupportedLanguage
from code_arena.services.contest import ContestService
from code_arena.services.submission import SubmissionService
from code_arena.services.user import UserService
from code_arena.bot.routers.utils import (
    admission_error_text,
    format_datetime,
    get_localizer,
    parse_uuid,
    submission_status_label,
)
from code_arena.bot.services.submission_progress import SubmissionProgressView

router = Router(name="submissions")
logger = logging.getLogger(__name__)

MAX_CODE_BYTES = 65_536
PROFILE_HISTORY = 10


class SubmitFSM(StatesGroup):
    choose_contest = State()
    choose_problem = State()
    choose_language = State()
    waiting_code = State()


def _kb(rows: List[tuple[str, str]]) -> InlineKeyboardMarkup:
    buttons = [[InlineKeyboardButton(text=label, callback_data=data)] for data, label in rows]
    buttons.append([InlineKeyboardButton(text="✖", callback_data="submit.cancel")])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


@router.message(Command("submit"))
async def start_submission(message: Message, state: FSMContext) -> None:
    await state.clear()
    lz = get_localizer(message.from_user)
    contests, _ = await ContestService().list_contests(page=0, page_size=50)
    active = [c for c in contests if c.status == ContestStatus.ACTIVE]
    if not active:
        await message.answer(lz.get("submissions.no_active_contests"))
        return

    await state.set_state(SubmitFSM.choose_contest)
    rows = [(f"submit.contest:{c.id}", c.title) for c in active]
    await message.answer(lz.get("submissions.pick_contest"), reply_markup=_kb(rows))


@router.callback_query(F.data == "submit.cancel")
async def cancel_submission(cq: CallbackQuery, state: FSMContext) -> None:
    lz = get_localizer(cq.from_user)
    await state.clear()
    await cq.message.edit_text(lz.get("core.cancelled"), reply_markup=None)
    await cq.answer()


@router.callback_query(SubmitFSM.choose_contest, F.data.startswith("submit.contest:"))
async def pick_contest(cq: CallbackQuery, state: FSMContext) -> None:
    lz = get_localizer(cq.from_user)
    contest_id = parse_uuid(cq.data.split(":", 1)[1])
    if contest_id is None:
        await cq.answer(lz.get("errors.bad_request"), show_alert=True)
        return

    problems = await ContestService().list_problems(contest_id)
    if not problems:
        await cq.answer(lz.get("contests.no_problems"), show_alert=True)
        return

    await state.update_data(contest_id=str(contest_id))
    await state.set_state(SubmitFSM.choose_problem)
    rows = [
        (f"submit.problem:{cp.problem_id}", f"{cp.order_index + 1}. {cp.problem.title} ({cp.points})")
        for cp in problems
    ]
    await cq.message.edit_text(lz.get("submissions.pick_problem"), reply_markup=_kb(rows))
    await cq.answer()


@router.callback_query(SubmitFSM.choose_problem, F.data.startswith("submit.problem:"))
async def pick_problem(cq: CallbackQuery, state: FSMContext) -> None:
    lz = get_localizer(cq.from_user)
    problem_id = parse_uuid(cq.data.split(":", 1)[1])
    if problem_id is None:
        await cq.answer(lz.get("errors.bad_request"), show_alert=True)
        return

    await state.update_data(problem_id=str(problem_id))
    await state.set_state(SubmitFSM.choose_language)
    rows = [(f"submit.lang:{lang.value}", lang.value) for lang in ProgrammingLanguage]
    await cq.message.edit_text(lz.get("submissions.pick_language"), reply_markup=_kb(rows))
    await cq.answer()


@router.callback_query(SubmitFSM.choose_language, F.data.startswith("submit.lang:"))
async def pick_language(cq: CallbackQuery, state: FSMContext) -> None:
    lz = get_localizer(cq.from_user)
    language = cq.data.split(":", 1)[1]
    await state.update_data(language=language)
    await state.set_state(SubmitFSM.waiting_code)

    data = await state.get_data()
    problem = await ContestService().get_problem(uuid.UUID(data["problem_id"]))
    boilerplate = (problem.boilerplate or {}).get(language) if problem is not None else None
    text = lz.get("submissions.send_code", language=language)
    if boilerplate:
        text += "\n" + lz.get("submissions.boilerplate", code=escape(boilerplate))
    await cq.message.edit_text(text, reply_markup=None)
    await cq.answer()


async def _read_code(message: Message, bot: Bot) -> str | None:
    if message.document is not None:
        if (message.document.file_size or 0) > MAX_CODE_BYTES:
            return None
        buffer = await bot.download(message.document)
        if buffer is None:
            return None
        return buffer.read().decode("utf-8", errors="replace")
    return message.text


@router.message(SubmitFSM.waiting_code)
async def receive_code(message: Message, state: FSMContext, bot: Bot, current_user: UserRead) -> None:
    lz = get_localizer(message.from_user)
    code = await _read_code(message, bot)
    if not code or not code.strip():
        await message.answer(lz.get("submissions.code_empty"))
        return
    if len(code.encode("utf-8")) > MAX_CODE_BYTES:
        await message.answer(lz.get("submissions.code_too_large"))
        return

    data = await state.get_data()
    await state.clear()
    payload = SubmissionCreate(
        user_id=current_user.id,
        contest_id=uuid.UUID(data["contest_id"]),
        problem_id=uuid.UUID(data["problem_id"]),
        language=data["language"],
        code=code,
    )

    problem = await ContestService().get_problem(payload.problem_id)
    status_message = await message.answer(lz.get("submissions.queued"))
    view = SubmissionProgressView(bot, status_message.chat.id, status_message.message_id, lz, total=len(problem.test_cases) if problem else 0)
    try:
        created = await SubmissionService().submit(payload, progress=view.on_verdict)
    except AdmissionDenied as exc:
        await status_message.edit_text(admission_error_text(lz, exc))
        return
    except UnsupportedLanguage:
        await status_message.edit_text(lz.get("errors.unsupported_language", language=escape(payload.language)))
        return
    except SQLAlchemyError:
        logger.exception("Submission by user %s could not be stored", current_user.id)
        await status_message.edit_text(lz.get("errors.try_again"))
        return

    await view.follow(created)
    logger.info("User %s submitted %s", current_user.id, created.id)


@router.message(Command("mysubs"))
async def my_submissions(message: Message, command: CommandObject, current_user: UserRead) -> None:
    lz = get_localizer(message.from_user)
    contest_id = parse_uuid(command.args)
    if contest_id is None:
        await message.answer(lz.get("submissions.mysubs_usage"))
        return

    subs = await SubmissionService().recent_submissions(current_user.id, contest_id)
    if not subs:
        await message.answer(lz.get("submissions.none"))
        return
    lines = [lz.get("submissions.recent_header")]
    for s in subs:
        lines.append(lz.get(
            "submissions.recent_row",
            created=format_datetime(s.created_at),
            language=s.language,
            status=submission_status_label(lz, s.status),
            passed=s.test_cases_passed,
            total=s.total_test_cases,
            score=s.score,
        ))
    await message.answer("\n".join(lines))


@router.message(Command("profile"))
async def profile_command(message: Message, current_user: UserRead) -> None:
    lz = get_localizer(message.from_user)
    profile = await UserService().profile(current_user, history_limit=PROFILE_HISTORY)
    lines = [lz.get(
        "submissions.profile",
        name=escape(profile.display_name),
        contests=profile.contest_count,
        score=profile.total_score,
        accepted=profile.accepted_count,
        submissions=profile.submission_count,
        rate=profile.success_rate,
    )]
    if not profile.history:
        lines.append(lz.get("submissions.none"))
    for d in profile.history:
        lines.append(lz.get(
            "submissions.history_row",
            created=format_datetime(d.created_at),
            contest=escape(d.contest_title),
            problem=escape(d.problem_title),
            language=d.language,
            status=submission_status_label(lz, d.status),
            score=d.score,
        ))
    await message.answer("\n".join(lines))
