# bot/routers/leaderboard.py
import uuid
from html import escape
from typing import Optional

from aiogram import Router, F
from aiogram.filters import Command, CommandObject
from aiogram.types import Message, CallbackQuery

from code_arena.i18n import Localizer
from code_arena.services.contest import ContestService
from code_arena.services.leaderboard import LeaderboardAggregator
from code_arena.bot.keyboards.inline import build_watch_keyboard
from code_arena.bot.routers.utils import (
    contest_status_label,
    format_datetime,
    get_localizer,
    parse_uuid,
    render_global_leaderboard,
    render_leaderboard,
    submission_status_label,
)
from code_arena.bot.services.leaderboard_watch import leaderboard_watch

router = Router(name="leaderboard")

GLOBAL_LIMIT = 20


async def _leaderboard_text(contest_id: uuid.UUID, lz: Localizer) -> Optional[str]:
    contest = await ContestService().get_contest(contest_id)
    if contest is None:
        return None
    board = await LeaderboardAggregator().rank(contest_id)
    return render_leaderboard(lz, contest, board)


@router.message(Command("leaderboard"))
async def leaderboard_command(message: Message, command: CommandObject) -> None:
    lz = get_localizer(message.from_user)
    contest_id = parse_uuid(command.args)
    if contest_id is None:
        await message.answer(lz.get("leaderboard.usage"))
        return
    text = await _leaderboard_text(contest_id, lz)
    if text is None:
        await message.answer(lz.get("errors.admission.contest_not_found"))
        return
    await message.answer(text, reply_markup=build_watch_keyboard(str(contest_id), lz))


@router.callback_query(F.data.startswith("lb.show:"))
async def leaderboard_from_card(cq: CallbackQuery) -> None:
    lz = get_localizer(cq.from_user)
    contest_id = parse_uuid(cq.data.split(":", 1)[1])
    text = await _leaderboard_text(contest_id, lz) if contest_id else None
    if text is None:
        await cq.answer(lz.get("errors.admission.contest_not_found"), show_alert=True)
        return
    await cq.message.answer(text, reply_markup=build_watch_keyboard(str(contest_id), lz))
    await cq.answer()


@router.callback_query(F.data.startswith("lb.watch:"))
async def watch_leaderboard(cq: CallbackQuery) -> None:
    lz = get_localizer(cq.from_user)
    contest_id = parse_uuid(cq.data.split(":", 1)[1])
    if contest_id is None:
        await cq.answer(lz.get("errors.bad_request"), show_alert=True)
        return
    leaderboard_watch.watch(cq.message.chat.id, cq.message.message_id, contest_id, lz)
    await cq.message.edit_reply_markup(reply_markup=None)
    await cq.answer(lz.get("leaderboard.watching"))


@router.message(Command("watch"))
async def watch_command(message: Message, command: CommandObject) -> None:
    lz = get_localizer(message.from_user)
    contest_id = parse_uuid(command.args)
    if contest_id is None:
        await message.answer(lz.get("leaderboard.usage"))
        return
    text = await _leaderboard_text(contest_id, lz)
    if text is None:
        await message.answer(lz.get("errors.admission.contest_not_found"))
        return
    sent = await message.answer(text)
    leaderboard_watch.watch(sent.chat.id, sent.message_id, contest_id, lz)
    await message.answer(lz.get("leaderboard.watching"))


@router.message(Command("unwatch"))
async def unwatch_command(message: Message) -> None:
    lz = get_localizer(message.from_user)
    stopped = leaderboard_watch.unwatch(message.chat.id)
    await message.answer(lz.get("leaderboard.unwatched" if stopped else "leaderboard.not_watching"))


@router.message(Command("global"))
async def global_command(message: Message) -> None:
    lz = get_localizer(message.from_user)
    board = await LeaderboardAggregator().global_rank(limit=GLOBAL_LIMIT)
    await message.answer(render_global_leaderboard(lz, board))


@router.message(Command("stats"))
async def stats_command(message: Message, command: CommandObject, is_admin: bool) -> None:
    lz = get_localizer(message.from_user)
    if not is_admin:
        await message.answer(lz.get("errors.admin_only"))
        return
    contest_id = parse_uuid(command.args)
    if contest_id is None:
        await message.answer(lz.get("leaderboard.stats_usage"))
        return
    svc = ContestService()
    contest = await svc.get_contest(contest_id)
    if contest is None:
        await message.answer(lz.get("errors.admission.contest_not_found"))
        return
    stats = await svc.stats(contest_id)
    await message.answer(lz.get(
        "leaderboard.stats",
        title=escape(contest.title),
        participants=stats.participant_count,
        submissions=stats.submission_count,
        accepted=stats.accepted_count,
    ))


@router.message(Command("recompute"))
async def recompute_command(message: Message, command: CommandObject, is_admin: bool) -> None:
    lz = get_localizer(message.from_user)
    if not is_admin:
        await message.answer(lz.get("errors.admin_only"))
        return
    contest_id = parse_uuid(command.args)
    if contest_id is None:
        await message.answer(lz.get("leaderboard.recompute_usage"))
        return
    drifts = await LeaderboardAggregator().recompute(contest_id)
    await message.answer(lz.get("leaderboard.recomputed", count=len(drifts)))


@router.message(Command("overview"))
async def overview_command(message: Message, is_admin: bool) -> None:
    lz = get_localizer(message.from_user)
    if not is_admin:
        await message.answer(lz.get("errors.admin_only"))
        return
    overview = await ContestService().overview()
    counts = overview.counts
    lines = [lz.get(
        "leaderboard.overview",
        users=counts.user_count,
        contests=counts.contest_count,
        active=counts.active_contest_count,
        problems=counts.problem_count,
    )]
    if overview.contests:
        lines.append(lz.get("leaderboard.overview_contests"))
    for c in overview.contests:
        lines.append(lz.get(
            "leaderboard.overview_contest_row",
            title=escape(c.title),
            status=contest_status_label(lz, c.status),
            participants=c.participant_count,
            submissions=c.submission_count,
        ))
    if overview.recent_submissions:
        lines.append(lz.get("leaderboard.overview_recent"))
    for d in overview.recent_submissions:
        lines.append(lz.get(
            "leaderboard.overview_recent_row",
            created=format_datetime(d.created_at),
            name=escape(d.author or str(d.user_id)[:8]),
            problem=escape(d.problem_title),
            contest=escape(d.contest_title),
            status=submission_status_label(lz, d.status),
        ))
    await message.answer("\n".join(lines))
