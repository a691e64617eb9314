# bot/routers/utils.py
import uuid
from html import escape
from datetime import datetime
from typing import Optional

from aiogram.types import User as TgUser

from code_arena.i18n import Localizer, lang_code2language
from code_arena.db.enums import ContestStatus, SubmissionStatus
from code_arena.db.schemas.contest import ContestRead
from code_arena.db.schemas.leaderboard import GlobalLeaderboardEntry, LeaderboardEntry
from code_arena.errors import AdmissionDenied


def get_localizer(tg_user: Optional[TgUser]) -> Localizer:
    return Localizer(lang_code2language(tg_user.language_code if tg_user is not None else None))


def parse_uuid(value: Optional[str]) -> Optional[uuid.UUID]:
    if not value:
        return None
    try:
        return uuid.UUID(value.strip())
    except ValueError:
        return None


def format_datetime(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%d %H:%M UTC")


def contest_status_label(lz: Localizer, status: ContestStatus) -> str:
    return lz.get(f"contests.status.{status.value}")


def submission_status_label(lz: Localizer, status: SubmissionStatus) -> str:
    try:
        return lz.get(f"submissions.status.{status.value}")
    except KeyError:
        return status.value.upper()


def admission_error_text(lz: Localizer, exc: AdmissionDenied) -> str:
    return lz.get(f"errors.admission.{exc.reason.value}")


def render_contest(lz: Localizer, contest: ContestRead, problem_count: int) -> str:
    return lz.get(
        "contests.card",
        id=contest.id,
        title=escape(contest.title),
        status=contest_status_label(lz, contest.status),
        start=format_datetime(contest.start_at),
        end=format_datetime(contest.end_at),
        problems=problem_count,
        description=escape(contest.description or ""),
    )


def render_leaderboard(lz: Localizer, contest: ContestRead, entries: list[LeaderboardEntry], limit: int = 20) -> str:
    lines = [lz.get("leaderboard.header", title=escape(contest.title), status=contest_status_label(lz, contest.status))]
    if not entries:
        lines.append(lz.get("leaderboard.empty"))
        return "\n".join(lines)
    for e in entries[:limit]:
        lines.append(lz.get(
            "leaderboard.row",
            rank=e.rank,
            name=escape(e.display_name),
            score=e.total_score,
            accepted=e.accepted_count,
            submissions=e.submission_count,
            accuracy=e.accuracy,
        ))
    if len(entries) > limit:
        lines.append(lz.get("leaderboard.more", count=len(entries) - limit))
    return "\n".join(lines)


def render_global_leaderboard(lz: Localizer, entries: list[GlobalLeaderboardEntry]) -> str:
    lines = [lz.get("leaderboard.global_header")]
    if not entries:
        lines.append(lz.get("leaderboard.empty"))
    for e in entries:
        lines.append(lz.get(
            "leaderboard.global_row",
            rank=e.rank,
            name=escape(e.display_name),
            score=e.total_score,
            accepted=e.accepted_count,
            submissions=e.submission_count,
            rate=e.success_rate,
        ))
    return "\n".join(lines)
