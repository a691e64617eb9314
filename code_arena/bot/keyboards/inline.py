# bot/keyboards/inline.py
from typing import List

from aiogram.types import InlineKeyboardMarkup, InlineKeyboardButton

from code_arena.i18n import Localizer

PAGE_SIZE = 6


def build_paged_keyboard(items: List[tuple[str, str]], page: int, pages: int, prefix: str, lz: Localizer) -> InlineKeyboardMarkup:
    """One button per item (``{prefix}.pick:{id}``) plus prev/next navigation and a cancel row."""
    rows: List[List[InlineKeyboardButton]] = []
    for item_id, label in items:
        rows.append([InlineKeyboardButton(text=label, callback_data=f"{prefix}.pick:{item_id}")])

    nav: List[InlineKeyboardButton] = []
    if page > 0:
        nav.append(InlineKeyboardButton(text=lz.get("common.nav.prev"), callback_data=f"{prefix}.page:{page-1}"))
    if page + 1 < pages:
        nav.append(InlineKeyboardButton(text=lz.get("common.nav.next"), callback_data=f"{prefix}.page:{page+1}"))
    if nav:
        rows.append(nav)
    rows.append([InlineKeyboardButton(text=lz.get("common.nav.cancel"), callback_data=f"{prefix}.cancel")])
    return InlineKeyboardMarkup(inline_keyboard=rows)


def build_contest_actions(contest_id: str, lz: Localizer, can_join: bool) -> InlineKeyboardMarkup:
    rows: List[List[InlineKeyboardButton]] = []
    if can_join:
        rows.append([InlineKeyboardButton(text=lz.get("contests.buttons.join"), callback_data=f"contest.join:{contest_id}")])
    rows.append([InlineKeyboardButton(text=lz.get("contests.buttons.problems"), callback_data=f"contest.problems:{contest_id}")])
    rows.append([InlineKeyboardButton(text=lz.get("contests.buttons.leaderboard"), callback_data=f"lb.show:{contest_id}")])
    return InlineKeyboardMarkup(inline_keyboard=rows)


def build_watch_keyboard(contest_id: str, lz: Localizer) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text=lz.get("leaderboard.buttons.watch"), callback_data=f"lb.watch:{contest_id}")],
    ])
