"""
Display metadata for the five Leitner boxes.

Names and descriptions are static; the interval shown next to each box is
read from the interval table in effect so the two never drift apart.
"""

from dataclasses import dataclass

from .constants import MIN_BOX
from .scheduling import DEFAULT_TABLE, IntervalTable, is_valid_box


@dataclass(frozen=True)
class BoxInfo:
    number: int
    name: str
    emoji: str
    days: int
    display_interval: str
    short_interval: str
    description: str


_BOX_TEXT = {
    1: ("New", "🌱", "Fresh cards you're seeing for the first time. Review daily to move them forward."),
    2: ("Learning", "📚", "Cards you're getting the hang of. Keep practicing every other day."),
    3: ("Growing", "🚀", "You know these but need regular practice."),
    4: ("Strong", "💪", "Almost mastered! Just check in now and then to stay sharp."),
    5: ("Mastered", "🏆", "You've got this! Rare reviews keep them in long-term memory."),
}


def _interval_text(days: int) -> tuple[str, str]:
    """(display, short) wording for an interval in days."""
    if days == 1:
        return "every day", "Daily"
    if days == 7:
        return "weekly", "Weekly"
    if days % 7 == 0:
        weeks = days // 7
        return f"every {weeks} weeks", f"Every {weeks} weeks"
    return f"every {days} days", f"Every {days} days"


def get_box_info(box_number: int, table: IntervalTable = DEFAULT_TABLE) -> BoxInfo:
    """Metadata for a box. Unknown box numbers fall back to box 1."""
    number = box_number if is_valid_box(box_number) else MIN_BOX
    name, emoji, description = _BOX_TEXT[number]
    days = table.days_for(number)
    display, short = _interval_text(days)
    return BoxInfo(
        number=number,
        name=name,
        emoji=emoji,
        days=days,
        display_interval=display,
        short_interval=short,
        description=description,
    )


def all_box_info(table: IntervalTable = DEFAULT_TABLE) -> list[BoxInfo]:
    return [get_box_info(n, table) for n in sorted(_BOX_TEXT)]


def box_display_name(box_number: int, table: IntervalTable = DEFAULT_TABLE) -> str:
    """e.g. "New 🌱"."""
    info = get_box_info(box_number, table)
    return f"{info.name} {info.emoji}"


def box_compact_display(box_number: int, table: IntervalTable = DEFAULT_TABLE) -> str:
    """e.g. "New 🌱 (Daily)"."""
    info = get_box_info(box_number, table)
    return f"{info.name} {info.emoji} ({info.short_interval})"
