"""Session buckets for a day's queue (morning / afternoon / evening)"""

from typing import Optional

MORNING = "morning"
AFTERNOON = "afternoon"
EVENING = "evening"

SESSIONS = [
    {"id": MORNING, "name": "Morning", "range": "9:00 AM - 1:00 PM", "start": 9 * 60, "end": 13 * 60},
    {"id": AFTERNOON, "name": "Afternoon", "range": "2:00 PM - 6:00 PM", "start": 14 * 60, "end": 18 * 60},
    {"id": EVENING, "name": "Evening", "range": "6:00 PM - 9:00 PM", "start": None, "end": None},
]

SESSION_END_TIMES = {MORNING: "13:00", AFTERNOON: "18:00"}

# Half-day leave splits the day at 14:00
HALF_DAY_SPLIT_HOUR = 14


def to_minutes(time_slot: Optional[str]) -> int:
    """'HH:MM' → minutes since midnight; malformed parts count as 0"""
    if not time_slot or not isinstance(time_slot, str):
        return 0
    parts = time_slot.split(":")
    try:
        hours = int(parts[0]) if parts[0] else 0
    except ValueError:
        hours = 0
    try:
        minutes = int(parts[1]) if len(parts) > 1 and parts[1] else 0
    except ValueError:
        minutes = 0
    return hours * 60 + minutes


def session_of(time_slot: Optional[str]) -> str:
    mins = to_minutes(time_slot)
    if 9 * 60 <= mins < 13 * 60:
        return MORNING
    if 14 * 60 <= mins < 18 * 60:
        return AFTERNOON
    return EVENING


def session_has_ended(time_slot: Optional[str], current_time: str) -> bool:
    """True once the slot's morning/afternoon session is over; evening slots never expire"""
    end_time = SESSION_END_TIMES.get(session_of(time_slot))
    if not end_time:
        return False
    return to_minutes(current_time) >= to_minutes(end_time)


def in_half_day_session(time_slot: Optional[str], session: str) -> bool:
    """Whether a slot falls in the morning or afternoon half of a half-day leave"""
    hour = to_minutes(time_slot or "09:00") // 60
    if session == AFTERNOON:
        return hour >= HALF_DAY_SPLIT_HOUR
    return hour < HALF_DAY_SPLIT_HOUR


def group_by_session(tokens: list) -> dict[str, list]:
    grouped: dict[str, list] = {MORNING: [], AFTERNOON: [], EVENING: []}
    for token in tokens:
        grouped[session_of(token.time_slot)].append(token)
    return grouped
