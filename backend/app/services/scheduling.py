from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Iterable
from zoneinfo import ZoneInfo

from backend.app.models import WEEKDAYS, AvailabilitySettings, DaySlots, SlotOption

SLOT_KEY_FORMAT = "%Y-%m-%d %H:%M"
DEFAULT_SLOT_TIMES = "11:00,12:00,13:00,14:00,15:00,16:00,17:00"

DEFAULT_AVAILABILITY = AvailabilitySettings(
    sunday_slots=DEFAULT_SLOT_TIMES,
    monday_slots=DEFAULT_SLOT_TIMES,
    tuesday_slots=DEFAULT_SLOT_TIMES,
    wednesday_slots=DEFAULT_SLOT_TIMES,
)


class EventKind(str, Enum):
    final_interview = "final_interview"
    interview_and_orientation = "interview_and_orientation"
    orientation = "orientation"
    video_checkin = "video_checkin"


EVENT_DURATIONS = {
    EventKind.final_interview: timedelta(hours=1),
    EventKind.interview_and_orientation: timedelta(hours=3),
    EventKind.orientation: timedelta(minutes=90),
    EventKind.video_checkin: timedelta(minutes=15),
}

EVENT_TITLES = {
    EventKind.final_interview: "Final Interview",
    EventKind.interview_and_orientation: "Interview + Orientation",
    EventKind.orientation: "Orientation",
    EventKind.video_checkin: "Video Check-in",
}


def event_end(kind: EventKind, start: datetime) -> datetime:
    return start + EVENT_DURATIONS[kind]


def event_title(kind: EventKind, name: str) -> str:
    return f"{EVENT_TITLES[kind]}: {name}"


def to_local(value_utc: datetime, timezone_name: str) -> datetime:
    return value_utc.replace(tzinfo=timezone.utc).astimezone(ZoneInfo(timezone_name))


def format_local(value_utc: datetime, timezone_name: str) -> str:
    local = to_local(value_utc, timezone_name)
    return local.strftime("%A, %B %d, %Y @ %I:%M %p")


def slot_key_to_utc(slot_key: str, timezone_name: str) -> datetime:
    local = datetime.strptime(slot_key, SLOT_KEY_FORMAT).replace(tzinfo=ZoneInfo(timezone_name))
    return local.astimezone(timezone.utc).replace(tzinfo=None)


def generate_available_slots(
    *,
    availability: AvailabilitySettings,
    booked_starts_utc: Iterable[datetime],
    now_utc: datetime,
    timezone_name: str,
    weeks: int = 3,
) -> list[DaySlots]:
    """Offer the configured weekly times for the next `weeks` weeks.

    Times are wall-clock in the agency timezone. Each slot carries its label and
    an offset-aware start time that can be posted back unchanged to book it. A
    slot is dropped when it is not in the future or an active appointment
    already starts at that minute. Days with nothing left are omitted.
    """
    zone = ZoneInfo(timezone_name)
    local_now = now_utc.replace(tzinfo=timezone.utc).astimezone(zone)
    booked = {to_local(start, timezone_name).strftime(SLOT_KEY_FORMAT) for start in booked_starts_utc}

    output: list[DaySlots] = []
    today: date = local_now.date()
    for offset in range(weeks * 7):
        day = today + timedelta(days=offset)
        slots: list[SlotOption] = []
        for raw_time in availability.times_for(WEEKDAYS[day.weekday()]):
            hour, minute = (int(part) for part in raw_time.split(":"))
            slot_local = datetime(day.year, day.month, day.day, hour, minute, tzinfo=zone)
            if slot_local <= local_now:
                continue
            key = slot_local.strftime(SLOT_KEY_FORMAT)
            if key in booked:
                continue
            slots.append(SlotOption(label=key, start_time=slot_local))
        if slots:
            slots.sort(key=lambda item: item.start_time)
            output.append(DaySlots(date=day, slots=slots))
    return output
