# recurrence.py
import calendar
import logging
from dataclasses import dataclass, fields
from datetime import date, datetime, time, timedelta

logger = logging.getLogger(__name__)

RECURRENCE_TYPES = ("weekly", "biweekly", "monthly")
DEFAULT_WEEKS_AHEAD = 12
DEFAULT_STATUS = "scheduled"

# Months scanned forward when looking for an existing "Nth weekday".
MAX_MONTH_SEARCH = 12


class TemplateNotFound(LookupError):
    pass


class StorageError(RuntimeError):
    pass


# ------------------------------------------------------------------------------
# Template model
# ------------------------------------------------------------------------------
def _as_date(value) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


@dataclass
class RecurrenceTemplate:
    """A stored recurrence rule that concrete events are generated from."""

    id: int | None
    title: str
    recurrence_type: str
    start_date: date
    event_time: object = None
    description: str | None = None
    event_type: str | None = None
    venue_id: int | None = None
    day_of_week: int | None = None  # 0-6, Sunday = 0
    week_of_month: int | None = None  # 1-5
    day_of_month: int | None = None  # 1-31
    end_date: date | None = None
    generate_weeks_ahead: int | None = DEFAULT_WEEKS_AHEAD
    default_image_url: str | None = None
    default_status: str | None = DEFAULT_STATUS
    is_active: bool = True

    @classmethod
    def from_row(cls, row: dict) -> "RecurrenceTemplate":
        known = {f.name for f in fields(cls)}
        data = {k: v for k, v in row.items() if k in known}
        data["start_date"] = _as_date(data.get("start_date"))
        data["end_date"] = _as_date(data.get("end_date"))
        return cls(**data)

    @property
    def weeks_ahead(self) -> int:
        return self.generate_weeks_ahead or DEFAULT_WEEKS_AHEAD

    def occurrence_fields(self, event_date: date) -> dict:
        return {
            "title": self.title,
            "description": self.description,
            "event_type": self.event_type,
            "venue_id": self.venue_id,
            "event_date": event_date,
            "event_time": self.event_time,
            "image_url": self.default_image_url,
            "status": self.default_status or DEFAULT_STATUS,
            "recurring_event_id": self.id,
        }


# ------------------------------------------------------------------------------
# Calendar helpers (day_of_week uses Sunday = 0)
# ------------------------------------------------------------------------------
def sunday_weekday(d: date) -> int:
    return (d.weekday() + 1) % 7


def next_weekday_on_or_after(cursor: date, day_of_week: int) -> date:
    return cursor + timedelta(days=(day_of_week - sunday_weekday(cursor) + 7) % 7)


def add_months(year: int, month: int, n: int) -> tuple[int, int]:
    idx = year * 12 + (month - 1) + n
    return idx // 12, idx % 12 + 1


def first_of_next_month(d: date) -> date:
    y, m = add_months(d.year, d.month, 1)
    return date(y, m, 1)


def clamped_day(year: int, month: int, day: int) -> date:
    """The given day of month, pulled back to the last day when the month is shorter."""
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last))


def nth_weekday_of_month(year: int, month: int, day_of_week: int, n: int) -> date | None:
    """
    The n-th `day_of_week` in the month (e.g. 1st Tuesday), or None when the
    month has no such day (a 5th weekday in a short month).
    """
    first = date(year, month, 1)
    offset = (day_of_week - sunday_weekday(first) + 7) % 7
    day = 1 + offset + (n - 1) * 7
    if day > calendar.monthrange(year, month)[1]:
        return None
    return date(year, month, day)


# ------------------------------------------------------------------------------
# Projection
# ------------------------------------------------------------------------------
def next_step(template: RecurrenceTemplate, cursor: date) -> tuple[date, date] | None:
    """
    Returns (candidate, next_cursor) for the first occurrence on or after
    `cursor`, or None when the template cannot produce one. next_cursor is
    always strictly after candidate.
    """
    rtype = (template.recurrence_type or "").lower()

    if rtype in ("weekly", "biweekly"):
        if template.day_of_week is None:
            return None
        candidate = next_weekday_on_or_after(cursor, template.day_of_week)
        if rtype == "weekly":
            return candidate, candidate + timedelta(days=7)
        # biweekly parity follows the series' first date, not the cursor
        if template.start_date:
            anchor = next_weekday_on_or_after(template.start_date, template.day_of_week)
            if (candidate - anchor).days % 14:
                candidate += timedelta(days=7)
        return candidate, candidate + timedelta(days=14)

    if rtype == "monthly":
        if template.day_of_month:
            candidate = clamped_day(cursor.year, cursor.month, template.day_of_month)
            if candidate < cursor:
                y, m = add_months(cursor.year, cursor.month, 1)
                candidate = clamped_day(y, m, template.day_of_month)
            return candidate, first_of_next_month(candidate)

        if template.week_of_month and template.day_of_week is not None:
            for k in range(MAX_MONTH_SEARCH):
                y, m = add_months(cursor.year, cursor.month, k)
                candidate = nth_weekday_of_month(y, m, template.day_of_week, template.week_of_month)
                if candidate and candidate >= cursor:
                    return candidate, first_of_next_month(candidate)
            return None

    return None


def window_bounds(template: RecurrenceTemplate, today: date) -> tuple[date, date]:
    lower = max(template.start_date, today) if template.start_date else today
    upper = today + timedelta(days=template.weeks_ahead * 7)
    if template.end_date and template.end_date < upper:
        upper = template.end_date
    return lower, upper


def iter_candidates(template: RecurrenceTemplate, today: date):
    """Yield every date in the generation window the template falls on, in order."""
    cursor, upper = window_bounds(template, today)
    while cursor <= upper:
        step = next_step(template, cursor)
        if step is None:
            return
        candidate, cursor = step
        if today <= candidate <= upper and (template.end_date is None or candidate <= template.end_date):
            yield candidate


# ------------------------------------------------------------------------------
# Materialization
# ------------------------------------------------------------------------------
def materialize(template: RecurrenceTemplate, store, today: date | None = None) -> list[dict]:
    """
    Persists the occurrences of `template` that fall in the window starting at
    `today` and are not stored yet. Returns only the rows inserted by this call.

    Each insert commits on its own: a StorageError stops the run, and rows
    created before it stay in place.
    """
    today = today or date.today()
    created = []
    skipped = 0
    for event_date in iter_candidates(template, today):
        if store.occurrence_exists(template.id, event_date):
            skipped += 1
            continue
        row = store.insert_occurrence(template.occurrence_fields(event_date))
        if row is None:
            # another run inserted the same (template, date) first
            skipped += 1
            continue
        created.append(row)

    logger.info(
        "[recurring.generate] template=%s created=%d skipped=%d",
        template.id, len(created), skipped,
    )
    return created


def generate_from_template(template_id: int, repo, store, today: date | None = None) -> dict:
    template = repo.get_template(template_id)
    if template is None:
        raise TemplateNotFound(f"Recurring event {template_id} not found")
    occurrences = materialize(template, store, today=today)
    return {"count": len(occurrences), "occurrences": occurrences}


def generate_all_active(repo, store, today: date | None = None) -> list[dict]:
    results = []
    for template in repo.list_active_templates():
        created = materialize(template, store, today=today)
        results.append({"id": template.id, "title": template.title, "count": len(created)})
    return results


# ------------------------------------------------------------------------------
# Payload validation (admin create/update)
# ------------------------------------------------------------------------------
def _opt_int(data: dict, key: str, errors: list[str]) -> int | None:
    raw = data.get(key)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    if isinstance(raw, bool):
        errors.append(f"{key} must be an integer")
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        errors.append(f"{key} must be an integer")
        return None


def _opt_str(data: dict, key: str) -> str | None:
    val = data.get(key)
    if val is None:
        return None
    val = str(val).strip()
    return val or None


def _opt_date(data: dict, key: str, errors: list[str]) -> date | None:
    try:
        return _as_date(data.get(key))
    except ValueError:
        errors.append(f"{key} must be a YYYY-MM-DD date")
        return None


def _opt_time(data: dict, key: str, errors: list[str]) -> time | None:
    raw = _opt_str(data, key)
    if raw is None:
        return None
    try:
        return time.fromisoformat(raw)
    except ValueError:
        errors.append(f"{key} must be a HH:MM time")
        return None


def clean_template_payload(data: dict, default_weeks_ahead: int = DEFAULT_WEEKS_AHEAD) -> tuple[dict, list[str]]:
    """
    Normalizes an admin create/update body into column values and collects
    every validation error. A template that passes is always one the
    generator can project.
    """
    errors: list[str] = []

    clean = {
        "title": _opt_str(data, "title"),
        "description": _opt_str(data, "description"),
        "event_type": _opt_str(data, "event_type"),
        "venue_id": _opt_int(data, "venue_id", errors),
        "recurrence_type": (_opt_str(data, "recurrence_type") or "").lower() or None,
        "day_of_week": _opt_int(data, "day_of_week", errors),
        "week_of_month": _opt_int(data, "week_of_month", errors),
        "day_of_month": _opt_int(data, "day_of_month", errors),
        "event_time": _opt_time(data, "event_time", errors),
        "start_date": _opt_date(data, "start_date", errors),
        "end_date": _opt_date(data, "end_date", errors),
        "generate_weeks_ahead": _opt_int(data, "generate_weeks_ahead", errors),
        "default_image_url": _opt_str(data, "default_image_url"),
        "default_status": _opt_str(data, "default_status") or DEFAULT_STATUS,
        "is_active": data.get("is_active") is not False,
    }
    if clean["generate_weeks_ahead"] is None:
        clean["generate_weeks_ahead"] = default_weeks_ahead

    if not (clean["title"] and clean["recurrence_type"] and clean["event_time"] and clean["start_date"]):
        errors.append("Title, recurrence type, event time, and start date are required")

    rtype = clean["recurrence_type"]
    dow, wom, dom = clean["day_of_week"], clean["week_of_month"], clean["day_of_month"]

    if rtype and rtype not in RECURRENCE_TYPES:
        errors.append(f"recurrence_type must be one of: {', '.join(RECURRENCE_TYPES)}")
    elif rtype in ("weekly", "biweekly"):
        if dow is None:
            errors.append("day_of_week is required for weekly/biweekly recurrence")
    elif rtype == "monthly":
        if dom and wom:
            errors.append("For monthly recurrence, specify either day_of_month or week_of_month+day_of_week, not both")
        elif not dom and (not wom or dow is None):
            errors.append("For monthly recurrence, specify either day_of_month or week_of_month+day_of_week")

    if dow is not None and not 0 <= dow <= 6:
        errors.append("day_of_week must be between 0 (Sunday) and 6 (Saturday)")
    if wom is not None and not 1 <= wom <= 5:
        errors.append("week_of_month must be between 1 and 5")
    if dom is not None and not 1 <= dom <= 31:
        errors.append("day_of_month must be between 1 and 31")
    if clean["generate_weeks_ahead"] < 1:
        errors.append("generate_weeks_ahead must be at least 1")
    if clean["start_date"] and clean["end_date"] and clean["end_date"] < clean["start_date"]:
        errors.append("end_date must not be before start_date")

    return clean, errors
