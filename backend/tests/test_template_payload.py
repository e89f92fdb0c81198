from datetime import date, time

from backend.recurrence import clean_template_payload


def payload(**kw):
    d = {
        "title": "Quiz Night",
        "recurrence_type": "weekly",
        "day_of_week": 2,
        "event_time": "19:30",
        "start_date": "2026-10-01",
    }
    d.update(kw)
    return d


def test_valid_weekly_payload_gets_defaults():
    clean, errors = clean_template_payload(payload())
    assert errors == []
    assert clean["start_date"] == date(2026, 10, 1)
    assert clean["generate_weeks_ahead"] == 12
    assert clean["default_status"] == "scheduled"
    assert clean["is_active"] is True
    assert clean["end_date"] is None


def test_default_weeks_ahead_can_be_overridden():
    clean, errors = clean_template_payload(payload(), default_weeks_ahead=6)
    assert not errors
    assert clean["generate_weeks_ahead"] == 6


def test_required_fields():
    _, errors = clean_template_payload({"recurrence_type": "weekly", "day_of_week": 1})
    assert "Title, recurrence type, event time, and start date are required" in errors


def test_weekly_requires_day_of_week():
    _, errors = clean_template_payload(payload(day_of_week=None))
    assert errors == ["day_of_week is required for weekly/biweekly recurrence"]


def test_day_of_week_zero_is_sunday_not_missing():
    clean, errors = clean_template_payload(payload(recurrence_type="biweekly", day_of_week=0))
    assert errors == []
    assert clean["day_of_week"] == 0


def test_monthly_needs_one_pattern():
    _, errors = clean_template_payload(payload(recurrence_type="monthly", day_of_week=None))
    assert errors == ["For monthly recurrence, specify either day_of_month or week_of_month+day_of_week"]

    _, errors = clean_template_payload(payload(recurrence_type="monthly", week_of_month=1, day_of_week=None))
    assert len(errors) == 1

    _, errors = clean_template_payload(payload(recurrence_type="monthly", day_of_month=15, week_of_month=1))
    assert errors == [
        "For monthly recurrence, specify either day_of_month or week_of_month+day_of_week, not both"
    ]


def test_monthly_patterns_accepted():
    _, errors = clean_template_payload(payload(recurrence_type="monthly", day_of_month="31"))
    assert errors == []
    clean, errors = clean_template_payload(payload(recurrence_type="Monthly", week_of_month=1, day_of_week=2))
    assert errors == []
    assert clean["recurrence_type"] == "monthly"


def test_range_and_type_checks():
    _, errors = clean_template_payload(payload(
        day_of_week=7, generate_weeks_ahead=0, end_date="2026-09-01", venue_id="abc",
    ))
    assert "day_of_week must be between 0 (Sunday) and 6 (Saturday)" in errors
    assert "generate_weeks_ahead must be at least 1" in errors
    assert "end_date must not be before start_date" in errors
    assert "venue_id must be an integer" in errors


def test_unknown_recurrence_type():
    _, errors = clean_template_payload(payload(recurrence_type="daily"))
    assert errors == ["recurrence_type must be one of: weekly, biweekly, monthly"]


def test_bad_dates_reported():
    _, errors = clean_template_payload(payload(start_date="next tuesday"))
    assert "start_date must be a YYYY-MM-DD date" in errors


def test_event_time_parsed():
    clean, errors = clean_template_payload(payload(event_time="19:30"))
    assert errors == []
    assert clean["event_time"] == time(19, 30)

    _, errors = clean_template_payload(payload(event_time="soon"))
    assert "event_time must be a HH:MM time" in errors


def test_is_active_only_false_disables():
    clean, _ = clean_template_payload(payload(is_active=False))
    assert clean["is_active"] is False
    clean, _ = clean_template_payload(payload(is_active=None))
    assert clean["is_active"] is True
