# tests/test_status_automation.py
from datetime import date, datetime

import pytest

from mediq.services.status_automation import (
    PAST_DAY_REASON,
    SESSION_END_REASON,
    TERMINAL_STATUSES,
    TOKEN_TRANSITIONS,
    expire_stale_tokens,
    sources_for,
    validate_token_transition,
)


@pytest.mark.parametrize(
    "current,new",
    [
        ("booked", "in_queue"),
        ("booked", "consulted"),
        ("booked", "cancelled_by_hospital"),
        ("in_queue", "consulted"),
        ("in_queue", "missed"),
        ("in_queue", "referred"),
    ],
)
def test_allowed_transitions(current, new):
    assert validate_token_transition(current, new)


def test_terminal_statuses_have_no_exits():
    for status in TERMINAL_STATUSES:
        assert TOKEN_TRANSITIONS[status] == ()
        for target in TOKEN_TRANSITIONS:
            assert not validate_token_transition(status, target)


def test_same_status_and_backwards_moves_rejected():
    assert not validate_token_transition("consulted", "consulted")
    assert not validate_token_transition("in_queue", "in_queue")
    assert not validate_token_transition("in_queue", "booked")
    assert not validate_token_transition("unknown", "booked")


def test_sources_for():
    assert sorted(sources_for("cancelled")) == ["booked", "in_queue"]
    assert sources_for("in_queue") == ["booked"]
    assert sources_for("booked") == []


def test_expire_stale_tokens(db_session, doctor, make_token):
    now = datetime(2024, 3, 10, 13, 30)
    yesterday_booked = make_token(doctor, date(2024, 3, 9), "10:00", "booked")
    yesterday_in_queue = make_token(doctor, date(2024, 3, 9), "10:30", "in_queue")
    morning = make_token(doctor, date(2024, 3, 10), "09:30", "booked")
    afternoon = make_token(doctor, date(2024, 3, 10), "15:00", "booked")
    in_queue_today = make_token(doctor, date(2024, 3, 10), "10:00", "in_queue")
    done = make_token(doctor, date(2024, 3, 9), "11:00", "consulted")

    summary = expire_stale_tokens(db_session, now)

    assert summary["previous_days"] == 2
    assert summary["session_ended"] == 1
    assert summary["total_updated"] == 3
    assert summary["doctor_ids"] == [doctor.id]
    assert summary["previous"][yesterday_in_queue.id] == "in_queue"

    for token in (yesterday_booked, yesterday_in_queue):
        db_session.refresh(token)
        assert token.status == "cancelled"
        assert token.cancellation_reason == PAST_DAY_REASON
        assert token.cancelled_by == "system"

    db_session.refresh(morning)
    assert morning.status == "cancelled"
    assert morning.cancellation_reason == SESSION_END_REASON

    for token, status in ((afternoon, "booked"), (in_queue_today, "in_queue"), (done, "consulted")):
        db_session.refresh(token)
        assert token.status == status


def test_expire_stale_tokens_nothing_to_do(db_session, doctor, make_token):
    make_token(doctor, date(2024, 3, 10), "15:00", "booked")

    summary = expire_stale_tokens(db_session, datetime(2024, 3, 10, 12, 0))

    assert summary["total_updated"] == 0
    assert summary["tokens"] == []
