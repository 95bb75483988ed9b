# tests/test_queue_service.py
from datetime import date, datetime

import pytest
from fastapi import HTTPException

from mediq.config import JITSI_BASE_URL
from mediq.domain.queue.service import QueueService
from mediq.domain.stats.service import StatsService
from mediq.models import Notification
from mediq.models_stats import DoctorStats


@pytest.fixture
def service(db_session, broadcaster):
    return QueueService(db_session, broadcaster)


def test_start_then_complete(service, doctor, make_token, transport, now, today):
    token = make_token(doctor, today, "10:00")

    started = service.start_consultation(token.id, doctor, now)
    assert started.status == "in_queue"
    assert started.consultation_started_at == now

    done = service.complete_consultation(token.id, doctor, notes="Rest", diagnosis="Viral fever", now=now)
    assert done.status == "consulted"
    assert done.consultation_notes == "Rest"
    assert done.diagnosis == "Viral fever"
    assert done.consultation_completed_at == now

    changes = transport.named("appointment-status-changed", None)
    assert [(e[2]["oldStatus"], e[2]["newStatus"]) for e in changes] == [
        ("booked", "in_queue"),
        ("in_queue", "consulted"),
    ]
    assert transport.named("your-appointment-updated", f"patient-{token.patient_id}")
    assert transport.named("your-queue-updated", f"doctor-{doctor.id}")


def test_completing_a_terminal_token_conflicts(service, doctor, make_token, now, today):
    token = make_token(doctor, today, "10:00", "consulted", consultation_completed_at=datetime(2024, 3, 10, 10, 15))

    with pytest.raises(HTTPException) as exc:
        service.complete_consultation(token.id, doctor, now=now)

    assert exc.value.status_code == 409
    assert token.consultation_completed_at == datetime(2024, 3, 10, 10, 15)


def test_other_doctors_token_is_not_found(service, doctor, other_doctor, make_token, now, today):
    token = make_token(other_doctor, today, "10:00")

    with pytest.raises(HTTPException) as exc:
        service.start_consultation(token.id, doctor, now)

    assert exc.value.status_code == 404


def test_no_show(service, doctor, make_token, now, today):
    token = make_token(doctor, today, "10:00", "in_queue")

    missed = service.mark_no_show(token.id, doctor, now)

    assert missed.status == "missed"
    assert missed.no_show_at == now
    with pytest.raises(HTTPException):
        service.start_consultation(token.id, doctor, now)


def test_skip_moves_token_behind_the_queue(service, doctor, make_token, transport, now, today):
    first = make_token(doctor, today, "10:00")
    second = make_token(doctor, today, "10:30")

    assert service.next_patient(doctor, today).id == first.id

    skipped = service.skip(first.id, doctor, now)
    assert skipped.status == "booked"
    assert skipped.queue_priority == 1
    assert skipped.skipped_at == now
    assert service.next_patient(doctor, today).id == second.id
    assert transport.named("queue-updated", "admin")[-1][2]["queueData"]["action"] == "skipped"
    # Skipping keeps the status, so no status broadcast
    assert not transport.named("appointment-status-changed", None)


def test_skip_terminal_token_conflicts(service, doctor, make_token, now, today):
    token = make_token(doctor, today, "10:00", "cancelled")

    with pytest.raises(HTTPException) as exc:
        service.skip(token.id, doctor, now)

    assert exc.value.status_code == 409


def test_next_patient_empty_day(service, doctor, make_token, today):
    make_token(doctor, today, "10:00", "consulted")
    assert service.next_patient(doctor, today) is None


def test_next_patient_calls_booked_before_in_queue(service, doctor, make_token, today):
    make_token(doctor, today, "09:00", "in_queue")
    booked = make_token(doctor, today, "16:00", "booked")

    assert service.next_patient(doctor, today).id == booked.id


def test_today_queue_groups_by_session(service, doctor, make_token, today):
    make_token(doctor, today, "14:30")
    make_token(doctor, today, "09:30")
    make_token(doctor, today, "19:00")

    queue = service.today_queue(doctor, today)

    assert [s["id"] for s in queue["sessions"]] == ["morning", "afternoon", "evening"]
    assert [[t.time_slot for t in s["queue"]] for s in queue["sessions"]] == [["09:30"], ["14:30"], ["19:00"]]


def test_batch_update_only_moves_legal_tokens_of_this_doctor(
    service, db_session, doctor, other_doctor, make_token, now, today
):
    booked = make_token(doctor, today, "10:00", "booked")
    in_queue = make_token(doctor, today, "10:30", "in_queue")
    consulted = make_token(doctor, today, "11:00", "consulted")
    foreign = make_token(other_doctor, today, "10:00", "booked")

    result = service.batch_update_status(
        [booked.id, in_queue.id, consulted.id, foreign.id], "cancelled", notes="Clinic closed", doctor=doctor, now=now
    )

    assert result["modifiedCount"] == 2
    for token in (booked, in_queue, consulted, foreign):
        db_session.refresh(token)
    assert booked.status == in_queue.status == "cancelled"
    assert booked.cancelled_by == "doctor"
    assert booked.notes == "Clinic closed"
    assert consulted.status == "consulted"
    assert foreign.status == "booked"


def test_batch_update_by_admin_spans_doctors(service, db_session, doctor, other_doctor, make_token, now, today):
    a = make_token(doctor, today, "10:00")
    b = make_token(other_doctor, today, "10:00")

    result = service.batch_update_status([a.id, b.id], "missed", now=now)

    assert result["modifiedCount"] == 2
    db_session.refresh(b)
    assert b.status == "missed"
    assert b.no_show_at == now


def test_batch_update_to_unreachable_status_changes_nothing(service, doctor, make_token, today):
    token = make_token(doctor, today, "10:00")

    result = service.batch_update_status([token.id], "booked", doctor=doctor)

    assert result["modifiedCount"] == 0


def test_refer_to_another_doctor(service, doctor, other_doctor, make_token, transport, now, today):
    token = make_token(doctor, today, "10:00", "in_queue")

    referred = service.update_status(
        token.id, doctor, "referred", notes="Cardiology", referred_doctor_id=other_doctor.id, now=now
    )

    assert referred.status == "referred"
    assert referred.referred_doctor_id == other_doctor.id
    update = transport.named("appointment-status-changed", "doctor")[-1][2]
    assert update["appointmentData"]["referredDoctorId"] == other_doctor.id


def test_refer_to_self_is_rejected(service, doctor, make_token, now, today):
    token = make_token(doctor, today, "10:00")

    with pytest.raises(HTTPException) as exc:
        service.update_status(token.id, doctor, "referred", referred_doctor_id=doctor.id, now=now)

    assert exc.value.status_code == 400


def test_status_change_invalidates_cached_stats(service, db_session, doctor, make_token, now, today):
    token = make_token(doctor, today, "10:00")
    StatsService(db_session).get_stats(doctor.id, now)
    assert db_session.query(DoctorStats).count() == 1

    service.start_consultation(token.id, doctor, now)

    assert db_session.query(DoctorStats).count() == 0


def test_join_and_close_video_consultation(service, db_session, doctor, make_token, transport, now, today):
    token = make_token(doctor, today, "12:00", appointment_type="video")

    joined = service.join_video(token.id, doctor, now)
    link = joined.meeting_link
    assert link["meetingUrl"].startswith(JITSI_BASE_URL)
    assert link["doctorJoined"] is True
    assert link["provider"] == "jitsi"
    patient_events = transport.named("your-appointment-updated", f"patient-{token.patient_id}")
    assert patient_events[-1][2]["type"] == "doctor_joined_video"
    assert db_session.query(Notification).filter(Notification.recipient_id == token.patient_id).count() == 1

    # Joining again reuses the still-valid link
    again = service.join_video(token.id, doctor, now)
    assert again.meeting_link["meetingId"] == link["meetingId"]

    closed = service.close_video(token.id, doctor, now)
    assert closed.status == "consulted"
    assert closed.meeting_link["meetingEnded"] is True
    assert closed.meeting_link["doctorJoined"] is False


def test_video_actions_need_a_video_token(service, doctor, make_token, now, today):
    token = make_token(doctor, today, "12:00")

    with pytest.raises(HTTPException) as exc:
        service.join_video(token.id, doctor, now)

    assert exc.value.status_code == 400


def test_list_appointments_paginates(service, doctor, make_token):
    for day in range(1, 4):
        make_token(doctor, date(2024, 3, day), "10:00")

    result = service.list_appointments(doctor, start=date(2024, 3, 2), page=1, limit=1)

    assert result["totalAppointments"] == 2
    assert result["totalPages"] == 2
    assert result["appointments"][0].booking_date == date(2024, 3, 3)
