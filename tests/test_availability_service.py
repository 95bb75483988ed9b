# tests/test_availability_service.py
from datetime import date, timedelta

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from mediq.domain.availability.schemas import ScheduleChangeRequestCreate, ScheduleFields, TimeRange
from mediq.domain.availability.service import NO_SCHEDULE_REASON, UNAVAILABLE_REASON, AvailabilityService
from mediq.models import Notification
from mediq.models_schedule import DoctorSchedule


@pytest.fixture
def service(db_session, broadcaster):
    return AvailabilityService(db_session, broadcaster)


def test_no_schedule_row_means_unavailable(service, doctor, today):
    result = service.resolve_availability(doctor.id, today)

    assert result["isAvailable"] is False
    assert result["leaveReason"] == NO_SCHEDULE_REASON
    assert result["workingHours"] is None


def test_resolve_existing_schedule(service, doctor, make_schedule, today):
    make_schedule(doctor, today, working_start="10:00", working_end="16:00", slot_duration=15)

    result = service.resolve_availability(doctor.id, today)

    assert result["isAvailable"] is True
    assert result["workingHours"] == {"start_time": "10:00", "end_time": "16:00"}
    assert result["slotDuration"] == 15


def test_marking_day_unavailable_cancels_its_active_tokens(
    service, db_session, doctor, other_doctor, make_token, transport, now, today
):
    active = [
        make_token(doctor, today, "09:30", "booked"),
        make_token(doctor, today, "10:00", "in_queue"),
        make_token(doctor, today, "15:00", "booked"),
    ]
    consulted = make_token(doctor, today, "09:00", "consulted")
    tomorrow = make_token(doctor, today + timedelta(days=1), "10:00", "booked")
    foreign = make_token(other_doctor, today, "10:00", "booked")

    schedule, cancelled = service.set_availability(
        doctor, today, ScheduleFields(isAvailable=False, leaveReason="Conference"), now
    )

    assert schedule.is_available is False
    assert schedule.leave_reason == "Conference"
    assert sorted(t.id for t in cancelled) == sorted(t.id for t in active)
    for token in active:
        db_session.refresh(token)
        assert token.status == "cancelled"
        assert token.cancellation_reason == UNAVAILABLE_REASON
        assert token.cancelled_by == "system"
        assert token.cancelled_at == now
    for token, status in ((consulted, "consulted"), (tomorrow, "booked"), (foreign, "booked")):
        db_session.refresh(token)
        assert token.status == status

    assert db_session.query(Notification).filter(Notification.type == "cancellation").count() == 3
    previous = {e[2]["appointmentId"]: e[2]["oldStatus"] for e in transport.named("appointment-status-changed", None)}
    assert previous[active[1].id] == "in_queue"
    schedule_event = transport.named("schedule-changed")[-1][2]
    assert schedule_event["changeType"] == "created"
    assert schedule_event["data"]["cancelledAppointments"] == 3
    assert transport.named("availability-changed", "patient")[-1][2]["available"] is False


def test_cascade_is_idempotent(service, doctor, make_token, now, today):
    make_token(doctor, today, "10:00")
    service.set_availability(doctor, today, ScheduleFields(isAvailable=False), now)

    _, cancelled = service.set_availability(doctor, today, ScheduleFields(isAvailable=False), now)

    assert cancelled == []


def test_partial_update_keeps_stored_fields(service, doctor, make_schedule, today):
    make_schedule(doctor, today, working_start="10:00", working_end="16:00", slot_duration=15)

    schedule, cancelled = service.set_availability(doctor, today, ScheduleFields(notes="Bring reports"))

    assert schedule.working_start == "10:00"
    assert schedule.slot_duration == 15
    assert schedule.notes == "Bring reports"
    assert schedule.is_available is True
    assert cancelled == []


def test_new_day_gets_defaults(service, db_session, doctor, today):
    schedule, _ = service.set_availability(doctor, today, ScheduleFields(isAvailable=True))

    assert schedule.working_start == "09:00"
    assert schedule.working_end == "17:00"
    assert schedule.max_patients_per_slot == 20
    assert db_session.query(DoctorSchedule).count() == 1


def test_bulk_update(service, db_session, doctor, make_token, now):
    start = date(2024, 3, 11)
    make_token(doctor, start + timedelta(days=1), "10:00")

    result = service.bulk_set_availability(
        doctor, start, start + timedelta(days=2), ScheduleFields(isAvailable=False, leaveReason="Camp"), now
    )

    assert result["schedulesUpdated"] == 3
    assert result["cancelledTokens"] == [
        {"date": "2024-03-11", "cancelledTokens": 0},
        {"date": "2024-03-12", "cancelledTokens": 1},
        {"date": "2024-03-13", "cancelledTokens": 0},
    ]
    schedules = db_session.query(DoctorSchedule).order_by(DoctorSchedule.date).all()
    assert [s.max_patients_per_slot for s in schedules] == [1, 1, 1]


def test_bulk_update_rejects_bad_ranges(service, doctor):
    fields = ScheduleFields(isAvailable=True)
    with pytest.raises(HTTPException) as exc:
        service.bulk_set_availability(doctor, date(2024, 3, 10), date(2024, 3, 9), fields)
    assert exc.value.status_code == 400

    with pytest.raises(HTTPException) as exc:
        service.bulk_set_availability(doctor, date(2024, 1, 1), date(2024, 6, 1), fields)
    assert exc.value.status_code == 400


def test_update_schedule_to_unavailable_cascades(service, db_session, doctor, make_schedule, make_token, now, today):
    schedule = make_schedule(doctor, today)
    token = make_token(doctor, today, "11:00")

    updated, cancelled = service.update_schedule(doctor, schedule.id, ScheduleFields(isAvailable=False), now)

    assert updated.is_available is False
    assert [t.id for t in cancelled] == [token.id]


def test_delete_schedule_leaves_tokens_alone(service, db_session, doctor, make_schedule, make_token, transport, today):
    schedule = make_schedule(doctor, today)
    token = make_token(doctor, today, "11:00")

    service.delete_schedule(doctor, schedule.id)

    db_session.refresh(token)
    assert token.status == "booked"
    assert db_session.query(DoctorSchedule).count() == 0
    assert transport.named("schedule-changed")[-1][2]["changeType"] == "deleted"


def test_schedule_of_another_doctor_is_not_found(service, doctor, other_doctor, make_schedule, today):
    schedule = make_schedule(other_doctor, today)

    with pytest.raises(HTTPException) as exc:
        service.update_schedule(doctor, schedule.id, ScheduleFields(notes="x"))

    assert exc.value.status_code == 404


def test_approving_cancel_request_cascades(
    service, db_session, doctor, admin, make_schedule, make_token, transport, now, today
):
    schedule = make_schedule(doctor, today)
    token = make_token(doctor, today, "10:00")
    request = service.submit_change_request(
        doctor, ScheduleChangeRequestCreate(type="cancel", scheduleId=schedule.id, reason="Family emergency")
    )
    assert request.status == "pending"
    assert db_session.query(Notification).filter(Notification.recipient_id == admin.id).count() == 1
    assert transport.named("system-alert", "admin")

    approved = service.approve_change_request(admin, request.id, "OK", now)

    assert approved.status == "approved"
    assert approved.reviewed_by == admin.id
    db_session.refresh(schedule)
    db_session.refresh(token)
    assert schedule.is_available is False
    assert schedule.leave_reason == "Family emergency"
    assert token.status == "cancelled"
    assert token.cancellation_reason == "Family emergency"

    with pytest.raises(HTTPException) as exc:
        service.approve_change_request(admin, request.id)
    assert exc.value.status_code == 409


def test_approving_reschedule_request_updates_hours(
    service, db_session, doctor, admin, make_schedule, make_token, now, today
):
    schedule = make_schedule(doctor, today)
    token = make_token(doctor, today, "10:00")
    request = service.submit_change_request(
        doctor,
        ScheduleChangeRequestCreate(
            type="reschedule",
            scheduleId=schedule.id,
            reason="Surgery in the morning",
            newSchedule=ScheduleFields(workingHours=TimeRange(start_time="12:00", end_time="18:00")),
        ),
    )

    service.approve_change_request(admin, request.id, now=now)

    db_session.refresh(schedule)
    db_session.refresh(token)
    assert (schedule.working_start, schedule.working_end) == ("12:00", "18:00")
    assert schedule.is_available is True
    assert token.status == "booked"


def test_reject_change_request(service, doctor, admin, make_schedule, today):
    schedule = make_schedule(doctor, today)
    request = service.submit_change_request(
        doctor, ScheduleChangeRequestCreate(type="cancel", scheduleId=schedule.id, reason="Travel")
    )

    rejected = service.reject_change_request(admin, request.id, "Fully booked")

    assert rejected.status == "rejected"
    assert rejected.admin_comment == "Fully booked"
    assert service.list_change_requests(doctor) == [rejected]
    assert service.list_change_requests(admin, "pending") == []


def test_reschedule_request_needs_new_schedule():
    with pytest.raises(ValidationError):
        ScheduleChangeRequestCreate(type="reschedule", scheduleId=1, reason="Clash")


def test_schedule_fields_validation():
    with pytest.raises(ValidationError):
        ScheduleFields(workingHours={"start_time": "18:00", "end_time": "09:00"})
    with pytest.raises(ValidationError):
        ScheduleFields(slotDuration=3)
    assert ScheduleFields(isAvailable=False).to_columns() == {"is_available": False}
