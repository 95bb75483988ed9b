# tests/test_api.py
from datetime import date, datetime, timedelta, timezone

from mediq.auth import create_access_token, decode_access_token


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_requires_bearer_token(client):
    response = client.get("/doctor/today-queue")
    assert response.status_code == 401
    assert "message" in response.json()


def test_invalid_token_rejected(client):
    response = client.get("/doctor/today-queue", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_role_guard(client, patient, headers_for):
    response = client.get("/doctor/today-queue", headers=headers_for(patient))
    assert response.status_code == 403
    assert response.json()["message"] == "Access denied. Doctor role required."


def test_role_claim_must_match_user(client, patient):
    token = create_access_token(patient.id, "admin")
    response = client.get("/admin/leave-requests", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_today_queue_and_start(client, doctor, make_token, headers_for, transport):
    today = date.today()
    token = make_token(doctor, today, "09:30")
    afternoon = make_token(doctor, today, "15:00")

    response = client.get("/doctor/today-queue", headers=headers_for(doctor))
    assert response.status_code == 200
    sessions = {s["id"]: s["queue"] for s in response.json()["sessions"]}
    assert [t["time_slot"] for t in sessions["morning"]] == ["09:30"]
    assert sessions["morning"][0]["patient_name"] == "Priya Shah"

    response = client.post("/doctor/consultation/start", json={"tokenId": token.id}, headers=headers_for(doctor))
    assert response.status_code == 200
    assert response.json()["appointment"]["status"] == "in_queue"
    assert transport.named("queue-updated", "doctor")

    response = client.get("/doctor/next-patient", headers=headers_for(doctor))
    # booked tokens are called ahead of in_queue ones
    assert response.json()["next"]["id"] == afternoon.id


def test_illegal_transition_is_409(client, doctor, make_token, headers_for):
    token = make_token(doctor, date.today(), "09:30", "consulted")

    response = client.post(
        "/doctor/consultation/complete", json={"tokenId": token.id, "notes": "again"}, headers=headers_for(doctor)
    )

    assert response.status_code == 409
    assert response.json()["message"] == "Cannot change appointment status from consulted to consulted"


def test_batch_update_endpoint(client, doctor, other_doctor, make_token, headers_for):
    today = date.today()
    mine = [make_token(doctor, today, "09:30"), make_token(doctor, today, "10:00", "in_queue")]
    theirs = make_token(other_doctor, today, "09:30")

    response = client.patch(
        "/doctor/appointments/batch-update",
        json={"appointmentIds": [t.id for t in mine] + [theirs.id], "status": "cancelled"},
        headers=headers_for(doctor),
    )

    assert response.status_code == 200
    assert response.json()["modifiedCount"] == 2


def test_batch_update_validates_payload(client, doctor, headers_for):
    response = client.patch(
        "/doctor/appointments/batch-update",
        json={"appointmentIds": [], "status": "cancelled"},
        headers=headers_for(doctor),
    )
    assert response.status_code == 422

    response = client.patch(
        "/doctor/appointments/batch-update",
        json={"appointmentIds": [1], "status": "teleported"},
        headers=headers_for(doctor),
    )
    assert response.status_code == 422


def test_availability_lookup(client, doctor, patient, make_schedule, headers_for):
    make_schedule(doctor, date(2024, 3, 10), working_start="10:00")

    response = client.get(f"/availability/2024-03-10?doctorId={doctor.id}", headers=headers_for(patient))
    assert response.status_code == 200
    assert response.json()["isAvailable"] is True
    assert response.json()["workingHours"]["start_time"] == "10:00"

    response = client.get(f"/availability/11-03-2024?doctorId={doctor.id}", headers=headers_for(patient))
    assert response.json() == {
        "isAvailable": False,
        "workingHours": None,
        "breakTime": None,
        "slotDuration": None,
        "leaveReason": "No schedule",
        "notes": None,
        "blockedSessions": [],
    }

    response = client.get("/availability/2024-03-10", headers=headers_for(patient))
    assert response.status_code == 400

    response = client.get(f"/availability/someday?doctorId={doctor.id}", headers=headers_for(patient))
    assert response.status_code == 400


def test_schedule_endpoint_cascades(client, doctor, make_token, headers_for):
    make_token(doctor, date(2030, 1, 15), "10:00")
    make_token(doctor, date(2030, 1, 15), "11:00")

    response = client.post(
        "/doctor/schedules",
        json={"date": "2030-01-15", "isAvailable": False, "leaveReason": "Training"},
        headers=headers_for(doctor),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["cancelledAppointments"] == 2
    assert body["schedule"]["isAvailable"] is False


def test_leave_flow(client, doctor, admin, make_token, headers_for):
    make_token(doctor, date(2030, 2, 1), "10:00")

    response = client.post(
        "/doctor/leave-requests",
        json={"leave_type": "full_day", "start_date": "2030-02-01", "end_date": "2030-02-02", "reason": "Travel"},
        headers=headers_for(doctor),
    )
    assert response.status_code == 200
    leave_id = response.json()["leaveRequest"]["id"]

    response = client.post(
        "/doctor/leave-requests",
        json={"leave_type": "full_day", "start_date": "2030-02-02", "end_date": "2030-02-03"},
        headers=headers_for(doctor),
    )
    assert response.status_code == 409

    response = client.patch(
        f"/admin/leave-requests/{leave_id}/approve", json={"admin_comment": "Enjoy"}, headers=headers_for(admin)
    )
    assert response.status_code == 200
    body = response.json()
    assert body["cancelledAppointments"] == 1
    assert body["affectedAppointments"][0]["status"] == "cancelled_by_hospital"

    response = client.put(f"/doctor/leave-requests/{leave_id}/cancel", headers=headers_for(doctor))
    assert response.status_code == 404


def test_stats_endpoint_and_notifications(client, doctor, admin, make_token, headers_for):
    make_token(doctor, date.today(), "10:00", "consulted", payment_status="paid")

    response = client.get("/doctor/stats", headers=headers_for(doctor))
    assert response.status_code == 200
    assert response.json()["today_completed"] == 1
    assert response.json()["month_revenue"] == 400.0

    response = client.get(f"/admin/doctors/{doctor.id}/stats?refresh=true", headers=headers_for(admin))
    assert response.status_code == 200

    response = client.get("/doctor/analytics/trends?days=7", headers=headers_for(doctor))
    assert len(response.json()) == 7

    client.post(
        "/doctor/leave-requests",
        json={"leave_type": "full_day", "start_date": "2030-03-01", "end_date": "2030-03-01"},
        headers=headers_for(doctor),
    )
    response = client.get("/notifications?unread_only=true", headers=headers_for(admin))
    notifications = response.json()
    assert [n["type"] for n in notifications] == ["leave_request"]

    response = client.patch(f"/notifications/{notifications[0]['id']}/read", headers=headers_for(admin))
    assert response.json()["read"] is True
    assert client.get("/notifications?unread_only=true", headers=headers_for(admin)).json() == []


def test_websocket_receives_broadcasts(client, doctor, headers_for):
    from mediq.realtime.hub import get_hub

    token = create_access_token(doctor.id, doctor.role)
    with client.websocket_connect(f"/ws/sync?token={token}") as ws:
        hello = ws.receive_json()
        assert hello["event"] == "connected"
        assert sorted(hello["data"]["rooms"]) == ["doctor", f"doctor-{doctor.id}"]

        ws.send_text("ping")
        assert ws.receive_json()["event"] == "pong"

        get_hub().emit("queue-updated", {"doctorId": doctor.id}, room=f"doctor-{doctor.id}")
        message = ws.receive_json()
        assert message == {"event": "queue-updated", "room": f"doctor-{doctor.id}", "data": {"doctorId": doctor.id}}


def test_access_token_expiry(doctor):
    payload = decode_access_token(create_access_token(doctor.id, doctor.role))
    remaining = payload["exp"] - datetime.now(timezone.utc).timestamp()
    assert 11 * 3600 < remaining <= 12 * 3600

    assert decode_access_token(create_access_token(doctor.id, doctor.role, timedelta(minutes=-5))) is None
