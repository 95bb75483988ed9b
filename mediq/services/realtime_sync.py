"""
Realtime sync broadcaster

Turns business events into room-addressed messages on a RealtimeTransport.
Rooms: None (everyone), admin, doctor, patient, doctor-<id>, patient-<id>.
Broadcasts are best-effort: transport errors are logged, never raised.
"""

import logging
from datetime import date, datetime
from typing import Any, Optional, Protocol

from ..config import REALTIME_REDIS_CHANNEL, REALTIME_REDIS_ENABLED, REDIS_URL

logger = logging.getLogger(__name__)


class RealtimeTransport(Protocol):
    def emit(self, event: str, data: Any, room: Optional[str] = None) -> Any: ...


def _now() -> str:
    return datetime.now().isoformat()


def _iso(value) -> Any:
    return value.isoformat() if isinstance(value, (date, datetime)) else value


def token_event_payload(token) -> dict:
    """Compact token shape used inside broadcast payloads"""
    return {
        "id": token.id,
        "tokenNumber": token.token_number,
        "doctorId": token.doctor_id,
        "patientId": token.patient_id,
        "bookingDate": _iso(token.booking_date),
        "timeSlot": token.time_slot,
        "status": token.status,
        "cancellationReason": token.cancellation_reason,
    }


class SyncBroadcaster:
    def __init__(self, transport: RealtimeTransport):
        self.transport = transport

    def _emit(self, event: str, data: Any, room: Optional[str] = None) -> bool:
        try:
            self.transport.emit(event, data, room)
            return True
        except Exception as e:
            logger.error(f"❌ Error emitting {event} to {room or 'all'}: {e}")
            return False

    def emit_schedule_change(self, doctor_id: int, day, change_type: str, data: Optional[dict] = None) -> None:
        """change_type: created, updated, deleted, cancelled"""
        day = _iso(day)
        self._emit(
            "schedule-changed",
            {"doctorId": doctor_id, "date": day, "changeType": change_type, "data": data or {}, "timestamp": _now()},
        )
        self._emit(
            "availability-changed",
            {
                "doctorId": doctor_id,
                "date": day,
                "available": change_type != "deleted" and (data or {}).get("isAvailable", True),
                "data": data or {},
            },
            room="patient",
        )
        logger.info(f"📡 Schedule change broadcasted: {change_type} for doctor {doctor_id} on {day}")

    def emit_leave_request_change(self, leave_request, change_type: str) -> None:
        """New, cancelled or reviewed leave request - admins and the requesting doctor"""
        data = {
            "leaveRequestId": leave_request.id,
            "doctorId": leave_request.doctor_id,
            "startDate": _iso(leave_request.start_date),
            "endDate": _iso(leave_request.end_date),
            "leaveType": leave_request.leave_type,
            "status": leave_request.status,
            "changeType": change_type,
            "timestamp": _now(),
        }
        self._emit("leave-request-changed", data, room="admin")
        self._emit("leave-request-changed", data, room=f"doctor-{leave_request.doctor_id}")
        logger.info(f"📡 Leave request {leave_request.id} {change_type} broadcasted")

    def emit_leave_approval(self, leave_request, affected_tokens: list) -> None:
        affected = [token_event_payload(t) for t in affected_tokens]
        self._emit(
            "leave-approved",
            {
                "leaveRequestId": leave_request.id,
                "doctorId": leave_request.doctor_id,
                "startDate": _iso(leave_request.start_date),
                "endDate": _iso(leave_request.end_date),
                "reason": leave_request.reason,
                "affectedAppointments": affected,
                "timestamp": _now(),
            },
        )
        if affected:
            self._emit(
                "appointments-cancelled",
                {
                    "appointments": affected,
                    "reason": f"Doctor on leave: {leave_request.reason}",
                    "timestamp": _now(),
                },
                room="patient",
            )
        logger.info(f"📡 Leave approval broadcasted: {len(affected)} appointments affected")

    def emit_appointment_status_change(self, token_id: int, old_status: str, new_status: str, patient_id: int) -> None:
        self._emit(
            "appointment-status-changed",
            {
                "appointmentId": token_id,
                "oldStatus": old_status,
                "newStatus": new_status,
                "patientId": patient_id,
                "timestamp": _now(),
            },
        )
        self._emit(
            "your-appointment-updated",
            {"appointmentId": token_id, "newStatus": new_status, "timestamp": _now()},
            room=f"patient-{patient_id}",
        )
        logger.info(f"📡 Appointment status broadcasted: {token_id} changed from {old_status} to {new_status}")

    def emit_queue_update(self, doctor_id: int, queue_data: dict) -> None:
        data = {"doctorId": doctor_id, "queueData": queue_data, "timestamp": _now()}
        self._emit("queue-updated", data, room="admin")
        self._emit("queue-updated", data, room="doctor")
        self._emit("your-queue-updated", data, room=f"doctor-{doctor_id}")
        logger.info(f"📡 Queue update broadcasted for doctor {doctor_id}")

    def emit_appointment_update(self, doctor_id: int, appointment_data: dict) -> None:
        data = {"doctorId": doctor_id, "appointmentData": appointment_data, "timestamp": _now()}
        self._emit("appointment-status-changed", data, room="admin")
        self._emit("appointment-status-changed", data, room="doctor")
        self._emit("your-appointment-updated", data, room=f"doctor-{doctor_id}")

        if appointment_data.get("type") == "doctor_joined_video" and appointment_data.get("patientId"):
            self._emit(
                "your-appointment-updated",
                {
                    "type": "doctor_joined_video",
                    "message": appointment_data.get("message"),
                    "meetingUrl": appointment_data.get("meetingUrl"),
                    "appointmentId": appointment_data.get("appointmentId"),
                    "timestamp": _now(),
                },
                room=f"patient-{appointment_data['patientId']}",
            )
        logger.info(f"📡 Appointment update broadcasted for doctor {doctor_id}")

    def emit_system_alert(self, alert_type: str, message: str, severity: str = "info", data: Optional[dict] = None) -> None:
        self._emit(
            "system-alert",
            {"alertType": alert_type, "message": message, "severity": severity, "data": data or {}, "timestamp": _now()},
            room="admin",
        )
        logger.info(f"📡 System alert broadcasted: {alert_type} - {message}")


_broadcaster: Optional[SyncBroadcaster] = None


def build_transport() -> RealtimeTransport:
    if REALTIME_REDIS_ENABLED and REDIS_URL:
        from ..realtime.redis_relay import RedisRelay

        logger.info(f"📡 Realtime events relayed through Redis channel {REALTIME_REDIS_CHANNEL}")
        return RedisRelay.from_url(REDIS_URL, REALTIME_REDIS_CHANNEL)

    from ..realtime.hub import get_hub

    return get_hub()


def get_broadcaster() -> SyncBroadcaster:
    """Process-wide broadcaster (also the FastAPI dependency)"""
    global _broadcaster
    if _broadcaster is None:
        _broadcaster = SyncBroadcaster(build_transport())
    return _broadcaster
