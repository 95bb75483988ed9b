# tests/test_worker.py
import asyncio
from datetime import date, datetime, timezone

from sqlalchemy.orm import sessionmaker

from mediq import worker
from mediq.domain.stats.service import StatsService
from mediq.models_stats import DoctorStats
from mediq.worker import WorkerSettings, clinic_now, run_stale_token_expiry


def test_stale_expiry_broadcasts_and_invalidates(db_session, doctor, make_token, broadcaster, transport):
    now = datetime(2024, 3, 10, 18, 10)
    stale = make_token(doctor, date(2024, 3, 9), "10:00", "in_queue")
    afternoon = make_token(doctor, date(2024, 3, 10), "15:00", "booked")
    evening = make_token(doctor, date(2024, 3, 10), "19:00", "booked")
    StatsService(db_session).get_stats(doctor.id, now)

    summary = run_stale_token_expiry(db_session, broadcaster, now)

    assert summary["total_updated"] == 2
    assert "tokens" not in summary
    changes = {e[2]["appointmentId"]: e[2]["oldStatus"] for e in transport.named("appointment-status-changed", None)}
    assert changes == {stale.id: "in_queue", afternoon.id: "booked"}
    assert transport.named("your-queue-updated", f"doctor-{doctor.id}")
    assert transport.named("system-alert", "admin")[0][2]["alertType"] == "auto_cancellation"
    assert db_session.query(DoctorStats).count() == 0
    db_session.refresh(evening)
    assert evening.status == "booked"


def test_stale_expiry_quiet_when_nothing_expired(db_session, broadcaster, transport):
    summary = run_stale_token_expiry(db_session, broadcaster, datetime(2024, 3, 10, 9, 0))

    assert summary["total_updated"] == 0
    assert transport.events == []


def test_cron_jobs_are_distinct():
    names = [job.name for job in WorkerSettings.cron_jobs]
    assert len(names) == len(set(names)) == 2


def test_clinic_now_uses_clinic_timezone():
    # 07:35 UTC is 13:05 in Asia/Kolkata
    assert clinic_now(datetime(2024, 3, 10, 7, 35, tzinfo=timezone.utc)) == datetime(2024, 3, 10, 13, 5)
    assert clinic_now(datetime(2024, 3, 9, 19, 0, tzinfo=timezone.utc)) == datetime(2024, 3, 10, 0, 30)


def test_cron_task_expires_on_clinic_clock(engine, db_session, doctor, make_token, monkeypatch):
    morning = make_token(doctor, date(2024, 3, 10), "10:00", "booked")
    afternoon = make_token(doctor, date(2024, 3, 10), "15:00", "booked")
    monkeypatch.setattr(worker, "SessionLocal", sessionmaker(bind=engine, autocommit=False, autoflush=False))
    monkeypatch.setattr(worker, "clinic_now", lambda: clinic_now(datetime(2024, 3, 10, 7, 35, tzinfo=timezone.utc)))

    summary = asyncio.run(worker.expire_stale_tokens_task({}))

    assert summary["session_ended"] == 1
    db_session.refresh(morning)
    db_session.refresh(afternoon)
    assert morning.status == "cancelled"
    assert afternoon.status == "booked"
