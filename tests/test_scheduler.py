from datetime import datetime, time, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from endledger.bot import build_scheduler
from endledger.config import EndLedgerConfig
from endledger.scheduler import JOB_ID, AutoSignScheduler, parse_daily_time
from endledger.telegram import render_status

UTC8 = timezone(timedelta(hours=8))


def test_parse_daily_time():
    assert parse_daily_time(" 04:05 ") == time(4, 5)
    for bad in ("4", "25:00", "aa:bb", "1:2:3"):
        with pytest.raises(ValueError):
            parse_daily_time(bad)


def test_next_run_later_today_or_tomorrow(memory_app):
    scheduler = AutoSignScheduler(memory_app.attendance, time(4, 5))
    now = datetime(2025, 3, 1, 3, 0, tzinfo=UTC8)

    assert scheduler.next_run(now) == datetime(2025, 3, 1, 4, 5, tzinfo=UTC8)
    assert scheduler.next_run(now.replace(hour=4, minute=6)) == datetime(2025, 3, 2, 4, 5, tzinfo=UTC8)


def test_next_run_follows_configured_offset(memory_app):
    scheduler = AutoSignScheduler(memory_app.attendance, time(4, 5), tz_hours=0)
    now = datetime(2025, 3, 1, 3, 0, tzinfo=UTC8)

    assert scheduler.next_run(now) == datetime(2025, 3, 1, 4, 5, tzinfo=timezone.utc)


@pytest.mark.asyncio()
async def test_run_once_signs_all_and_notifies(memory_app):
    sent = []

    async def notify(text):
        sent.append(text)

    scheduler = AutoSignScheduler(memory_app.attendance, time(4, 5), notify=notify)

    message = await scheduler.run_once()

    assert message == "No users to check in"
    assert sent == [message]


@pytest.mark.asyncio()
async def test_start_registers_one_daily_job(memory_app):
    scheduler = AutoSignScheduler(memory_app.attendance, time(4, 5))

    scheduler.start()
    scheduler.start()
    try:
        assert scheduler.running
        job = scheduler.job()
        assert job.id == JOB_ID
        assert job.coalesce and job.max_instances == 1
        assert job.next_run_time.utcoffset() == timedelta(hours=8)
        assert (job.next_run_time.hour, job.next_run_time.minute) == (4, 5)
    finally:
        scheduler.stop()

    assert not scheduler.running


@pytest.mark.asyncio()
async def test_job_failure_is_logged_not_raised(memory_app, caplog, monkeypatch):
    async def broken():
        raise RuntimeError("boom")

    monkeypatch.setattr(memory_app.attendance, "sign_all", broken)
    scheduler = AutoSignScheduler(memory_app.attendance, time(4, 5))

    await scheduler._run_job()

    assert "Scheduled check-in crashed" in caplog.text


def test_config_reads_admins_and_schedule(monkeypatch):
    monkeypatch.setenv("ENDLEDGER_ADMIN_IDS", "1, 2,")
    monkeypatch.setenv("ENDLEDGER_AUTOSIGN_TIME", "05:30")
    monkeypatch.setenv("ENDLEDGER_AUTOSIGN_NOTIFY_CHAT_ID", "-100")

    config = EndLedgerConfig.from_env()

    assert config.admin_ids == {1, 2}
    assert config.auto_sign.daily_time == "05:30"
    assert config.auto_sign.notify_chat_id == -100


@pytest.mark.parametrize(("name", "value"), [("ENDLEDGER_ADMIN_IDS", "1,x"), ("ENDLEDGER_AUTOSIGN_TIME", "noon")])
def test_config_rejects_bad_admins_and_schedule(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError, match=name):
        EndLedgerConfig.from_env()


def test_render_status(memory_app):
    text = render_status(memory_app)

    assert "Storage: memory" in text
    assert "Auto check-in: daily at 04:05" in text
    assert "Batch running: no" in text


@pytest.mark.asyncio()
async def test_bot_scheduler_posts_summary_to_notify_chat(memory_app):
    bot = SimpleNamespace(send_message=AsyncMock(return_value=object()))
    memory_app.config.auto_sign.notify_chat_id = -100

    scheduler = build_scheduler(memory_app, bot)
    await scheduler.run_once()

    bot.send_message.assert_awaited_once_with(-100, "No users to check in")


def test_bot_scheduler_disabled(memory_app):
    memory_app.config.auto_sign.enabled = False
    assert build_scheduler(memory_app, SimpleNamespace()) is None
