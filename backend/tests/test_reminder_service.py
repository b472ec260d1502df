"""
Reminder scan: ladder walk-through, dedup, completion, failure isolation,
single-flight scans and concurrent evaluation.
Run: cd backend && pytest tests/test_reminder_service.py -v
"""

import asyncio
from datetime import timedelta

import pytest

from services.errors import ReminderDataError
from services.notification_service import NotificationService
from services.reminder_service import (
    ALREADY_COMPLETED,
    COMPLETED,
    FIRED,
    SUPPRESSED,
    UNDELIVERED,
    WAITING,
    ReminderService,
)
from tests.conftest import NOW, FakeEmailSender, FakeWebSocket, at, make_lead, make_user


def fired_intervals(notification_store):
    return [n["metadata"]["interval_hours"] for n in notification_store.notifications]


# ═══════════════════════════════════════════════════════════════
# 1. Default ladder walk-through
# ═══════════════════════════════════════════════════════════════

class TestLadderWalkthrough:

    @pytest.mark.asyncio
    async def test_first_fire_at_24h(self, reminder_service, lead_store, notification_store):
        lead_store.add(make_lead(due=at(25)))

        report = await reminder_service.check_reminders(now=NOW)
        assert report.scanned == 1
        assert report.waiting == 1
        assert notification_store.notifications == []

        report = await reminder_service.check_reminders(now=at(1))
        assert report.fired == 1
        assert len(notification_store.notifications) == 1
        metadata = notification_store.notifications[0]["metadata"]
        assert metadata["hours_left"] == pytest.approx(24)
        assert metadata["interval_hours"] == 24

    @pytest.mark.asyncio
    async def test_each_rung_fires_once_then_completes(self, reminder_service, lead_store, notification_store):
        lead = lead_store.add(make_lead(due=at(25)))

        # hours_left: 24, 20, 2.1, 1.9, 1.5, 0.9, 0.4, 0.2, -0.1
        for offset in (1, 5, 22.9, 23.1, 23.5, 24.1, 24.6, 24.8, 25.1):
            await reminder_service.check_reminders(now=at(offset))

        assert fired_intervals(notification_store) == [24, 2, 1, 0.5]
        assert lead["reminder"]["is_completed"] is True

    @pytest.mark.asyncio
    async def test_rung_suppressed_for_its_whole_bracket(self, reminder_service, lead_store, notification_store):
        lead_store.add(make_lead(due=at(25)))
        await reminder_service.check_reminders(now=at(1))

        # well past the 2h window but still above the 2h rung
        for offset in (3.5, 10, 20):
            report = await reminder_service.check_reminders(now=at(offset))
            assert report.suppressed == 1

        assert fired_intervals(notification_store) == [24]

    @pytest.mark.asyncio
    async def test_far_future_never_fires(self, reminder_service, lead_store, notification_store):
        lead_store.add(make_lead(due=at(100)))
        for offset in (0, 10, 50):
            await reminder_service.check_reminders(now=at(offset))
        assert notification_store.notifications == []


# ═══════════════════════════════════════════════════════════════
# 2. Per-user ladders
# ═══════════════════════════════════════════════════════════════

class TestUserLadder:

    @pytest.mark.asyncio
    async def test_quarter_hour_ladder(self, reminder_service, lead_store, user_store, notification_store):
        user_store.add(make_user(intervals=[{"hours": 0.25, "label": "15 min"}]))
        lead_store.add(make_lead(due=at(25)))

        # default rungs are never used for this user
        for offset in (1, 23.1, 24.1, 24.6):
            await reminder_service.check_reminders(now=at(offset))
        assert notification_store.notifications == []

        await reminder_service.check_reminders(now=at(24.8))
        assert fired_intervals(notification_store) == [0.25]
        assert notification_store.notifications[0]["metadata"]["interval_label"] == "15 min"

    @pytest.mark.asyncio
    async def test_override_precedence(self, reminder_service, lead_store, user_store, notification_store):
        user_store.add(make_user(intervals=[{"hours": 3, "label": "3h"}]))
        lead_store.add(make_lead(due=at(25)))

        for offset in (1, 22.5, 23.1, 24.1, 24.6):
            await reminder_service.check_reminders(now=at(offset))

        assert fired_intervals(notification_store) == [3]

    @pytest.mark.asyncio
    async def test_null_timeline_uses_default_ladder(self, reminder_service, lead_store, user_store, notification_store):
        user = make_user()
        user["notification_settings"]["reminder_timeline"] = {"enabled": None, "intervals": None}
        user_store.add(user)
        lead_store.add(make_lead(due=at(1.5)))

        report = await reminder_service.check_reminders(now=NOW)

        assert report.errors == 0
        assert fired_intervals(notification_store) == [2]


# ═══════════════════════════════════════════════════════════════
# 3. Dedup across ticks
# ═══════════════════════════════════════════════════════════════

class TestDedup:

    @pytest.mark.asyncio
    async def test_two_ticks_five_minutes_apart(self, reminder_service, lead_store, notification_store):
        lead_store.add(make_lead(due=at(1.95)))

        first = await reminder_service.check_reminders(now=NOW)
        second = await reminder_service.check_reminders(now=NOW + timedelta(minutes=5))

        assert first.fired == 1
        assert second.suppressed == 1
        assert len(notification_store.notifications) == 1

    @pytest.mark.asyncio
    async def test_many_ticks_inside_window(self, reminder_service, lead_store, notification_store):
        lead_store.add(make_lead(due=at(1.95)))
        for minutes in range(0, 60, 5):
            await reminder_service.check_reminders(now=NOW + timedelta(minutes=minutes))
        assert len(notification_store.notifications) == 1

    @pytest.mark.asyncio
    async def test_concurrent_evaluation_fires_once(self, reminder_service, notification_store):
        lead = make_lead(due=at(1.5))

        outcomes = await asyncio.gather(*[
            reminder_service.check_lead_reminder(lead, NOW) for _ in range(5)
        ])

        assert outcomes.count(FIRED) == 1
        assert outcomes.count(SUPPRESSED) == 4
        assert len(notification_store.notifications) == 1

    @pytest.mark.asyncio
    async def test_overlapping_scan_is_skipped(self, reminder_service, lead_store, notification_store):
        lead_store.add(make_lead(due=at(1.5)))

        first, second = await asyncio.gather(
            reminder_service.check_reminders(now=NOW),
            reminder_service.check_reminders(now=NOW)
        )

        assert first.fired == 1
        assert second.skipped is True
        assert len(notification_store.notifications) == 1

    @pytest.mark.asyncio
    async def test_forget_lead_rearms_rungs(self, reminder_service, lead_store, notification_store):
        lead_store.add(make_lead(due=at(1.5)))
        await reminder_service.check_reminders(now=NOW)

        assert reminder_service.forget_lead("lead-1") == 1
        await reminder_service.check_reminders(now=NOW + timedelta(minutes=5))

        assert len(notification_store.notifications) == 2


# ═══════════════════════════════════════════════════════════════
# 4. Completion
# ═══════════════════════════════════════════════════════════════

class TestCompletion:

    @pytest.mark.asyncio
    async def test_past_due_completes_without_notifying(self, reminder_service, lead_store, notification_store, audit):
        lead = lead_store.add(make_lead(due=at(-0.1)))

        report = await reminder_service.check_reminders(now=NOW)

        assert report.completed == 1
        assert lead["reminder"]["is_completed"] is True
        assert notification_store.notifications == []
        assert len(audit.actions("reminder_completed")) == 1

    @pytest.mark.asyncio
    async def test_completion_is_idempotent(self, reminder_service, lead_store, notification_store, audit):
        lead = make_lead(due=at(-1))
        lead_store.add(lead)

        first = await reminder_service.check_lead_reminder(lead, NOW)
        second = await reminder_service.check_lead_reminder(lead, NOW)
        report = await reminder_service.check_reminders(now=NOW)

        assert first == COMPLETED
        assert second == ALREADY_COMPLETED
        assert report.scanned == 0
        assert len(audit.actions("reminder_completed")) == 1
        assert notification_store.notifications == []

    @pytest.mark.asyncio
    async def test_exactly_due_completes(self, reminder_service, lead_store):
        lead_store.add(make_lead(due=NOW))
        assert await reminder_service.check_lead_reminder(lead_store.leads["lead-1"], NOW) == COMPLETED


# ═══════════════════════════════════════════════════════════════
# 5. Selection and failure isolation
# ═══════════════════════════════════════════════════════════════

class TestFailures:

    @pytest.mark.asyncio
    async def test_unassigned_lead_never_evaluated(self, reminder_service, lead_store, notification_store):
        lead_store.add(make_lead(due=at(1), assigned_to=None))

        for minutes in (0, 30, 45):
            report = await reminder_service.check_reminders(now=NOW + timedelta(minutes=minutes))
            assert report.scanned == 0

        assert notification_store.notifications == []

    @pytest.mark.asyncio
    async def test_email_always_failing(self, lead_store, user_store, notification_store, manager, dedup, audit):
        notifications = NotificationService(notification_store, manager, FakeEmailSender(mode="raise"), audit=audit)
        service = ReminderService(lead_store, user_store, notifications, dedup, audit=audit)
        ws = FakeWebSocket()
        await manager.connect(ws, "user-1", "company-1")
        lead_store.add(make_lead("lead-1", due=at(1.5)))
        lead_store.add(make_lead("lead-2", due=at(0.4)))

        report = await service.check_reminders(now=NOW)

        assert report.fired == 2
        assert len(notification_store.notifications) == 2
        assert len(ws.of_type("notification")) == 2
        assert len(audit.actions("reminder_delivery_failed")) == 2

    @pytest.mark.asyncio
    async def test_malformed_date_is_skipped(self, reminder_service, lead_store, notification_store):
        bad = lead_store.add(make_lead("lead-bad", due="not-a-date"))
        lead_store.add(make_lead("lead-ok", due=at(1.5)))

        report = await reminder_service.check_reminders(now=NOW)

        assert report.errors == 1
        assert report.fired == 1
        assert bad["reminder"]["is_completed"] is False
        with pytest.raises(ReminderDataError):
            await reminder_service.check_lead_reminder(bad, NOW)

    @pytest.mark.asyncio
    async def test_missing_user_is_skipped(self, reminder_service, lead_store, notification_store, dedup):
        lead = lead_store.add(make_lead(due=at(1.5), assigned_to="ghost"))

        report = await reminder_service.check_reminders(now=NOW)

        assert report.errors == 1
        assert lead["reminder"]["is_completed"] is False
        assert notification_store.notifications == []
        assert len(dedup) == 0

    @pytest.mark.asyncio
    async def test_undelivered_claim_is_released(self, lead_store, user_store, notification_store, manager, dedup):
        notification_store.fail_with = RuntimeError("mongo down")
        notifications = NotificationService(notification_store, manager, FakeEmailSender(mode="fail"))
        service = ReminderService(lead_store, user_store, notifications, dedup)
        lead = lead_store.add(make_lead(due=at(1.5)))

        assert await service.check_lead_reminder(lead, NOW) == UNDELIVERED
        assert len(dedup) == 0

        notification_store.fail_with = None
        assert await service.check_lead_reminder(lead, NOW + timedelta(minutes=30)) == FIRED

    @pytest.mark.asyncio
    async def test_null_email_preference_fires_once(self, reminder_service, lead_store, user_store,
                                                    notification_store, email_sender):
        user_store.add(make_user(email_prefs={"lead_reminders": None}))
        lead_store.add(make_lead(due=at(1.95)))

        reports = [
            await reminder_service.check_reminders(now=NOW + timedelta(minutes=minutes))
            for minutes in (0, 5, 10)
        ]

        assert [r.errors for r in reports] == [0, 0, 0]
        assert [r.fired for r in reports] == [1, 0, 0]
        assert len(notification_store.notifications) == 1
        assert len(email_sender.sent) == 1

    @pytest.mark.asyncio
    async def test_malformed_user_document_keeps_other_channels(self, reminder_service, lead_store, user_store,
                                                                notification_store, email_sender):
        user = make_user()
        user["notification_settings"]["email"] = {"lead_reminders": "maybe"}
        user_store.add(user)
        lead_store.add(make_lead(due=at(1.5)))

        first = await reminder_service.check_reminders(now=NOW)
        second = await reminder_service.check_reminders(now=NOW + timedelta(minutes=5))

        assert first.fired == 1
        assert second.suppressed == 1
        assert len(notification_store.notifications) == 1
        assert email_sender.sent == []
        assert reminder_service.notification_service.stats.counters["email"]["failed"] == 1

    @pytest.mark.asyncio
    async def test_fatal_tick_does_not_raise(self, reminder_service, lead_store):
        lead_store.fail_with = ConnectionError("mongo unreachable")

        report = await reminder_service.check_reminders(now=NOW)
        await reminder_service.check_reminders(now=NOW)

        assert report.failed is True
        assert report.error == "mongo unreachable"
        assert reminder_service.consecutive_failures == 2

        lead_store.fail_with = None
        report = await reminder_service.check_reminders(now=NOW)
        assert report.failed is False
        assert reminder_service.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_waiting_outcome(self, reminder_service):
        assert await reminder_service.check_lead_reminder(make_lead(due=at(30)), NOW) == WAITING


class TestStatus:

    @pytest.mark.asyncio
    async def test_status_reports_last_scan(self, reminder_service, lead_store):
        assert reminder_service.status()["last_report"] is None
        lead_store.add(make_lead(due=at(1.5)))

        await reminder_service.check_reminders(now=NOW)
        status = reminder_service.status()

        assert status["running"] is False
        assert status["total_scans"] == 1
        assert status["dedup_keys"] == 1
        assert status["last_report"]["fired"] == 1
