"""
Session monitor tests
Sample intake, exactly-once notifications, stale samples and session end
"""
import asyncio
from unittest.mock import AsyncMock

import pytest

from core.config import MonitorSettings
from core.errors import DeliveryError, SessionClosedError, StaleSampleError, ValidationError
from core.monitor import CookSessionMonitor
from core.planner import plan
from models.cooking import CookStage, CookThresholds, NoteType, TemperatureSample
from tests.conftest import dt, f_to_c, sample


@pytest.fixture
def cook_plan():
    return plan("brisket", 12, dt(20))


@pytest.fixture
def monitor(cook_plan, notifier, persistence):
    return CookSessionMonitor(
        plan=cook_plan,
        notification_sink=notifier,
        persistence_sink=persistence,
        start_time=dt(8),
    )


async def feed(monitor, temps_f, base=None, step_seconds=60):
    """Process Fahrenheit readings directly, one per step"""
    base = base or dt(8)
    updates = []
    for i, temp in enumerate(temps_f):
        updates.append(await monitor.process_sample(sample(base, i * step_seconds, f_to_c(temp))))
    return updates


class TestConstruction:
    """Monitor construction"""

    def test_requires_plan_or_thresholds(self):
        with pytest.raises(ValidationError):
            CookSessionMonitor()

    def test_rejects_inverted_thresholds(self):
        with pytest.raises(ValidationError):
            CookSessionMonitor(thresholds=CookThresholds(wrap_temp_f=203, target_temp_f=165), meat_type="brisket", weight_lb=10)

    def test_initial_status(self, monitor):
        status = monitor.status()
        assert status.stage == CookStage.PRE_WRAP
        assert status.next_action == "Wrap at 165°F"
        assert status.current_temp_f is None
        assert status.trend is None


class TestAlerts:
    """Stage alerts and notifications"""

    @pytest.mark.asyncio
    async def test_monotonic_cook_notifies_once_per_stage(self, monitor, notifier):
        updates = await feed(monitor, [120, 150, 170, 185, 200, 205, 210])

        alerts = [alert for update in updates for alert in update.alerts]
        assert [a.stage for a in alerts] == [CookStage.WRAPPED, CookStage.COMPLETE]

        titles = [call.args[0] for call in notifier.schedule_notification.await_args_list]
        assert titles == ["Wrap Time!", "Pull & Rest!"]
        assert monitor.status().is_complete
        assert monitor.status().next_action is None

    @pytest.mark.asyncio
    async def test_single_jump_fires_both_in_order(self, monitor, notifier):
        updates = await feed(monitor, [120, 215])

        assert [a.stage for a in updates[1].alerts] == [CookStage.WRAPPED, CookStage.COMPLETE]
        assert [n.title for n in updates[1].notifications] == ["Wrap Time!", "Pull & Rest!"]
        assert notifier.schedule_notification.await_count == 2

    @pytest.mark.asyncio
    async def test_oscillation_after_complete(self, monitor, notifier):
        await feed(monitor, [210])
        updates = await feed(monitor, [150, 210, 120, 215], base=dt(9))

        assert all(update.alerts == [] for update in updates)
        assert notifier.schedule_notification.await_count == 2

    @pytest.mark.asyncio
    async def test_time_to_next_threshold(self, monitor):
        """Rising 2°C/min toward wrap gives a positive estimate"""
        await monitor.process_sample(sample(dt(8), 0, 60))
        update = await monitor.process_sample(sample(dt(8), 300, 70))

        # 158°F, 7°F short of wrap at 3.6°F/min
        assert update.status.time_to_next_threshold.total_seconds() == pytest.approx(7 / 3.6 * 60)
        assert update.status.countdown == "01:56"

    @pytest.mark.asyncio
    async def test_concurrent_crossings_alert_once(self, monitor, notifier):
        """Samples from several sources crossing wrap together fire one alert"""
        readings = [sample(dt(8), 0, f_to_c(166 + i)) for i in range(5)]

        updates = await asyncio.gather(
            *(monitor.process_sample(reading) for reading in readings),
            return_exceptions=True,
        )

        alerts = [
            alert
            for update in updates
            if not isinstance(update, Exception)
            for alert in update.alerts
        ]
        assert [a.stage for a in alerts] == [CookStage.WRAPPED]
        notifier.schedule_notification.assert_awaited_once_with(
            "Wrap Time!", "Meat has reached 165°F. Time to wrap."
        )

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_stop_alerting(self, cook_plan, persistence):
        failing = AsyncMock()
        failing.schedule_notification = AsyncMock(side_effect=RuntimeError("push service down"))
        monitor = CookSessionMonitor(plan=cook_plan, notification_sink=failing, persistence_sink=persistence)

        await feed(monitor, [120, 170])
        update = (await feed(monitor, [205], base=dt(9)))[0]

        assert update.status.stage == CookStage.COMPLETE
        assert len(monitor.warnings) == 2
        assert all(isinstance(w, DeliveryError) for w in monitor.warnings)

    @pytest.mark.asyncio
    async def test_alerts_recorded_in_session(self, monitor, persistence):
        await feed(monitor, [120, 170, 205])
        record = await monitor.end_session(dt(15))

        assert [a.stage for a in record.stage_history] == [CookStage.WRAPPED, CookStage.COMPLETE]
        assert len(record.readings) == 3


class TestStaleSamples:
    """Out-of-order samples"""

    @pytest.mark.asyncio
    async def test_stale_sample_changes_nothing(self, monitor, notifier):
        await monitor.process_sample(sample(dt(8), 0, 60))
        await monitor.process_sample(sample(dt(8), 60, 62))
        status_before = monitor.status()
        window_before = monitor.trend.window

        with pytest.raises(StaleSampleError):
            # would cross the wrap threshold if accepted
            await monitor.process_sample(sample(dt(8), 30, 90))

        status_after = monitor.status()
        assert status_after.stage == status_before.stage
        assert status_after.time_to_next_threshold == status_before.time_to_next_threshold
        assert monitor.trend.window == window_before
        assert monitor.recorder.reading_count == 2
        notifier.schedule_notification.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_loop_discards_stale_sample(self, monitor):
        await monitor.start()
        monitor.on_sample(dt(8, 1), 60)
        monitor.on_sample(dt(8, 0), 90)
        monitor.on_sample(dt(8, 2), 61)
        await asyncio.sleep(0.05)

        assert monitor.recorder.reading_count == 2
        assert monitor.status().stage == CookStage.PRE_WRAP
        await monitor.end_session()


class TestSampleQueue:
    """Push intake"""

    def test_overflow_drops_oldest(self, cook_plan):
        monitor = CookSessionMonitor(plan=cook_plan, settings=MonitorSettings(sample_queue_max=2))

        assert monitor.on_sample(dt(8, 0), 20)
        assert monitor.on_sample(dt(8, 1), 21)
        assert monitor.on_sample(dt(8, 2), 22)

        assert monitor.dropped_samples == 1
        kept = [monitor._queue.get_nowait(), monitor._queue.get_nowait()]
        assert [s.celsius for s in kept] == [21, 22]

    @pytest.mark.asyncio
    async def test_loop_consumes_pushed_samples(self, monitor, notifier):
        await monitor.start()
        assert monitor.is_running

        for i, temp_f in enumerate([150, 160, 170]):
            monitor.on_sample(dt(8, i), f_to_c(temp_f))
        await asyncio.sleep(0.05)

        assert monitor.status().stage == CookStage.WRAPPED
        notifier.schedule_notification.assert_awaited_once_with(
            "Wrap Time!", "Meat has reached 165°F. Time to wrap."
        )
        await monitor.end_session()
        assert not monitor.is_running

    @pytest.mark.asyncio
    async def test_timer_refreshes_estimate(self, cook_plan):
        monitor = CookSessionMonitor(plan=cook_plan, settings=MonitorSettings(tick_seconds=0.01))
        events = monitor.subscribe()
        await monitor.process_sample(sample(dt(8), 0, 60))
        await monitor.process_sample(sample(dt(8), 300, 70))
        while not events.empty():
            events.get_nowait()

        await monitor.start()
        await asyncio.sleep(0.05)
        await monitor.end_session()

        kinds = []
        while not events.empty():
            kinds.append(events.get_nowait().event)
        assert "status" in kinds

    @pytest.mark.asyncio
    async def test_tick_without_samples(self, monitor):
        assert await monitor.tick() is None


class TestSessionEnd:
    """end_session()"""

    @pytest.mark.asyncio
    async def test_end_session_saves_record(self, monitor, persistence):
        await feed(monitor, [120, 130])
        record = await monitor.end_session(dt(12))

        persistence.save_session.assert_awaited_once_with(record)
        assert monitor.saved is True
        assert record.end_time == dt(12)
        assert record.meat_type == "brisket"
        assert record.plan is not None
        assert monitor.warnings == []

    @pytest.mark.asyncio
    async def test_samples_after_end_are_dropped(self, monitor, notifier):
        await monitor.start()
        await monitor.end_session()

        assert monitor.on_sample(dt(9), f_to_c(210)) is False
        with pytest.raises(SessionClosedError):
            await monitor.process_sample(TemperatureSample(timestamp=dt(9), celsius=f_to_c(210)))
        notifier.schedule_notification.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_end_session_twice(self, monitor, persistence):
        assert await monitor.end_session() is not None
        assert await monitor.end_session() is None
        persistence.save_session.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_persistence_failure_is_a_warning(self, cook_plan):
        sink = AsyncMock()
        sink.save_session = AsyncMock(return_value=False)
        monitor = CookSessionMonitor(plan=cook_plan, persistence_sink=sink)

        record = await monitor.end_session()

        assert record is not None
        assert monitor.saved is False
        assert len(monitor.warnings) == 1
        sink.save_session.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_persistence_exception_is_a_warning(self, cook_plan):
        sink = AsyncMock()
        sink.save_session = AsyncMock(side_effect=OSError("disk full"))
        monitor = CookSessionMonitor(plan=cook_plan, persistence_sink=sink)

        record = await monitor.end_session()

        assert record is not None
        assert monitor.saved is False
        assert "disk full" in str(monitor.warnings[0])

    @pytest.mark.asyncio
    async def test_session_ended_event(self, monitor):
        events = monitor.subscribe()
        await monitor.end_session()

        last = None
        while not events.empty():
            last = events.get_nowait()
        assert last.event == "session_ended"
        assert last.data["saved"] is True


class TestNotesAndReset:
    """Notes and alert reset"""

    @pytest.mark.asyncio
    async def test_add_and_edit_note(self, monitor):
        note = await monitor.add_note("  spritzed with apple juice ", NoteType.SPRITZING, timestamp=dt(10))
        assert note.content == "spritzed with apple juice"

        edited = await monitor.edit_note(note.id, "spritzed with apple cider vinegar")
        record = await monitor.end_session()

        assert edited.id == note.id
        assert record.notes[0].content == "spritzed with apple cider vinegar"
        assert record.notes[0].type == NoteType.SPRITZING

    @pytest.mark.asyncio
    async def test_empty_note_rejected(self, monitor):
        with pytest.raises(ValidationError):
            await monitor.add_note("   ")

    @pytest.mark.asyncio
    async def test_note_after_end(self, monitor):
        await monitor.end_session()
        with pytest.raises(SessionClosedError):
            await monitor.add_note("late note")

    @pytest.mark.asyncio
    async def test_reset_alerts_never_repeats_an_alert(self, monitor, notifier):
        await feed(monitor, [170])
        status = await monitor.reset_alerts()
        assert status.stage == CookStage.WRAPPED

        await feed(monitor, [172], base=dt(9))
        record = await monitor.end_session()

        assert notifier.schedule_notification.await_count == 1
        assert [a.stage for a in record.stage_history] == [CookStage.WRAPPED]

    @pytest.mark.asyncio
    async def test_reset_alerts_with_new_thresholds(self, monitor):
        status = await monitor.reset_alerts(CookThresholds(wrap_temp_f=150, target_temp_f=190))
        assert status.next_action == "Wrap at 150°F"

    @pytest.mark.asyncio
    async def test_subscriber_receives_alerts(self, monitor):
        events = monitor.subscribe()
        await feed(monitor, [170])

        received = []
        while not events.empty():
            received.append(events.get_nowait())
        kinds = [e.event for e in received]
        assert kinds == ["alert", "notification", "status"]
        assert received[0].data["stage"] == "wrapped"

        monitor.unsubscribe(events)
        await feed(monitor, [180], base=dt(9))
        assert events.empty()
