"""
Cook Session Monitor
One monitoring loop per cook session: sample intake, stage alerts,
notifications and hand-off of the finished record
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional, Protocol

from pydantic import BaseModel, Field

from core.config import MonitorSettings
from core.dispatcher import AlertDispatcher
from core.errors import (
    DeliveryError,
    SessionClosedError,
    StaleSampleError,
    ValidationError,
)
from core.recorder import SessionRecorder
from core.stage_machine import StageMachine
from core.trend import TrendEstimator
from models.cooking import (
    AlertEvent,
    CookNote,
    CookPlan,
    CookThresholds,
    MonitorStatus,
    NoteType,
    NotificationRequest,
    SessionRecord,
    TemperatureSample,
)
from models.events import CookWebEvent
from utils.text_utils import format_countdown

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    """Delivers a notification to the user (fire-and-forget)"""

    async def schedule_notification(self, title: str, body: str) -> None: ...


class PersistenceSink(Protocol):
    """Stores a finished session record"""

    async def save_session(self, record: SessionRecord) -> bool: ...


class MonitorUpdate(BaseModel):
    """Outcome of processing one sample"""
    sample: TemperatureSample
    status: MonitorStatus
    alerts: List[AlertEvent] = Field(default_factory=list)
    notifications: List[NotificationRequest] = Field(default_factory=list)


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class CookSessionMonitor:
    """
    Session-scoped monitoring engine

    Samples are pushed through on_sample() into a bounded queue and consumed
    by a single loop. Every mutation of the stage machine, trend window and
    recorder happens under one asyncio.Lock, so an alert latch is never read
    and set by two samples at once. A separate timer only refreshes the
    time-to-next-threshold estimate.
    """

    def __init__(
        self,
        plan: Optional[CookPlan] = None,
        notification_sink: Optional[NotificationSink] = None,
        persistence_sink: Optional[PersistenceSink] = None,
        settings: Optional[MonitorSettings] = None,
        thresholds: Optional[CookThresholds] = None,
        meat_type: Optional[str] = None,
        weight_lb: Optional[float] = None,
        start_time: Optional[datetime] = None,
        session_id: Optional[str] = None,
    ):
        """
        Args:
            plan: Cook plan; provides thresholds, meat type and weight
            notification_sink: Receives one notification per alert
            persistence_sink: Receives the finished SessionRecord
            settings: MonitorSettings (defaults when omitted)
            thresholds: Explicit thresholds (override the plan's)
            meat_type: Required when no plan is given
            weight_lb: Required when no plan is given
            start_time: Session start (now when omitted)
            session_id: Record id (generated when omitted)

        Raises:
            ValidationError: no thresholds, or inverted thresholds
        """
        if thresholds is None and plan is None:
            raise ValidationError("a cook plan or explicit thresholds are required")
        if thresholds is None:
            thresholds = plan.thresholds()

        self.plan = plan
        self.settings = settings or MonitorSettings()
        self.notification_sink = notification_sink
        self.persistence_sink = persistence_sink

        self.machine = StageMachine(thresholds)
        self.dispatcher = AlertDispatcher(thresholds)
        self.trend = TrendEstimator(
            window_size=self.settings.trend_window,
            steady_band_f=self.settings.steady_band_f,
        )
        self.recorder = SessionRecorder(
            meat_type=meat_type or (plan.meat_type if plan else "unknown"),
            weight_lb=weight_lb if weight_lb is not None else (plan.weight_lb if plan else 0.0),
            start_time=start_time or utcnow(),
            plan=plan,
            session_id=session_id,
        )

        self.warnings: List[DeliveryError] = []
        self.saved: Optional[bool] = None
        self.dropped_samples = 0

        self._queue: asyncio.Queue[TemperatureSample] = asyncio.Queue(maxsize=self.settings.sample_queue_max)
        self._lock = asyncio.Lock()
        self._subscribers: List[asyncio.Queue] = []
        self._consumer_task: Optional[asyncio.Task] = None
        self._timer_task: Optional[asyncio.Task] = None
        self._closed = False
        self._last_sample: Optional[TemperatureSample] = None
        self._current_temp_f: Optional[float] = None
        self._time_to_next: Optional[timedelta] = None

    @property
    def session_id(self) -> str:
        return self.recorder.session_id

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def is_running(self) -> bool:
        return self._consumer_task is not None and not self._consumer_task.done()

    async def start(self):
        """
        Start the sample consumer and the display timer
        Calling it again while running has no effect
        """
        if self._closed:
            raise SessionClosedError(f"session {self.session_id} has ended")
        if self.is_running:
            return
        self._consumer_task = asyncio.create_task(self._consume_loop())
        self._timer_task = asyncio.create_task(self._timer_loop())
        logger.info("[Monitor] session %s started", self.session_id)

    def on_sample(self, timestamp: datetime, celsius: float) -> bool:
        """
        Push entry point for the sample transport

        Never blocks. When the buffer is full the least-recent buffered
        sample is dropped to make room for the new one.

        Args:
            timestamp: Sample time (UTC)
            celsius: Probe temperature

        Returns:
            False if the session has ended and the sample was dropped
        """
        if self._closed:
            logger.debug("[Monitor] session %s closed, dropping sample at %s", self.session_id, timestamp)
            return False

        sample = TemperatureSample(timestamp=timestamp, celsius=celsius)
        if self._queue.full():
            try:
                dropped = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
            else:
                self.dropped_samples += 1
                logger.warning(
                    "[Monitor] sample queue full -> dropping oldest sample at %s (size=%d)",
                    dropped.timestamp,
                    self._queue.qsize(),
                )
        self._queue.put_nowait(sample)
        return True

    async def process_sample(self, sample: TemperatureSample) -> MonitorUpdate:
        """
        Run one sample through trend, stage machine, recorder and dispatcher

        Args:
            sample: Probe reading

        Returns:
            MonitorUpdate

        Raises:
            SessionClosedError: session has ended
            StaleSampleError: sample is older than the last accepted one;
                nothing about the session changes
        """
        async with self._lock:
            if self._closed:
                raise SessionClosedError(f"session {self.session_id} has ended")
            if self._last_sample is not None and sample.timestamp < self._last_sample.timestamp:
                raise StaleSampleError(sample.timestamp, self._last_sample.timestamp)

            estimate = self.trend.observe(sample)
            temp_f = sample.fahrenheit
            self._last_sample = sample
            self._current_temp_f = temp_f

            update = self.machine.advance(temp_f, sample.timestamp, estimate)
            self._time_to_next = update.time_to_next_threshold

            self.recorder.append_sample(sample)
            for alert in update.alerts:
                self.recorder.record_alert(alert)
            notifications = [self.dispatcher.dispatch(alert) for alert in update.alerts]
            status = self.status()

        if self.settings.debug:
            logger.info("[Monitor] %.1f°F stage=%s trend=%s", temp_f, status.stage.value, estimate.direction.value)

        for alert, request in zip(update.alerts, notifications):
            self._publish("alert", alert.model_dump(mode="json"))
            await self._deliver(request)
        self._publish("status", status.model_dump(mode="json"))

        return MonitorUpdate(
            sample=sample,
            status=status,
            alerts=update.alerts,
            notifications=notifications,
        )

    async def tick(self) -> Optional[timedelta]:
        """
        Refresh the time-to-next-threshold estimate
        Temperature is not re-sampled and no latch is touched

        Returns:
            Current estimate
        """
        async with self._lock:
            if self._closed or self._current_temp_f is None:
                return None
            self._time_to_next = self.machine.time_to_next_threshold(self._current_temp_f, self.trend.latest)
            status = self.status()
        self._publish("status", status.model_dump(mode="json"))
        return status.time_to_next_threshold

    async def add_note(
        self,
        content: str,
        note_type: NoteType = NoteType.OBSERVATION,
        timestamp: Optional[datetime] = None,
    ) -> CookNote:
        """
        Record a user note

        Raises:
            ValidationError: empty note text
            SessionClosedError: session has ended
        """
        text = (content or "").strip()
        if not text:
            raise ValidationError("note text is empty")
        note = CookNote(timestamp=timestamp or utcnow(), content=text, type=note_type)
        async with self._lock:
            if self._closed:
                raise SessionClosedError(f"session {self.session_id} has ended")
            self.recorder.append_note(note)
        self._publish("note", note.model_dump(mode="json"))
        return note

    async def edit_note(self, note_id: str, content: str) -> CookNote:
        """
        Correct the text of an existing note

        Raises:
            ValidationError: empty note text
            KeyError: unknown note id
            SessionClosedError: session has ended
        """
        text = (content or "").strip()
        if not text:
            raise ValidationError("note text is empty")
        async with self._lock:
            if self._closed:
                raise SessionClosedError(f"session {self.session_id} has ended")
            note = self.recorder.edit_note(note_id, text)
        self._publish("note", note.model_dump(mode="json"))
        return note

    async def reset_alerts(self, thresholds: Optional[CookThresholds] = None) -> MonitorStatus:
        """
        User-initiated alert reset, optionally with new thresholds
        Reached stages stay reached; only pending thresholds change

        Raises:
            ValidationError: inverted thresholds
            SessionClosedError: session has ended
        """
        async with self._lock:
            if self._closed:
                raise SessionClosedError(f"session {self.session_id} has ended")
            self.machine.reset(thresholds)
            self.dispatcher.thresholds = self.machine.thresholds
            if self._current_temp_f is not None:
                self._time_to_next = self.machine.time_to_next_threshold(self._current_temp_f, self.trend.latest)
            else:
                self._time_to_next = None
            status = self.status()
        self._publish("status", status.model_dump(mode="json"))
        return status

    def status(self) -> MonitorStatus:
        """Snapshot for display"""
        stage = self.machine.stage
        return MonitorStatus(
            stage=stage,
            current_temp_f=self._current_temp_f,
            trend=self.trend.latest if self._last_sample is not None else None,
            time_to_next_threshold=self._time_to_next,
            countdown=format_countdown(self._time_to_next) if self._time_to_next is not None else None,
            next_action=self.dispatcher.next_action(stage),
            last_sample_at=self._last_sample.timestamp if self._last_sample else None,
            is_complete=self.machine.is_complete,
        )

    def subscribe(self) -> asyncio.Queue:
        """
        Receive CookWebEvents (status, alert, notification, note, warning, session_ended)

        Returns:
            Queue fed by the monitor
        """
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue):
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    async def end_session(self, now: Optional[datetime] = None) -> Optional[SessionRecord]:
        """
        End the session
        Stops the loop and the timer, drops pending and later samples,
        finalizes the record and hands it to the persistence collaborator

        Args:
            now: End time (now, UTC, when omitted)

        Returns:
            SessionRecord, or None if the session had already ended
        """
        async with self._lock:
            if self._closed:
                return None
            self._closed = True
            record = self.recorder.finalize(now or utcnow())

        await self._stop_tasks()
        pending = self._drain_queue()
        if pending:
            logger.info("[Monitor] dropped %d pending samples at session end", pending)

        self.saved = await self._save(record)
        self._publish("session_ended", {"session_id": record.id, "saved": self.saved})
        return record

    async def _consume_loop(self):
        while not self._closed:
            sample = await self._queue.get()
            try:
                await self.process_sample(sample)
            except StaleSampleError as e:
                logger.warning("[Monitor] stale sample rejected: %s", e)
            except SessionClosedError:
                break
            except Exception as e:
                logger.exception("[Monitor] error processing sample: %s", e)

    async def _timer_loop(self):
        while not self._closed:
            await asyncio.sleep(self.settings.tick_seconds)
            try:
                await self.tick()
            except Exception as e:
                logger.exception("[Monitor] timer error: %s", e)

    async def _stop_tasks(self):
        current = asyncio.current_task()
        for task in (self._consumer_task, self._timer_task):
            if task is None or task is current or task.done():
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._consumer_task = None
        self._timer_task = None

    def _drain_queue(self) -> int:
        cleared = 0
        while True:
            try:
                self._queue.get_nowait()
                cleared += 1
            except asyncio.QueueEmpty:
                break
        return cleared

    async def _deliver(self, request: NotificationRequest):
        self._publish("notification", request.model_dump(mode="json"))
        if self.notification_sink is None:
            return
        try:
            await self.notification_sink.schedule_notification(request.title, request.body)
        except Exception as e:
            self._warn(DeliveryError(f"notification '{request.title}' failed: {e}"))

    async def _save(self, record: SessionRecord) -> bool:
        if self.persistence_sink is None:
            self._warn(DeliveryError(f"no persistence configured, session {record.id} not saved"))
            return False
        try:
            ok = await self.persistence_sink.save_session(record)
        except Exception as e:
            self._warn(DeliveryError(f"saving session {record.id} failed: {e}"))
            return False
        if not ok:
            self._warn(DeliveryError(f"saving session {record.id} failed"))
            return False
        logger.info("[Monitor] session %s saved", record.id)
        return True

    def _warn(self, error: DeliveryError):
        logger.warning("[Monitor] %s", error)
        self.warnings.append(error)
        self._publish("warning", str(error))

    def _publish(self, event: str, data: Any):
        if not self._subscribers:
            return
        message = CookWebEvent(type="session", event=event, data=data)
        for queue in list(self._subscribers):
            queue.put_nowait(message)
