"""
Cook Session WebSocket Handler
Bridges a websocket client (probe transport + UI) to a CookSessionMonitor
"""
import asyncio
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from core.config import MonitorSettings
from core.db_handler import SessionDB
from core.errors import CookMonitorError
from core.monitor import CookSessionMonitor
from core.planner import plan as compute_plan, summarize
from core.sample_source import SimulatedProbe, decode_probe_value, pump
from models.cooking import CookThresholds, NoteType
from models.events import CookWebEvent

logger = logging.getLogger(__name__)


def _parse_time(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class WebSocketNotifier:
    """
    Notification collaborator that forwards push requests to the client
    """

    def __init__(self, handler: "CookSessionHandler"):
        self.handler = handler

    async def schedule_notification(self, title: str, body: str) -> None:
        await self.handler.send_event("system", "push_notification", {"title": title, "body": body})


class CookSessionHandler:
    """
    One websocket connection = one cook session

    Client messages are CookWebEvents with type "user":
    start, sample, simulate, note, edit_note, reset_alerts, end
    """

    def __init__(self, websocket: WebSocket, db: Optional[SessionDB] = None, settings: Optional[MonitorSettings] = None):
        """
        Args:
            websocket: FastAPI WebSocket
            db: Persistence collaborator for finished sessions
            settings: MonitorSettings (read from the environment when omitted)
        """
        self.websocket = websocket
        self.db = db
        self.settings = settings or MonitorSettings.from_env()
        self.monitor: Optional[CookSessionMonitor] = None
        self._forward_task: Optional[asyncio.Task] = None
        self._simulation_task: Optional[asyncio.Task] = None
        self._events: Optional[asyncio.Queue] = None

    async def start(self):
        """
        Handler start
        Runs until the client disconnects
        """
        await self.send_event("system", "connected", "websocket connected")
        await self._message_loop()

    async def _message_loop(self):
        while True:
            msg = await self.websocket.receive_json()

            if os.getenv("DEBUG_MODE") == "true":
                logger.debug("[Session] received message: %s", msg)

            try:
                event = CookWebEvent.model_validate(msg)
                data = event.data if event.data is not None else {}
                if not isinstance(data, dict):
                    await self.send_event("system", "error", f"invalid request: {event.event} data must be an object")
                    continue
                await self._handle(event.event, data)
            except CookMonitorError as e:
                await self.send_event("system", "error", str(e))
            except (KeyError, TypeError, ValueError) as e:
                await self.send_event("system", "error", f"invalid request: {e}")

    async def _handle(self, name: str, data: Dict[str, Any]):
        if name == "start":
            await self._start_session(data)
            return

        if self.monitor is None:
            await self.send_event("system", "error", "session not started")
            return

        if name == "sample":
            if "payload_hex" in data:
                celsius = decode_probe_value(bytes.fromhex(data["payload_hex"]))
            else:
                celsius = float(data["celsius"])
            if not self.monitor.on_sample(_parse_time(data.get("timestamp")), celsius):
                await self.send_event("system", "warning", "session ended, sample dropped")

        elif name == "simulate":
            if self._simulation_task and not self._simulation_task.done():
                return
            probe = SimulatedProbe(
                interval=timedelta(seconds=float(data.get("interval_seconds", 30))),
                max_samples=data.get("max_samples"),
                real_delay=float(data.get("real_delay", 0.5)),
                seed=data.get("seed"),
            )
            self._simulation_task = asyncio.create_task(pump(probe, self.monitor))

        elif name == "note":
            note_type = NoteType(data.get("type", NoteType.OBSERVATION.value))
            await self.monitor.add_note(data.get("content", ""), note_type)

        elif name == "edit_note":
            await self.monitor.edit_note(data["id"], data.get("content", ""))

        elif name == "reset_alerts":
            thresholds = None
            if "wrap_temp_f" in data and "target_temp_f" in data:
                thresholds = CookThresholds(
                    wrap_temp_f=float(data["wrap_temp_f"]),
                    target_temp_f=float(data["target_temp_f"]),
                )
            await self.monitor.reset_alerts(thresholds)

        elif name == "status":
            await self.send_event("session", "status", self.monitor.status().model_dump(mode="json"))

        elif name == "end":
            await self._end_session()

        else:
            logger.warning("[Session] unknown event: %s", name)
            await self.send_event("system", "error", f"unknown event {name}")

    async def _start_session(self, data: Dict[str, Any]):
        if self.monitor is not None and not self.monitor.is_closed:
            await self.send_event("system", "error", "session already running")
            return
        self._release_session()

        cook_plan = compute_plan(
            meat_type=data.get("meat_type", ""),
            weight_lb=float(data.get("weight_lb", 0)),
            ready_by=_parse_time(data.get("ready_by")),
            target_temp_f=data.get("target_temp_f"),
            wrap_temp_f=data.get("wrap_temp_f"),
        )
        self.monitor = CookSessionMonitor(
            plan=cook_plan,
            notification_sink=WebSocketNotifier(self),
            persistence_sink=self.db,
            settings=self.settings,
        )
        self._events = self.monitor.subscribe()
        self._forward_task = asyncio.create_task(self._event_forward_loop(self._events))
        await self.monitor.start()

        await self.send_event("session", "plan", {
            "session_id": self.monitor.session_id,
            "plan": cook_plan.model_dump(mode="json"),
            "summary": summarize(cook_plan),
        })
        await self.send_event("session", "status", self.monitor.status().model_dump(mode="json"))

    async def _end_session(self):
        if self._simulation_task:
            self._simulation_task.cancel()
            self._simulation_task = None
        record = await self.monitor.end_session()
        if record is not None:
            await self.send_event("session", "session_saved" if self.monitor.saved else "session_ended", {
                "session_id": record.id,
                "readings": len(record.readings),
                "duration": record.formatted_duration,
                "warnings": [str(w) for w in self.monitor.warnings],
            })

    async def _event_forward_loop(self, events: asyncio.Queue):
        """Forward monitor events to the client"""
        while True:
            message: CookWebEvent = await events.get()
            await self._write_json(message.model_dump(mode="json"))

    async def send_event(self, type_: str, event: str, data: Any):
        await self._write_json(CookWebEvent(type=type_, event=event, data=data).model_dump(mode="json"))

    async def _write_json(self, data: Dict[str, Any]):
        """
        WebSocket JSON send
        A closed socket is skipped silently, send failures are logged
        """
        if not self.websocket or self.websocket.client_state != WebSocketState.CONNECTED:
            return
        try:
            await self.websocket.send_json(data)
        except Exception as e:
            logger.warning("[Session] failed to send websocket message: %s", e)

    def _release_session(self):
        """Detach from the current monitor: stop forwarding and simulation"""
        if self._simulation_task:
            self._simulation_task.cancel()
            self._simulation_task = None
        if self.monitor is not None and self._events is not None:
            self.monitor.unsubscribe(self._events)
        self._events = None
        if self._forward_task:
            self._forward_task.cancel()
            self._forward_task = None

    async def cleanup(self):
        """Release resources; an unfinished session is ended and saved"""
        if self._simulation_task:
            self._simulation_task.cancel()
            self._simulation_task = None
        if self.monitor is not None and not self.monitor.is_closed:
            await self.monitor.end_session()
        self._release_session()
