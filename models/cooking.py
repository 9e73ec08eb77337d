"""
Cook Session Models
Data types shared by the monitoring engine, the planner and persistence
"""
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from utils.text_utils import format_duration


def celsius_to_fahrenheit(celsius: float) -> float:
    """F = C * 9/5 + 32"""
    return celsius * 9 / 5 + 32


class TemperatureSample(BaseModel):
    """
    One probe reading
    Immutable once created; temperature is kept in Celsius as delivered
    """
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    celsius: float

    @property
    def fahrenheit(self) -> float:
        return celsius_to_fahrenheit(self.celsius)


class CookStage(str, Enum):
    """Cook stages, in the only order they can be entered"""
    PRE_WRAP = "pre_wrap"
    WRAPPED = "wrapped"
    COMPLETE = "complete"


class CookThresholds(BaseModel):
    """
    Wrap and pull temperatures for one session (Fahrenheit)
    """
    model_config = ConfigDict(frozen=True)

    wrap_temp_f: float
    target_temp_f: float

    def ordered(self) -> List[Tuple[CookStage, float]]:
        """
        Threshold table in crossing order

        Returns:
            [(stage entered when reached, threshold)]
        """
        return [
            (CookStage.WRAPPED, self.wrap_temp_f),
            (CookStage.COMPLETE, self.target_temp_f),
        ]


class TrendDirection(str, Enum):
    RISING = "rising"
    FALLING = "falling"
    STEADY = "steady"


class TrendEstimate(BaseModel):
    """
    Rate of change over the recent sample window
    degrees_per_minute is in Celsius, as the probe reports
    """
    model_config = ConfigDict(frozen=True)

    degrees_per_minute: float = 0.0
    direction: TrendDirection = TrendDirection.STEADY

    @property
    def fahrenheit_per_minute(self) -> float:
        return self.degrees_per_minute * 9 / 5


class AlertEvent(BaseModel):
    """Emitted once when a stage threshold is first reached"""
    model_config = ConfigDict(frozen=True)

    stage: CookStage
    threshold_f: float
    fired_at: datetime


class StageUpdate(BaseModel):
    """Result of one state machine step"""
    stage: CookStage
    time_to_next_threshold: Optional[timedelta] = None
    alerts: List[AlertEvent] = Field(default_factory=list)


class NotificationRequest(BaseModel):
    """User-facing notification content"""
    model_config = ConfigDict(frozen=True)

    title: str
    body: str


class NoteType(str, Enum):
    OBSERVATION = "observation"  # General observations
    TEMPERATURE = "temperature"
    WRAPPING = "wrapping"
    SPRITZING = "spritzing"  # Spritzing/basting
    ISSUE = "issue"  # Problems or concerns


class CookNote(BaseModel):
    """
    User-authored note
    Never mutated; a text correction replaces it with a copy under the same id
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    timestamp: datetime
    content: str
    type: NoteType = NoteType.OBSERVATION


class CookPlan(BaseModel):
    """
    Computed cook schedule
    Seeds the stage machine thresholds and the session's expected timestamps
    """
    model_config = ConfigDict(frozen=True)

    meat_type: str
    weight_lb: float
    ready_by: datetime
    total_cook_hours: float
    start_time: datetime
    wrap_time: datetime
    rest_time: datetime
    target_temp_f: float
    wrap_temp_f: float

    def thresholds(self) -> CookThresholds:
        return CookThresholds(wrap_temp_f=self.wrap_temp_f, target_temp_f=self.target_temp_f)


class SessionRecord(BaseModel):
    """
    Full history of one cook session
    Handed to the persistence collaborator once the session ends
    """
    id: str = Field(default_factory=lambda: str(uuid4()))
    meat_type: str
    weight_lb: float
    start_time: datetime
    end_time: Optional[datetime] = None
    readings: List[TemperatureSample] = Field(default_factory=list)
    notes: List[CookNote] = Field(default_factory=list)
    stage_history: List[AlertEvent] = Field(default_factory=list)
    plan: Optional[CookPlan] = None

    @property
    def duration(self) -> Optional[timedelta]:
        if self.end_time is None:
            return None
        return self.end_time - self.start_time

    @property
    def formatted_duration(self) -> str:
        duration = self.duration
        if duration is None:
            return "In progress"
        return format_duration(duration)


class MonitorStatus(BaseModel):
    """Snapshot of a running session for UI-facing callers"""
    stage: CookStage
    current_temp_f: Optional[float] = None
    trend: Optional[TrendEstimate] = None
    time_to_next_threshold: Optional[timedelta] = None
    countdown: Optional[str] = None  # time_to_next_threshold as "HH:MM:SS" / "MM:SS"
    next_action: Optional[str] = None
    last_sample_at: Optional[datetime] = None
    is_complete: bool = False
