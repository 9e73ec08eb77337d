"""
Threshold/Stage State Machine
Tracks the active cook stage and fires each threshold alert exactly once
"""
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from core.errors import validate_thresholds
from models.cooking import (
    AlertEvent,
    CookStage,
    CookThresholds,
    StageUpdate,
    TrendEstimate,
)

logger = logging.getLogger(__name__)


class StageMachine:
    """
    Cook stage machine: PreWrap -> Wrapped -> Complete

    Every threshold has its own latch. Once a latch is set the threshold never
    fires again for the session, even if the probe dips below it (opening the
    lid, wrapping) and climbs back. Crossings are reported through
    StageUpdate.alerts, never as exceptions.
    """

    def __init__(self, thresholds: CookThresholds):
        """
        Args:
            thresholds: Wrap and target temperatures (wrap must be below target)

        Raises:
            ValidationError: thresholds are inverted or equal
        """
        validate_thresholds(thresholds.wrap_temp_f, thresholds.target_temp_f)
        self.thresholds = thresholds
        self._stage = CookStage.PRE_WRAP
        self._latches: Dict[CookStage, AlertEvent] = {}

    @property
    def stage(self) -> CookStage:
        return self._stage

    @property
    def is_complete(self) -> bool:
        return self._stage == CookStage.COMPLETE

    @property
    def history(self) -> List[AlertEvent]:
        """Alerts fired so far, in firing order"""
        return list(self._latches.values())

    def next_threshold(self) -> Optional[float]:
        """
        First threshold whose latch is still open

        Returns:
            Temperature in °F, or None once the cook is complete
        """
        for stage, threshold in self.thresholds.ordered():
            if stage not in self._latches:
                return threshold
        return None

    def advance(
        self,
        current_temp_f: float,
        now: datetime,
        trend: Optional[TrendEstimate] = None,
    ) -> StageUpdate:
        """
        Evaluate one reading against the open thresholds

        A reading equal to a threshold counts as reached. A single reading
        above several thresholds walks through each transition in order, so
        a spike straight past the target still reports the wrap alert first.

        Args:
            current_temp_f: Probe temperature in Fahrenheit
            now: Time of the reading
            trend: Latest trend estimate, used for the arrival estimate

        Returns:
            StageUpdate
        """
        if self.is_complete:
            return StageUpdate(stage=self._stage)

        alerts: List[AlertEvent] = []
        for stage, threshold in self.thresholds.ordered():
            if stage in self._latches:
                continue
            if current_temp_f < threshold:
                break
            event = AlertEvent(stage=stage, threshold_f=threshold, fired_at=now)
            self._latches[stage] = event
            self._stage = stage
            alerts.append(event)
            logger.info("[Stage] %s reached at %.1f°F (threshold %.1f°F)", stage.value, current_temp_f, threshold)

        return StageUpdate(
            stage=self._stage,
            time_to_next_threshold=self.time_to_next_threshold(current_temp_f, trend),
            alerts=alerts,
        )

    def time_to_next_threshold(
        self,
        current_temp_f: float,
        trend: Optional[TrendEstimate],
    ) -> Optional[timedelta]:
        """
        Estimated time until the next open threshold is reached

        Does not touch any latch, so it is safe to call from the display timer.

        Returns:
            timedelta (never negative), or None when there is no open threshold
            or the temperature is not rising
        """
        threshold = self.next_threshold()
        if threshold is None or trend is None:
            return None

        rate_f = trend.fahrenheit_per_minute
        if rate_f <= 0:
            return None

        remaining = max(threshold - current_temp_f, 0.0)
        return timedelta(minutes=remaining / rate_f)

    def reset(self, thresholds: Optional[CookThresholds] = None):
        """
        User "reset alerts"

        Stages already reached keep their latches, so the stage never moves
        backwards and no alert fires twice. Thresholds of stages not yet
        reached are replaced when new ones are given.

        Args:
            thresholds: Replacement thresholds, validated like the constructor's
        """
        if thresholds is not None:
            validate_thresholds(thresholds.wrap_temp_f, thresholds.target_temp_f)
            self.thresholds = thresholds
        logger.info(
            "[Stage] alerts re-armed at %s (wrap %.1f°F, target %.1f°F, reached %s)",
            self._stage.value,
            self.thresholds.wrap_temp_f,
            self.thresholds.target_temp_f,
            [stage.value for stage in self._latches],
        )
