"""
Alert Dispatcher
Maps stage alerts to notification content and the "next action" hint
"""
from typing import Optional

from models.cooking import AlertEvent, CookStage, CookThresholds, NotificationRequest


class AlertDispatcher:
    """
    Pure mapping from stage events to user-facing text
    Delivery is left to the notification collaborator
    """

    def __init__(self, thresholds: CookThresholds):
        self.thresholds = thresholds

    def dispatch(self, event: AlertEvent) -> NotificationRequest:
        """
        Build the notification for an alert

        Args:
            event: AlertEvent from the stage machine

        Returns:
            NotificationRequest

        Raises:
            ValueError: event stage has no notification (PreWrap)
        """
        if event.stage == CookStage.WRAPPED:
            return NotificationRequest(
                title="Wrap Time!",
                body=f"Meat has reached {int(event.threshold_f)}°F. Time to wrap.",
            )
        if event.stage == CookStage.COMPLETE:
            return NotificationRequest(
                title="Pull & Rest!",
                body=f"Meat has reached {int(event.threshold_f)}°F. Time to pull and rest.",
            )
        raise ValueError(f"no notification for stage {event.stage.value}")

    def next_action(self, stage: CookStage) -> Optional[str]:
        """
        What the cook should do next

        Returns:
            Action text, or None once the cook is complete
        """
        if stage == CookStage.PRE_WRAP:
            return f"Wrap at {int(self.thresholds.wrap_temp_f)}°F"
        if stage == CookStage.WRAPPED:
            return f"Pull and rest at {int(self.thresholds.target_temp_f)}°F"
        return None
