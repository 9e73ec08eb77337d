"""
Cook Plan Calculator
Schedule and thresholds from meat type, weight and ready time
"""
import math
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from core.errors import ValidationError, validate_thresholds
from models.cooking import CookPlan
from utils.text_utils import clean_number, format_clock

# Hours of cook time per pound
COOK_RATES: Dict[str, float] = {
    "brisket": 1.5,
    "beef ribs": 1.25,
    "pork ribs": 1.0,
    "chicken": 0.5,
    "turkey": 0.75,
    "pork butt": 1.25,
}
DEFAULT_COOK_RATE = 1.0

MEAT_TYPES: List[str] = ["Brisket", "Beef Ribs", "Pork Ribs", "Chicken", "Turkey", "Pork Butt"]

DEFAULT_TARGET_TEMP_F = 203.0
DEFAULT_WRAP_TEMP_F = 165.0
# Low-temp (poultry style) cooks pull at 165, so wrapping has to happen earlier
LOW_TEMP_TARGET_F = 165.0
LOW_TEMP_WRAP_F = 140.0

WRAP_BEFORE_READY = timedelta(hours=4)
REST_AFTER_READY = timedelta(minutes=30)


def cook_rate(meat_type: str) -> float:
    """
    Hours per pound for a meat type

    Args:
        meat_type: Any casing, e.g. "Pork Butt"

    Returns:
        Rate, or DEFAULT_COOK_RATE for unknown types
    """
    return COOK_RATES.get(meat_type.strip().lower(), DEFAULT_COOK_RATE)


def plan(
    meat_type: str,
    weight_lb: float,
    ready_by: datetime,
    target_temp_f: Optional[float] = None,
    wrap_temp_f: Optional[float] = None,
) -> CookPlan:
    """
    Compute a cook plan

    Args:
        meat_type: Meat being cooked
        weight_lb: Weight in pounds (> 0)
        ready_by: When the meat should be ready
        target_temp_f: Pull temperature override
        wrap_temp_f: Wrap temperature override

    Returns:
        CookPlan

    Raises:
        ValidationError: empty meat type, non-positive or non-finite weight,
            wrap >= target, or a schedule outside the datetime range
    """
    if meat_type is None or not meat_type.strip():
        raise ValidationError("meat type is required")
    if weight_lb is None or not math.isfinite(weight_lb) or weight_lb <= 0:
        raise ValidationError(f"weight must be positive, got {weight_lb}")

    target = DEFAULT_TARGET_TEMP_F if target_temp_f is None else float(target_temp_f)
    if wrap_temp_f is not None:
        wrap = float(wrap_temp_f)
    elif target == LOW_TEMP_TARGET_F:
        wrap = LOW_TEMP_WRAP_F
    else:
        wrap = DEFAULT_WRAP_TEMP_F
    validate_thresholds(wrap, target)

    total_hours = cook_rate(meat_type) * weight_lb
    try:
        start_time = ready_by - timedelta(hours=total_hours)
        wrap_time = ready_by - WRAP_BEFORE_READY
        rest_time = ready_by + REST_AFTER_READY
    except OverflowError:
        raise ValidationError(f"plan start out of range for {clean_number(weight_lb)} lb")

    return CookPlan(
        meat_type=meat_type.strip(),
        weight_lb=weight_lb,
        ready_by=ready_by,
        total_cook_hours=total_hours,
        start_time=start_time,
        wrap_time=wrap_time,
        rest_time=rest_time,
        target_temp_f=target,
        wrap_temp_f=wrap,
    )


def summarize(cook_plan: CookPlan) -> str:
    """
    One-paragraph plan summary for the planner screen

    Args:
        cook_plan: Plan to describe

    Returns:
        Summary text
    """
    lowered = cook_plan.meat_type.lower()
    if lowered.startswith("a ") or lowered.startswith("an "):
        meat = cook_plan.meat_type
    else:
        meat = f"your {clean_number(cook_plan.weight_lb)} lb {lowered}"

    return (
        f"To have {meat} ready by {format_clock(cook_plan.ready_by)}, "
        f"start your cook at {format_clock(cook_plan.start_time)}. "
        f"Wrap at {format_clock(cook_plan.wrap_time)} or when it reaches {int(cook_plan.wrap_temp_f)}°F, "
        f"pull at {int(cook_plan.target_temp_f)}°F and let it rest until {format_clock(cook_plan.rest_time)}. "
        f"Total estimated cook time: {int(round(cook_plan.total_cook_hours))} hours."
    )
