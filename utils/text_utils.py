"""
Text Utilities
Human-readable formatting for durations, countdowns and temperatures
"""
from datetime import datetime, timedelta


def format_duration(duration: timedelta) -> str:
    """
    Format a finished session length

    Args:
        duration: Elapsed time

    Returns:
        "Xh Ym" string
    """
    total = max(int(duration.total_seconds()), 0)
    hours = total // 3600
    minutes = total // 60 % 60
    return f"{hours}h {minutes}m"


def format_countdown(interval: timedelta) -> str:
    """
    Format a time-to-next-action countdown

    Args:
        interval: Remaining time

    Returns:
        "HH:MM:SS" when an hour or more remains, otherwise "MM:SS"
    """
    total = max(int(interval.total_seconds()), 0)
    hours = total // 3600
    minutes = total % 3600 // 60
    seconds = total % 60
    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{minutes:02d}:{seconds:02d}"


def format_clock(moment: datetime) -> str:
    """Short clock time, e.g. "6:00 PM" """
    hour = moment.hour % 12 or 12
    suffix = "AM" if moment.hour < 12 else "PM"
    return f"{hour}:{moment.minute:02d} {suffix}"


def clean_number(value: float) -> str:
    """Drop a trailing .0 (12.0 -> "12", 12.5 -> "12.5")"""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.1f}"
