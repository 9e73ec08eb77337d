"""
Monitor Settings
Environment-driven tuning for the monitoring loop and persistence
"""
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MonitorSettings(BaseSettings):
    """
    Tuning knobs for one monitoring session
    Read from COOK_* environment variables (or .env); invalid values fail validation
    """
    trend_window: int = Field(default=5, ge=2)
    steady_band_f: float = Field(default=2.0, ge=0)
    tick_seconds: float = Field(default=1.0, gt=0)
    sample_queue_max: int = Field(default=100, ge=1)
    db_path: str = "cook_sessions.db"
    debug: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="COOK_",
        extra="ignore",
    )

    @classmethod
    def from_env(cls, db_path: Optional[str] = None) -> "MonitorSettings":
        """
        Build settings from the environment

        Args:
            db_path: Explicit database path (overrides COOK_DB_PATH)
        """
        if db_path:
            return cls(db_path=db_path)
        return cls()
