"""Application configuration using pydantic-settings."""
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from typing import List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_DOCK_NUMBERS: List[int] = [
    *range(312, 338),
    *range(351, 358),
    *range(359, 370),
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[3] / ".env"),
        case_sensitive=False,
    )

    # Application
    app_name: str = "Dockboard API"
    log_level: str = "INFO"
    timezone: str = "Europe/Madrid"

    # Yard layout
    dock_numbers: List[int] = list(DEFAULT_DOCK_NUMBERS)
    side_count: int = 10
    side_prefix: str = "Lado"
    all_sides_label: str = "Todos"

    # SLA thresholds (minutes)
    sla_wait_warn_min: int = 15
    sla_wait_crit_min: int = 30
    sla_tope_warn_min: int = 15
    sla_tope_icon_premin: int = 5

    # Auto-assignment
    auto_assign_on_import: bool = True

    def side_names(self) -> List[str]:
        return [f"{self.side_prefix} {i}" for i in range(self.side_count)]

    def tzinfo(self):
        """
        Resolve the configured yard timezone.

        `HH:MM` values typed by operators are wall-clock times at the yard, so
        every "now" used by the SLA timers is taken in this zone.
        """
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            return ZoneInfo("UTC")

    def now(self) -> datetime:
        return datetime.now(self.tzinfo())


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
