import os
import logging
from typing import List, Mapping, Optional
from pydantic import BaseModel, Field, model_validator

from .models import RatingScale

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'

DEFAULT_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
]


class Settings(BaseModel):
    """Runtime configuration.

    Both rating scales share one interval cap. Set ``interval_cap`` to None to
    let intervals grow without bound.
    """

    cards_file: str = "flashcards.csv"
    log_level: str = "INFO"
    allowed_origins: List[str] = Field(default_factory=lambda: list(DEFAULT_ORIGINS))

    default_scale: RatingScale = RatingScale.FINE
    interval_cap: Optional[int] = Field(default=365, ge=1)

    # Coarse scale: again -> 1, good/easy multiply the current interval
    good_multiplier: float = Field(default=2.0, gt=0)
    easy_multiplier: float = Field(default=3.0, gt=0)

    # Fine scale: factor = fine_base_factor + (quality - passing_quality) * fine_quality_step
    passing_quality: int = 3
    max_quality: int = 5
    second_interval: int = Field(default=3, ge=1)
    fine_base_factor: float = Field(default=1.5, gt=0)
    fine_quality_step: float = 0.2
    session_ttl_minutes: int = Field(default=120, ge=1)

    @model_validator(mode="after")
    def _check_quality_range(self):
        if not 0 <= self.passing_quality <= self.max_quality:
            raise ValueError(
                f"passing_quality must be between 0 and max_quality ({self.max_quality}), got {self.passing_quality}"
            )
        return self


def _parse_cap(raw: str) -> Optional[int]:
    if raw.strip().lower() in ("", "none", "off"):
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"FLASHDECK_INTERVAL_CAP must be an integer or 'none', got {raw!r}")


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Builds Settings from FLASHDECK_* environment variables."""
    env = os.environ if environ is None else environ
    values = {}

    if "FLASHDECK_CARDS_FILE" in env:
        values["cards_file"] = env["FLASHDECK_CARDS_FILE"]
    if "FLASHDECK_LOG_LEVEL" in env:
        values["log_level"] = env["FLASHDECK_LOG_LEVEL"].upper()
    if "FLASHDECK_INTERVAL_CAP" in env:
        values["interval_cap"] = _parse_cap(env["FLASHDECK_INTERVAL_CAP"])
    if "FLASHDECK_RATING_SCALE" in env:
        try:
            values["default_scale"] = RatingScale(env["FLASHDECK_RATING_SCALE"].strip().lower())
        except ValueError:
            raise ValueError(f"Unknown rating scale: {env['FLASHDECK_RATING_SCALE']!r}")
    if "FLASHDECK_SESSION_TTL_MINUTES" in env:
        values["session_ttl_minutes"] = env["FLASHDECK_SESSION_TTL_MINUTES"]
    if "FLASHDECK_ALLOWED_ORIGINS" in env:
        values["allowed_origins"] = [o.strip() for o in env["FLASHDECK_ALLOWED_ORIGINS"].split(",") if o.strip()]

    return Settings(**values)


def configure_logging(settings: Settings):
    level = getattr(logging, settings.log_level.upper(), None)
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {settings.log_level!r}")
    logging.basicConfig(level=level, format=LOG_FORMAT)
