from pydantic import BaseModel, Field, StrictInt, StrictStr, field_validator
from typing import Optional, List, Union
from datetime import datetime, timezone
from enum import Enum


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


class RatingScale(str, Enum):
    COARSE = "coarse"  # again / good / easy buttons
    FINE = "fine"      # 0-5 quality score


class CoarseRating(str, Enum):
    AGAIN = "again"
    GOOD = "good"
    EASY = "easy"


class SlotState(str, Enum):
    UNSEEN = "unseen"
    REVEALED = "revealed"
    RATED = "rated"


class SessionState(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


class Card(BaseModel):
    id: str
    deck_id: str
    front_text: str = ""
    back_text: str = ""
    interval: int = Field(default=0, ge=0)
    next_review: datetime
    created_at: Optional[datetime] = None

    @field_validator("next_review", "created_at")
    @classmethod
    def _as_utc(cls, value):
        if value is None:
            return value
        return ensure_utc(value)


class Schedule(BaseModel):
    interval: int = Field(ge=1)
    next_review: datetime


class StartSessionRequest(BaseModel):
    deck_id: str
    scale: Optional[RatingScale] = None


class RateRequest(BaseModel):
    # strict so JSON true or 4.0 is rejected instead of coerced to a quality
    rating: Union[StrictInt, StrictStr]


class SessionStats(BaseModel):
    reviewed: int
    skipped: int
    total_due: int
    remaining: int


class CardView(BaseModel):
    id: str
    front_text: str
    back_text: Optional[str] = None  # hidden until revealed
    interval: int
    next_review: datetime


class SessionView(BaseModel):
    session_id: Optional[str] = None
    deck_id: str
    scale: RatingScale
    state: SessionState
    cursor: int
    revealed: bool
    card: Optional[CardView] = None
    slots: List[SlotState]
    stats: SessionStats


class DeckStats(BaseModel):
    deck_id: str
    total_cards: int
    due_cards: int
