"""Interval scheduling for the two rating scales.

The coarse scale is the three-button review (again / good / easy); the fine
scale is the 0-5 quality score used when studying. Both run through the same
``Scheduler`` and share one interval cap taken from :class:`Settings`.
"""

import math
from datetime import datetime, timedelta
from typing import Optional, Union

from .config import Settings
from .errors import InvalidRatingError
from .models import CoarseRating, RatingScale, Schedule, ensure_utc

Rating = Union[int, str, CoarseRating]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class Scheduler:
    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()

    def parse_rating(self, rating: Rating, scale: RatingScale) -> Union[int, CoarseRating]:
        """Validates *rating* against *scale*. Out-of-range values are rejected, never clamped."""
        if scale == RatingScale.COARSE:
            if isinstance(rating, CoarseRating):
                return rating
            if isinstance(rating, str):
                try:
                    return CoarseRating(rating.strip().lower())
                except ValueError:
                    pass
            raise InvalidRatingError(f"Rating must be one of again/good/easy, got {rating!r}")

        # bool is an int subclass; True is not a quality score
        if isinstance(rating, bool) or not isinstance(rating, int):
            raise InvalidRatingError(f"Quality must be an integer, got {rating!r}")
        if not 0 <= rating <= self.settings.max_quality:
            raise InvalidRatingError(
                f"Quality must be between 0 and {self.settings.max_quality}, got {rating}"
            )
        return rating

    def next_interval(self, current_interval: int, rating: Rating,
                      scale: Optional[RatingScale] = None) -> int:
        if isinstance(current_interval, bool) or not isinstance(current_interval, int) or current_interval < 0:
            raise InvalidRatingError(f"Current interval must be a non-negative integer, got {current_interval!r}")

        scale = scale or self.settings.default_scale
        parsed = self.parse_rating(rating, scale)

        if scale == RatingScale.COARSE:
            if parsed == CoarseRating.AGAIN:
                interval = 1
            elif parsed == CoarseRating.GOOD:
                interval = max(1, _round_half_up(current_interval * self.settings.good_multiplier))
            else:
                interval = max(1, _round_half_up(current_interval * self.settings.easy_multiplier))
        else:
            if parsed < self.settings.passing_quality:
                interval = 1
            elif current_interval == 0:
                interval = 1
            elif current_interval == 1:
                interval = self.settings.second_interval
            else:
                factor = (self.settings.fine_base_factor
                          + (parsed - self.settings.passing_quality) * self.settings.fine_quality_step)
                interval = max(1, _round_half_up(current_interval * factor))

        if self.settings.interval_cap is not None:
            interval = min(interval, self.settings.interval_cap)
        return interval

    def compute_next(self, current_interval: int, rating: Rating, now: datetime,
                     scale: Optional[RatingScale] = None) -> Schedule:
        """Proposes the next (interval, next_review) for a card.

        ``now`` keeps its time of day; the due date is exactly ``interval``
        days later.
        """
        interval = self.next_interval(current_interval, rating, scale)
        return Schedule(interval=interval, next_review=ensure_utc(now) + timedelta(days=interval))


_default = Scheduler()


def compute_next(current_interval: int, rating: Rating, now: datetime,
                 scale: Optional[RatingScale] = None) -> Schedule:
    return _default.compute_next(current_interval, rating, now, scale)
