import uuid
import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Tuple

from .config import Settings
from .errors import SessionNotFoundError
from .models import DeckStats, RatingScale, Schedule, utc_now
from .scheduler import Rating, Scheduler
from .session import ReviewSession
from .store import CardStore


class ReviewService:
    """Keeps the live review sessions and hands them the current time.

    This is the only place that reads the clock; sessions and the scheduler
    always receive ``now`` explicitly.
    """

    def __init__(self, store: CardStore, settings: Optional[Settings] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.settings = settings or Settings()
        self.scheduler = Scheduler(self.settings)
        self.clock = clock or utc_now
        self.sessions: Dict[str, ReviewSession] = {}
        self._last_used: Dict[str, datetime] = {}
        self._lock = threading.Lock()

    def start_session(self, deck_id: str, scale: Optional[RatingScale] = None) -> Tuple[str, ReviewSession]:
        now = self.clock()
        session = ReviewSession.start(self.store, deck_id, now, scheduler=self.scheduler, scale=scale)
        session_id = str(uuid.uuid4())
        with self._lock:
            self.evict_idle(now)
            self.sessions[session_id] = session
            self._last_used[session_id] = now
        return session_id, session

    def get_session(self, session_id: str) -> ReviewSession:
        with self._lock:
            if session_id not in self.sessions:
                raise SessionNotFoundError(session_id)
            self._last_used[session_id] = self.clock()
            return self.sessions[session_id]

    def reveal(self, session_id: str) -> ReviewSession:
        session = self.get_session(session_id)
        session.reveal()
        return session

    def hide(self, session_id: str) -> ReviewSession:
        session = self.get_session(session_id)
        session.hide()
        return session

    def rate(self, session_id: str, rating: Rating) -> Tuple[ReviewSession, Schedule]:
        session = self.get_session(session_id)
        schedule = session.rate(rating, self.clock())
        return session, schedule

    def skip(self, session_id: str) -> ReviewSession:
        session = self.get_session(session_id)
        session.skip()
        return session

    def restart(self, session_id: str) -> ReviewSession:
        session = self.get_session(session_id)
        session.restart()
        return session

    def evict_idle(self, now: datetime) -> int:
        """Drops sessions nobody has touched for ``session_ttl_minutes``. Caller holds the lock."""
        cutoff = now - timedelta(minutes=self.settings.session_ttl_minutes)
        stale = [sid for sid, used in self._last_used.items() if used < cutoff]
        for sid in stale:
            del self.sessions[sid]
            del self._last_used[sid]
        if stale:
            logging.info(f"Evicted {len(stale)} idle review sessions")
        return len(stale)

    def abandon(self, session_id: str):
        with self._lock:
            self._last_used.pop(session_id, None)
            if self.sessions.pop(session_id, None) is None:
                raise SessionNotFoundError(session_id)
        logging.info(f"Session {session_id} abandoned")

    def get_stats(self, deck_id: str) -> DeckStats:
        due = self.store.fetch_due_cards(deck_id, self.clock())
        return DeckStats(
            deck_id=deck_id,
            total_cards=self.store.count_cards(deck_id),
            due_cards=len(due),
        )
