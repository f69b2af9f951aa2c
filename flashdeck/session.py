"""Review session: one pass over the cards of a deck that are due.

A session walks a fixed queue of due cards. Each slot goes
``unseen -> revealed -> rated``; the session is ``in_progress`` until every
card has been rated or the last remaining card is skipped.

Only ``start`` (fetch) and ``rate`` (write) touch the store. ``reveal``, ``hide``,
``skip`` and ``restart`` are in-memory.
"""

import logging
from datetime import datetime
from typing import List, Optional

from .errors import InvalidTransitionError, StoreError
from .models import (
    Card,
    CardView,
    RatingScale,
    Schedule,
    SessionState,
    SessionStats,
    SessionView,
    SlotState,
    ensure_utc,
)
from .scheduler import Rating, Scheduler
from .store import CardStore


class ReviewSession:
    def __init__(self, store: CardStore, deck_id: str, cards: List[Card],
                 scheduler: Optional[Scheduler] = None, scale: Optional[RatingScale] = None):
        self.store = store
        self.deck_id = deck_id
        self.scheduler = scheduler or Scheduler()
        self.scale = scale or self.scheduler.settings.default_scale

        self.queue: List[Card] = list(cards)
        # order[i] is the queue index presented at position i; skipping rotates order[cursor:]
        self._order: List[int] = list(range(len(self.queue)))
        self._slots: List[SlotState] = [SlotState.UNSEEN] * len(self.queue)
        self.cursor = 0
        self.reviewed = 0
        self.skipped = 0
        self.state = SessionState.COMPLETE if not self.queue else SessionState.IN_PROGRESS

    @classmethod
    def start(cls, store: CardStore, deck_id: str, now: datetime,
              scheduler: Optional[Scheduler] = None,
              scale: Optional[RatingScale] = None) -> "ReviewSession":
        """Fetches the cards of *deck_id* due at *now*, most overdue first."""
        now = ensure_utc(now)
        cards = store.fetch_due_cards(deck_id, now)
        # the store may not filter or order; sorted() is stable for equal due dates
        due = sorted((c for c in cards if c.next_review <= now), key=lambda c: c.next_review)
        session = cls(store, deck_id, due, scheduler=scheduler, scale=scale)
        logging.info(f"Started review of deck {deck_id}: {len(due)} cards due")
        return session

    # -- read-only helpers --

    @property
    def is_complete(self) -> bool:
        return self.state == SessionState.COMPLETE

    @property
    def remaining(self) -> int:
        return len(self.queue) - self.cursor

    @property
    def current_card(self) -> Optional[Card]:
        if self.is_complete:
            return None
        return self.queue[self._order[self.cursor]]

    @property
    def current_slot(self) -> Optional[SlotState]:
        if self.is_complete:
            return None
        return self._slots[self._order[self.cursor]]

    @property
    def revealed(self) -> bool:
        return self.current_slot == SlotState.REVEALED

    def slot_states(self) -> List[SlotState]:
        """Slot states in presentation order."""
        return [self._slots[i] for i in self._order]

    def stats(self) -> SessionStats:
        return SessionStats(
            reviewed=self.reviewed,
            skipped=self.skipped,
            total_due=len(self.queue),
            remaining=self.remaining,
        )

    def snapshot(self, session_id: Optional[str] = None) -> SessionView:
        card = self.current_card
        view = None
        if card is not None:
            view = CardView(
                id=card.id,
                front_text=card.front_text,
                back_text=card.back_text if self.revealed else None,
                interval=card.interval,
                next_review=card.next_review,
            )
        return SessionView(
            session_id=session_id,
            deck_id=self.deck_id,
            scale=self.scale,
            state=self.state,
            cursor=self.cursor,
            revealed=self.revealed,
            card=view,
            slots=self.slot_states(),
            stats=self.stats(),
        )

    # -- transitions --

    def _require_in_progress(self, action: str):
        if self.is_complete:
            raise InvalidTransitionError(f"Cannot {action}: session is complete")

    def reveal(self):
        """Shows the answer of the current card. Calling it again changes nothing."""
        self._require_in_progress("reveal")
        self._slots[self._order[self.cursor]] = SlotState.REVEALED

    def hide(self):
        """Turns a revealed card face down again. A no-op on an unseen card."""
        self._require_in_progress("hide")
        index = self._order[self.cursor]
        if self._slots[index] == SlotState.REVEALED:
            self._slots[index] = SlotState.UNSEEN

    def rate(self, rating: Rating, now: datetime) -> Schedule:
        """Schedules the current card and moves on.

        If the store write fails the session is left exactly as it was, so the
        same call can be retried.
        """
        self._require_in_progress("rate")
        index = self._order[self.cursor]
        if self._slots[index] != SlotState.REVEALED:
            raise InvalidTransitionError("Cannot rate a card before its answer is revealed")

        card = self.queue[index]
        schedule = self.scheduler.compute_next(card.interval, rating, now, self.scale)

        try:
            self.store.write_card_schedule(card.id, schedule.interval, schedule.next_review)
        except StoreError as e:
            logging.error(f"Failed to save schedule for card {card.id}: {e}")
            raise

        self.queue[index] = card.model_copy(
            update={"interval": schedule.interval, "next_review": schedule.next_review}
        )
        self._slots[index] = SlotState.RATED
        self.reviewed += 1
        self._advance()
        return schedule

    def skip(self):
        """Moves the current card behind the others without scheduling it.

        Skipping the only remaining card ends the session; that card stays due.
        """
        self._require_in_progress("skip")
        index = self._order[self.cursor]
        self._slots[index] = SlotState.UNSEEN
        self.skipped += 1

        if self.remaining > 1:
            self._order[self.cursor:] = self._order[self.cursor + 1:] + [index]
        else:
            self._advance()

    def restart(self):
        """Starts the same due set over from the first card.

        Skipped cards stay where skipping put them, and rated cards keep the
        schedule already saved.
        """
        self._slots = [SlotState.UNSEEN] * len(self.queue)
        self.cursor = 0
        self.reviewed = 0
        self.skipped = 0
        self.state = SessionState.COMPLETE if not self.queue else SessionState.IN_PROGRESS

    def _advance(self):
        self.cursor += 1
        if self.cursor >= len(self.queue):
            self.cursor = len(self.queue)
            self.state = SessionState.COMPLETE
            logging.info(f"Review of deck {self.deck_id} complete: {self.reviewed} rated, {self.skipped} skipped")
