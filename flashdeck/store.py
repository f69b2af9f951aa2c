import os
import uuid
import logging
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol

import pandas as pd

from .errors import CardNotFoundError, StoreReadError, StoreWriteError
from .models import Card, ensure_utc, utc_now

EPOCH = pd.Timestamp(0, tz="UTC")


class CardStore(Protocol):
    """The record store the review core reads due cards from and writes schedules to.

    Concurrent ratings of the same card resolve as last write wins.
    """

    def fetch_due_cards(self, deck_id: str, as_of: datetime) -> List[Card]:
        ...

    def write_card_schedule(self, card_id: str, interval: int, next_review: datetime) -> None:
        ...

    def count_cards(self, deck_id: str) -> int:
        ...


class InMemoryCardStore:
    def __init__(self, cards: Optional[List[Card]] = None):
        self._cards: Dict[str, Card] = {}
        self._lock = threading.Lock()
        for card in cards or []:
            self._cards[card.id] = card

    def add_card(self, deck_id: str, front_text: str, back_text: str,
                 now: Optional[datetime] = None) -> Card:
        now = ensure_utc(now) if now else utc_now()
        card = Card(
            id=str(uuid.uuid4()),
            deck_id=deck_id,
            front_text=front_text,
            back_text=back_text,
            interval=0,
            next_review=now,
            created_at=now,
        )
        with self._lock:
            self._cards[card.id] = card
        return card

    def get_card(self, card_id: str) -> Card:
        with self._lock:
            if card_id not in self._cards:
                raise CardNotFoundError(card_id)
            return self._cards[card_id]

    def fetch_due_cards(self, deck_id: str, as_of: datetime) -> List[Card]:
        as_of = ensure_utc(as_of)
        with self._lock:
            due = [c for c in self._cards.values() if c.deck_id == deck_id and c.next_review <= as_of]
        return sorted(due, key=lambda c: c.next_review)

    def write_card_schedule(self, card_id: str, interval: int, next_review: datetime) -> None:
        with self._lock:
            if card_id not in self._cards:
                raise CardNotFoundError(card_id)
            self._cards[card_id] = self._cards[card_id].model_copy(
                update={"interval": interval, "next_review": ensure_utc(next_review)}
            )

    def count_cards(self, deck_id: str) -> int:
        with self._lock:
            return sum(1 for c in self._cards.values() if c.deck_id == deck_id)


class CsvCardStore:
    """Cards kept in a CSV file, one row per card."""

    COLUMNS = ['id', 'deck_id', 'front_text', 'back_text', 'interval', 'next_review', 'created_at']

    # Older exports used these headers
    LEGACY_COLUMNS = {
        'front': 'front_text', 'question': 'front_text', 'domanda': 'front_text',
        'back': 'back_text', 'answer': 'back_text', 'risposta': 'back_text',
        'deck': 'deck_id',
    }

    def __init__(self, file_path: str = "flashcards.csv", default_deck: str = "default"):
        self.file_path = file_path
        self.default_deck = default_deck
        self.df: Optional[pd.DataFrame] = None
        self._lock = threading.RLock()

    def load(self) -> bool:
        """Loads the CSV. Returns False and starts empty when the file does not exist."""
        with self._lock:
            if not os.path.exists(self.file_path):
                logging.warning(f"File not found: {self.file_path}, starting with an empty deck store")
                self.df = pd.DataFrame(columns=self.COLUMNS)
                return False

            try:
                df = pd.read_csv(self.file_path, encoding='utf-8-sig', dtype=str, keep_default_na=False)
            except (OSError, UnicodeDecodeError, pd.errors.ParserError) as e:
                logging.error(f"Error loading CSV: {e}")
                raise StoreReadError(f"Could not read {self.file_path}: {e}") from e

            self.df = self._ensure_columns(df)
            logging.info(f"Loaded {len(self.df)} cards from {self.file_path}")
            return True

    def _ensure_columns(self, df: pd.DataFrame) -> pd.DataFrame:
        for old, new in self.LEGACY_COLUMNS.items():
            if old in df.columns and new not in df.columns:
                df[new] = df[old]

        defaults = {
            'deck_id': self.default_deck,
            'front_text': '',
            'back_text': '',
            'interval': '0',
            'next_review': '',
            'created_at': '',
        }
        for col, default in defaults.items():
            if col not in df.columns:
                df[col] = default

        if 'id' not in df.columns:
            df['id'] = ''
        missing = df['id'].isnull() | (df['id'] == '')
        if missing.any():
            df.loc[missing, 'id'] = [str(uuid.uuid4()) for _ in range(missing.sum())]

        df['interval'] = pd.to_numeric(df['interval'], errors='coerce').fillna(0).clip(lower=0).astype(int)
        df = df.fillna("")
        return df.reset_index(drop=True)

    def save_data(self):
        """Saves the DataFrame to CSV."""
        if self.df is not None:
            self.df.to_csv(self.file_path, index=False, encoding='utf-8-sig')

    def _frame(self) -> pd.DataFrame:
        if self.df is None:
            self.load()
        return self.df

    @staticmethod
    def _parse_dates(values: pd.Series) -> pd.Series:
        # Rows without a next_review have never been scheduled and count as due
        parsed = pd.to_datetime(values, errors='coerce', utc=True, format='ISO8601')
        return parsed.fillna(EPOCH)

    def _row_to_card(self, row) -> Card:
        created = pd.to_datetime(row['created_at'], errors='coerce', utc=True, format='ISO8601') if row['created_at'] else pd.NaT
        return Card(
            id=str(row['id']),
            deck_id=str(row['deck_id']),
            front_text=str(row['front_text']),
            back_text=str(row['back_text']),
            interval=int(row['interval']),
            next_review=row['next_review_dt'].to_pydatetime(),
            created_at=None if pd.isna(created) else created.to_pydatetime(),
        )

    def fetch_due_cards(self, deck_id: str, as_of: datetime) -> List[Card]:
        as_of = pd.Timestamp(ensure_utc(as_of))
        with self._lock:
            df = self._frame()
            subset = df[df['deck_id'].astype(str) == str(deck_id)].copy()
        subset['next_review_dt'] = self._parse_dates(subset['next_review'])
        due = subset[subset['next_review_dt'] <= as_of].sort_values(by='next_review_dt', kind='stable')
        return [self._row_to_card(row) for _, row in due.iterrows()]

    def write_card_schedule(self, card_id: str, interval: int, next_review: datetime) -> None:
        with self._lock:
            df = self._frame()
            matches = df.index[df['id'] == card_id].tolist()
            if not matches:
                raise CardNotFoundError(card_id)
            idx = matches[0]

            previous = (df.at[idx, 'interval'], df.at[idx, 'next_review'])
            df.at[idx, 'interval'] = int(interval)
            df.at[idx, 'next_review'] = ensure_utc(next_review).isoformat()
            try:
                self.save_data()
            except OSError as e:
                df.at[idx, 'interval'], df.at[idx, 'next_review'] = previous
                logging.error(f"Error saving schedule for card {card_id}: {e}")
                raise StoreWriteError(f"Could not save card {card_id}: {e}") from e

    def count_cards(self, deck_id: str) -> int:
        with self._lock:
            df = self._frame()
            return int((df['deck_id'].astype(str) == str(deck_id)).sum())

    def add_card(self, deck_id: str, front_text: str, back_text: str,
                 now: Optional[datetime] = None) -> Card:
        now = ensure_utc(now) if now else datetime.now(tz=timezone.utc)
        new_card = {
            'id': str(uuid.uuid4()),
            'deck_id': deck_id,
            'front_text': front_text,
            'back_text': back_text,
            'interval': 0,
            'next_review': now.isoformat(),
            'created_at': now.isoformat(),
        }
        with self._lock:
            df = self._frame()
            self.df = pd.concat([df, pd.DataFrame([new_card])], ignore_index=True)
            try:
                self.save_data()
            except OSError as e:
                self.df = df
                raise StoreWriteError(f"Could not save new card: {e}") from e
        return Card(**new_card)
