"""Spaced-repetition scheduling and review sessions for flashcard decks."""
