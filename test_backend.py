from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from flashdeck.config import Settings
from flashdeck.errors import SessionNotFoundError, StoreWriteError
from flashdeck.main import app, get_service
from flashdeck.models import Card
from flashdeck.services import ReviewService
from flashdeck.store import InMemoryCardStore

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

client = TestClient(app)


class FlakyStore(InMemoryCardStore):
    def __init__(self, cards):
        super().__init__(cards)
        self.fail_next_write = False

    def write_card_schedule(self, card_id, interval, next_review):
        if self.fail_next_write:
            self.fail_next_write = False
            raise StoreWriteError("connection reset")
        super().write_card_schedule(card_id, interval, next_review)


def make_card(card_id, days_overdue, deck_id="deck-1"):
    return Card(
        id=card_id,
        deck_id=deck_id,
        front_text=f"Q {card_id}",
        back_text=f"A {card_id}",
        interval=0,
        next_review=NOW - timedelta(days=days_overdue),
    )


@pytest.fixture
def store():
    store = FlakyStore([make_card("a", 2), make_card("b", 1), make_card("later", -3)])
    service = ReviewService(store, clock=lambda: NOW)
    app.dependency_overrides[get_service] = lambda: service
    yield store
    app.dependency_overrides.clear()


def start(scale="coarse"):
    response = client.post("/sessions", json={"deck_id": "deck-1", "scale": scale})
    assert response.status_code == 200
    return response.json()


def test_api_flow(store):
    # 1. Start a review of the due cards
    data = start()
    session_id = data["session_id"]
    assert data["state"] == "in_progress"
    assert data["stats"]["total_due"] == 2
    assert data["card"]["id"] == "a"
    assert data["card"]["back_text"] is None

    # 2. Rating before revealing is refused
    response = client.post(f"/sessions/{session_id}/rate", json={"rating": "good"})
    assert response.status_code == 409

    # 3. Reveal
    response = client.post(f"/sessions/{session_id}/reveal")
    assert response.status_code == 200
    assert response.json()["card"]["back_text"] == "A a"

    # 4. Rate
    response = client.post(f"/sessions/{session_id}/rate", json={"rating": "good"})
    assert response.status_code == 200
    body = response.json()
    assert body["schedule"]["interval"] == 1
    assert body["session"]["card"]["id"] == "b"
    assert store.get_card("a").interval == 1
    assert store.get_card("a").next_review == NOW + timedelta(days=1)

    # 5. Skipping the last card completes the session
    response = client.post(f"/sessions/{session_id}/skip")
    assert response.status_code == 200
    assert response.json()["state"] == "complete"
    assert response.json()["card"] is None

    response = client.post(f"/sessions/{session_id}/reveal")
    assert response.status_code == 409

    # 6. Restart
    response = client.post(f"/sessions/{session_id}/restart")
    assert response.status_code == 200
    assert response.json()["state"] == "in_progress"
    assert response.json()["card"]["id"] == "a"
    assert response.json()["card"]["interval"] == 1

    # 7. Abandon
    response = client.delete(f"/sessions/{session_id}")
    assert response.status_code == 200
    assert client.get(f"/sessions/{session_id}").status_code == 404


def test_invalid_rating_returns_422(store):
    session_id = start(scale="fine")["session_id"]
    client.post(f"/sessions/{session_id}/reveal")
    response = client.post(f"/sessions/{session_id}/rate", json={"rating": 9})
    assert response.status_code == 422
    assert client.get(f"/sessions/{session_id}").json()["revealed"] is True


def test_store_failure_is_retryable(store):
    session_id = start(scale="fine")["session_id"]
    client.post(f"/sessions/{session_id}/reveal")

    store.fail_next_write = True
    response = client.post(f"/sessions/{session_id}/rate", json={"rating": 4})
    assert response.status_code == 503
    assert response.json()["retryable"] is True

    view = client.get(f"/sessions/{session_id}").json()
    assert view["card"]["id"] == "a"
    assert view["revealed"] is True

    response = client.post(f"/sessions/{session_id}/rate", json={"rating": 4})
    assert response.status_code == 200
    assert store.get_card("a").interval == 1


def test_empty_deck_session_is_complete(store):
    response = client.post("/sessions", json={"deck_id": "empty"})
    assert response.status_code == 200
    assert response.json()["state"] == "complete"
    assert response.json()["stats"]["total_due"] == 0


def test_unknown_session_returns_404(store):
    assert client.get("/sessions/nope").status_code == 404
    assert client.post("/sessions/nope/skip").status_code == 404
    assert client.delete("/sessions/nope").status_code == 404


def test_deck_stats(store):
    response = client.get("/decks/deck-1/stats")
    assert response.status_code == 200
    assert response.json() == {"deck_id": "deck-1", "total_cards": 3, "due_cards": 2}


@pytest.mark.parametrize("rating", [True, 4.0, "4"])
def test_rating_must_be_an_integer_or_button_name(store, rating):
    session_id = start(scale="fine")["session_id"]
    client.post(f"/sessions/{session_id}/reveal")

    response = client.post(f"/sessions/{session_id}/rate", json={"rating": rating})
    assert response.status_code == 422
    assert store.get_card("a").interval == 0
    view = client.get(f"/sessions/{session_id}").json()
    assert view["card"]["id"] == "a"
    assert view["slots"] == ["revealed", "unseen"]


def test_hide_then_rate_is_refused(store):
    session_id = start()["session_id"]
    client.post(f"/sessions/{session_id}/reveal")

    response = client.post(f"/sessions/{session_id}/hide")
    assert response.status_code == 200
    assert response.json()["revealed"] is False
    assert response.json()["card"]["back_text"] is None

    response = client.post(f"/sessions/{session_id}/rate", json={"rating": "easy"})
    assert response.status_code == 409


def test_idle_sessions_are_evicted():
    clock = {"now": NOW}
    service = ReviewService(
        InMemoryCardStore([make_card("a", 1)]),
        settings=Settings(session_ttl_minutes=30),
        clock=lambda: clock["now"],
    )
    idle_id, _ = service.start_session("deck-1")
    clock["now"] = NOW + timedelta(minutes=20)
    active_id, _ = service.start_session("deck-1")

    clock["now"] = NOW + timedelta(minutes=45)
    service.get_session(active_id)
    fresh_id, _ = service.start_session("deck-1")

    assert set(service.sessions) == {active_id, fresh_id}
    with pytest.raises(SessionNotFoundError):
        service.get_session(idle_id)
