from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from .config import load_settings, configure_logging
from .errors import (
    CardNotFoundError,
    ContractViolation,
    InvalidRatingError,
    SessionNotFoundError,
    StoreError,
)
from .models import DeckStats, RateRequest, SessionView, StartSessionRequest
from .services import ReviewService
from .store import CsvCardStore
import logging

settings = load_settings()
configure_logging(settings)

app = FastAPI(title="Flashdeck Review API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Singleton Service
service = ReviewService(CsvCardStore(settings.cards_file), settings=settings)


def get_service() -> ReviewService:
    return service


@app.on_event("startup")
def startup_event():
    if not service.store.load():
        logging.warning(f"No card file at {settings.cards_file}; decks start empty.")


@app.exception_handler(SessionNotFoundError)
@app.exception_handler(CardNotFoundError)
async def not_found_handler(request: Request, exc):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ContractViolation)
async def contract_violation_handler(request: Request, exc: ContractViolation):
    status = 422 if isinstance(exc, InvalidRatingError) else 409
    return JSONResponse(status_code=status, content={"detail": str(exc)})


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logging.error(f"Store failure on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503,
        content={"detail": "Could not reach the card store. Please try again.", "retryable": True},
    )


@app.post("/sessions", response_model=SessionView)
def start_session(request: StartSessionRequest, svc: ReviewService = Depends(get_service)):
    session_id, session = svc.start_session(request.deck_id, request.scale)
    return session.snapshot(session_id)


@app.get("/sessions/{session_id}", response_model=SessionView)
def get_session(session_id: str, svc: ReviewService = Depends(get_service)):
    return svc.get_session(session_id).snapshot(session_id)


@app.post("/sessions/{session_id}/reveal", response_model=SessionView)
def reveal_card(session_id: str, svc: ReviewService = Depends(get_service)):
    return svc.reveal(session_id).snapshot(session_id)


@app.post("/sessions/{session_id}/hide", response_model=SessionView)
def hide_card(session_id: str, svc: ReviewService = Depends(get_service)):
    return svc.hide(session_id).snapshot(session_id)


@app.post("/sessions/{session_id}/rate")
def rate_card(session_id: str, request: RateRequest, svc: ReviewService = Depends(get_service)):
    session, schedule = svc.rate(session_id, request.rating)
    return {"schedule": schedule, "session": session.snapshot(session_id)}


@app.post("/sessions/{session_id}/skip", response_model=SessionView)
def skip_card(session_id: str, svc: ReviewService = Depends(get_service)):
    return svc.skip(session_id).snapshot(session_id)


@app.post("/sessions/{session_id}/restart", response_model=SessionView)
def restart_session(session_id: str, svc: ReviewService = Depends(get_service)):
    return svc.restart(session_id).snapshot(session_id)


@app.delete("/sessions/{session_id}")
def abandon_session(session_id: str, svc: ReviewService = Depends(get_service)):
    svc.abandon(session_id)
    return {"success": True}


@app.get("/decks/{deck_id}/stats", response_model=DeckStats)
def get_stats(deck_id: str, svc: ReviewService = Depends(get_service)):
    return svc.get_stats(deck_id)
