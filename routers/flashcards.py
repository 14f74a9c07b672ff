"""
routers/flashcards.py
=====================
GET    /flashcards          — list a user's cards (filter by subject / bookmarked / difficulty)
GET    /flashcards/decks    — card counts per subject
PATCH  /flashcards/{id}     — set difficulty and/or bookmarked
POST   /flashcards/review   — save a study session's ratings and score it
"""
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Request

from models.study import Deck, Difficulty, Flashcard, FlashcardUpdate, ReviewRequest, ReviewSummary
from services.review_service import decks, rating_counts, session_score

router = APIRouter(prefix="/flashcards", tags=["Flashcards"])


@router.get("", response_model=List[Flashcard])
def list_flashcards(
    user_id: str,
    request: Request,
    subject: Optional[str] = None,
    bookmarked: Optional[bool] = None,
    difficulty: Optional[Difficulty] = None,
):
    return request.app.state.store.list_flashcards(
        user_id,
        subject=subject,
        bookmarked=bookmarked,
        difficulty=difficulty.value if difficulty else None,
    )


@router.get("/decks", response_model=List[Deck])
def list_decks(user_id: str, request: Request):
    return decks(request.app.state.store.list_flashcards(user_id))


@router.patch("/{card_id}", response_model=Flashcard)
def update_flashcard(card_id: str, body: FlashcardUpdate, request: Request):
    """Only the fields present in the body change; `"difficulty": null` clears the rating."""
    changes = body.model_dump(mode="json", exclude_unset=True)
    if changes.get("bookmarked", False) is None:
        raise HTTPException(status_code=400, detail="bookmarked must be true or false")
    if not changes:
        raise HTTPException(status_code=400, detail="Nothing to update")
    return request.app.state.store.update_flashcard(card_id, **changes)


@router.post("/review", response_model=ReviewSummary)
def review_session(body: ReviewRequest, request: Request):
    """
    One rating per reviewed card, as chosen after revealing the answer.
    Each rating is saved on its card; the score weighs easy 3, medium 2, hard 1, forgot 0.
    """
    store = request.app.state.store
    for card_id in body.ratings:
        store.get_flashcard(card_id)
    for card_id, rating in body.ratings.items():
        store.update_flashcard(card_id, difficulty=rating.value)

    counts = rating_counts(body.ratings.values())
    return ReviewSummary(counts=counts, score=session_score(counts))
