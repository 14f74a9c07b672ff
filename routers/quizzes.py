"""
routers/quizzes.py
==================
GET    /quizzes               — list a user's quizzes
GET    /quizzes/{id}          — quiz with its questions in order
POST   /quizzes/{id}/submit   — grade selected option indexes
DELETE /quizzes/{id}          — remove a quiz and its questions (also cleans up partial saves)
"""
from typing import List

from fastapi import APIRouter, HTTPException, Request

from models.study import Quiz, QuizResult, QuizSubmission, QuizWithQuestions
from services.review_service import grade_quiz

router = APIRouter(prefix="/quizzes", tags=["Quizzes"])


@router.get("", response_model=List[Quiz])
def list_quizzes(user_id: str, request: Request):
    return request.app.state.store.list_quizzes(user_id)


@router.get("/{quiz_id}", response_model=QuizWithQuestions)
def get_quiz(quiz_id: str, request: Request):
    store = request.app.state.store
    quiz = store.get_quiz(quiz_id)
    return {**quiz, "questions": store.list_quiz_questions(quiz_id)}


@router.post("/{quiz_id}/submit", response_model=QuizResult)
def submit_quiz(quiz_id: str, body: QuizSubmission, request: Request):
    store = request.app.state.store
    store.get_quiz(quiz_id)
    questions = store.list_quiz_questions(quiz_id)

    unknown = set(body.answers) - {q["id"] for q in questions}
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unknown question id(s): {sorted(unknown)}")
    try:
        return grade_quiz(quiz_id, questions, body.answers)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/{quiz_id}", status_code=204)
def delete_quiz(quiz_id: str, request: Request):
    request.app.state.store.delete_quiz(quiz_id)
