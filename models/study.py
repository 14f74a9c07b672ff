"""
models/study.py
===============
Pydantic schemas for generated study material, persisted entities and tasks.

Generated*  — shapes returned by the AI gateway tool calls.
Flashcard / Quiz / QuizQuestion / Task — rows held by the study store.
"""
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class GenerationType(str, Enum):
    FLASHCARDS = "flashcards"
    QUIZ       = "quiz"


class Difficulty(str, Enum):
    EASY   = "easy"
    MEDIUM = "medium"
    HARD   = "hard"
    FORGOT = "forgot"


class TaskKind(str, Enum):
    FLASHCARDS = "flashcards"
    QUIZ       = "quiz"
    REVISE     = "revise"
    STUDY      = "study"
    CUSTOM     = "custom"


# ── Generation ────────────────────────────────────────────────────────────────
class GenerationRequest(BaseModel):
    content: str
    type:    str            # "flashcards" | "quiz", checked by generation_service


class GeneratedFlashcard(BaseModel):
    question: str
    answer:   str
    subject:  str


class FlashcardSet(BaseModel):
    flashcards: List[GeneratedFlashcard]


class GeneratedQuizQuestion(BaseModel):
    question:       str
    options:        List[str]
    correct_answer: str
    explanation:    Optional[str] = None

    def quality_issues(self) -> List[str]:
        """Problems a reviewer should see; none of them are auto-corrected."""
        issues = []
        if len(self.options) != 4:
            issues.append(f"expected 4 options, got {len(self.options)}")
        if len(set(self.options)) != len(self.options):
            issues.append("duplicate option text")
        if self.correct_answer not in self.options:
            issues.append("correct_answer is not one of the options")
        return issues


class GeneratedQuiz(BaseModel):
    title:     str
    questions: List[GeneratedQuizQuestion]


# ── Persisted rows ────────────────────────────────────────────────────────────
class Flashcard(BaseModel):
    id:          str
    owner_id:    str
    question:    str
    answer:      str
    subject:     str
    source_name: Optional[str] = None
    difficulty:  Optional[Difficulty] = None
    bookmarked:  bool = False
    created_at:  str


class QuizQuestion(BaseModel):
    id:             str
    quiz_id:        str
    position:       int
    question:       str
    options:        List[str]
    correct_answer: str
    explanation:    Optional[str] = None


class Quiz(BaseModel):
    id:          str
    owner_id:    str
    title:       str
    source_name: Optional[str] = None
    created_at:  str


class QuizWithQuestions(Quiz):
    questions: List[QuizQuestion] = []


class Task(BaseModel):
    id:         str
    owner_id:   str
    title:      str
    kind:       TaskKind = TaskKind.CUSTOM
    completed:  bool = False
    created_at: str


# ── API bodies ────────────────────────────────────────────────────────────────
class FlashcardUpdate(BaseModel):
    difficulty: Optional[Difficulty] = None
    bookmarked: Optional[bool] = None


class ReviewRequest(BaseModel):
    ratings: Dict[str, Difficulty]      # flashcard id → rating


class ReviewSummary(BaseModel):
    counts: Dict[str, int]
    score:  int                         # 0–100


class Deck(BaseModel):
    name:  str
    count: int


class QuizSubmission(BaseModel):
    answers: Dict[str, int]             # question id → selected option index


class AnswerResult(BaseModel):
    question_id:     str
    selected_index:  Optional[int] = None
    correct:         bool
    correct_indexes: List[int]
    ambiguous:       bool = False
    explanation:     Optional[str] = None


class QuizResult(BaseModel):
    quiz_id:    str
    score:      int
    total:      int
    percentage: int
    results:    List[AnswerResult]


class TaskCreate(BaseModel):
    user_id: str
    title:   str
    kind:    TaskKind = TaskKind.CUSTOM


class TaskList(BaseModel):
    pending:   List[Task]
    completed: List[Task]


class GeneratedFlashcardsResponse(BaseModel):
    type:       Literal["flashcards"] = "flashcards"
    flashcards: List[Flashcard]


class GeneratedQuizResponse(BaseModel):
    type:     Literal["quiz"] = "quiz"
    quiz:     QuizWithQuestions
    warnings: List[str] = Field(default_factory=list)
