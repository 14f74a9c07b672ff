"""
services/review_service.py
==========================
Quiz grading and study-session scoring.

Correctness is decided by comparing the selected option's text with
correct_answer at read time; no answer index is ever stored.
"""
from typing import Dict, Iterable, List

from models.study import AnswerResult, Difficulty, QuizResult

# Points per rating when scoring a study session; "forgot" earns nothing.
RATING_POINTS = {
    Difficulty.EASY:   3,
    Difficulty.MEDIUM: 2,
    Difficulty.HARD:   1,
    Difficulty.FORGOT: 0,
}


def _correct_indexes(question: dict) -> List[int]:
    return [i for i, option in enumerate(question["options"]) if option == question["correct_answer"]]


def is_ambiguous(options: List[str], correct_indexes: List[int]) -> bool:
    """Duplicate option text, or anything but exactly one option holding the answer."""
    return len(set(options)) != len(options) or len(correct_indexes) != 1


def grade_selection(question: dict, selected_index: int) -> AnswerResult:
    options = question["options"]
    if not 0 <= selected_index < len(options):
        raise ValueError(
            f"Option {selected_index} does not exist for question '{question['id']}'"
        )

    answer = question["correct_answer"]
    correct_indexes = _correct_indexes(question)
    ambiguous = is_ambiguous(options, correct_indexes)
    if ambiguous:
        print(
            f"[review_service] Question {question['id']} is ambiguous: "
            f"{len(correct_indexes)} option(s) match the answer, options={options!r}"
        )

    return AnswerResult(
        question_id=question["id"],
        selected_index=selected_index,
        correct=options[selected_index] == answer,
        correct_indexes=correct_indexes,
        ambiguous=ambiguous,
        explanation=question.get("explanation"),
    )


def grade_quiz(quiz_id: str, questions: List[dict], answers: Dict[str, int]) -> QuizResult:
    """Unanswered questions count as wrong."""
    results = []
    for question in questions:
        if question["id"] in answers:
            results.append(grade_selection(question, answers[question["id"]]))
            continue
        correct_indexes = _correct_indexes(question)
        results.append(AnswerResult(
            question_id=question["id"],
            correct=False,
            correct_indexes=correct_indexes,
            ambiguous=is_ambiguous(question["options"], correct_indexes),
            explanation=question.get("explanation"),
        ))

    score = sum(1 for r in results if r.correct)
    total = len(results)
    return QuizResult(
        quiz_id=quiz_id,
        score=score,
        total=total,
        percentage=round(score / total * 100) if total else 0,
        results=results,
    )


def rating_counts(ratings: Iterable[Difficulty]) -> Dict[str, int]:
    counts = {d.value: 0 for d in Difficulty}
    for rating in ratings:
        counts[Difficulty(rating).value] += 1
    return counts


def session_score(counts: Dict[str, int]) -> int:
    total = sum(counts.values())
    if not total:
        return 0
    points = sum(RATING_POINTS[Difficulty(name)] * n for name, n in counts.items())
    return round(points / (total * 3) * 100)


def decks(cards: List[dict]) -> List[dict]:
    """'All Cards' first, then one entry per subject in name order."""
    per_subject: Dict[str, int] = {}
    for card in cards:
        per_subject[card["subject"]] = per_subject.get(card["subject"], 0) + 1
    return [{"name": "All Cards", "count": len(cards)}] + [
        {"name": name, "count": per_subject[name]} for name in sorted(per_subject)
    ]
