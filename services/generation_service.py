"""
services/generation_service.py
==============================
Structured flashcard / quiz generation through the AI gateway, and the
mapping of the result into study store rows.

  - Exactly one forced tool call per request type
  - 429 / 402 / other upstream failures kept distinguishable
  - Quiz questions written only after the quiz row id is known
"""
import json
from typing import List, Tuple, Union

import openai
from openai import OpenAI
from pydantic import ValidationError

from core.config import (
    AI_GATEWAY_API_KEY,
    AI_GATEWAY_URL,
    AI_MODEL,
    GENERATION_TIMEOUT_SECONDS,
)
from core.errors import (
    GenerationFailed,
    GenerationTimeout,
    InvalidGenerationType,
    MissingCredential,
    NoSourceContent,
    NoStructuredResult,
    PartialPersistFailure,
    PersistFailed,
    QuotaExceeded,
    RateLimited,
    StoreError,
)
from models.study import (
    FlashcardSet,
    GeneratedQuiz,
    GenerationRequest,
    GenerationType,
)

GenerationResult = Union[FlashcardSet, GeneratedQuiz]


def make_ai_client() -> OpenAI:
    """Gateway client. Upstream 429s are surfaced to the user, never retried."""
    if not AI_GATEWAY_API_KEY:
        raise MissingCredential("AI_GATEWAY_API_KEY must be set.")
    return OpenAI(
        api_key=AI_GATEWAY_API_KEY,
        base_url=AI_GATEWAY_URL,
        timeout=GENERATION_TIMEOUT_SECONDS,
        max_retries=0,
    )


# ── Prompts and tool schemas ───────────────────────────────────────────────────
FLASHCARDS_PROMPT = """
You are an expert educator. Analyze the provided study material and generate flashcards from it.
Create meaningful question-answer pairs that help students learn key concepts.
Extract the main topics, definitions, important facts, and relationships from the content.
Generate between 5-15 flashcards depending on the content length.
""".strip()

QUIZ_PROMPT = """
You are an expert educator. Analyze the provided study material and create a quiz from it.
Generate multiple-choice questions that test understanding of the key concepts.
Each question should have 4 distinct options with exactly one correct answer.
The correct_answer must repeat the text of the correct option exactly.
Create between 5-10 questions depending on the content.
""".strip()

FLASHCARDS_TOOL = {
    "type": "function",
    "function": {
        "name": "generate_flashcards",
        "description": "Generate flashcards from study material",
        "parameters": {
            "type": "object",
            "properties": {
                "flashcards": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "question": {"type": "string", "description": "The question for the flashcard"},
                            "answer":   {"type": "string", "description": "The answer to the question"},
                            "subject":  {"type": "string", "description": "The subject/topic category"},
                        },
                        "required": ["question", "answer", "subject"],
                        "additionalProperties": False,
                    },
                },
            },
            "required": ["flashcards"],
            "additionalProperties": False,
        },
    },
}

QUIZ_TOOL = {
    "type": "function",
    "function": {
        "name": "generate_quiz",
        "description": "Generate quiz questions from study material",
        "parameters": {
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "A title for the quiz based on the content"},
                "questions": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "question": {"type": "string", "description": "The quiz question"},
                            "options": {
                                "type": "array",
                                "items": {"type": "string"},
                                "description": "Four possible answers",
                            },
                            "correct_answer": {
                                "type": "string",
                                "description": "The correct answer (must be one of the options)",
                            },
                            "explanation": {
                                "type": "string",
                                "description": "Brief explanation of why this is correct",
                            },
                        },
                        "required": ["question", "options", "correct_answer"],
                        "additionalProperties": False,
                    },
                },
            },
            "required": ["title", "questions"],
            "additionalProperties": False,
        },
    },
}

_SCHEMAS = {
    GenerationType.FLASHCARDS: (FLASHCARDS_PROMPT, FLASHCARDS_TOOL, FlashcardSet),
    GenerationType.QUIZ:       (QUIZ_PROMPT,       QUIZ_TOOL,       GeneratedQuiz),
}


def _generation_type(value: str) -> GenerationType:
    try:
        return GenerationType(value)
    except ValueError:
        raise InvalidGenerationType() from None


# ── Upstream call ─────────────────────────────────────────────────────────────
def _call_gateway(client: OpenAI, messages: List[dict], tool: dict):
    try:
        return client.chat.completions.create(
            model=AI_MODEL,
            messages=messages,
            tools=[tool],
            tool_choice={"type": "function", "function": {"name": tool["function"]["name"]}},
            timeout=GENERATION_TIMEOUT_SECONDS,
        )
    except openai.APITimeoutError as e:
        print(f"[generation_service] AI gateway timed out after {GENERATION_TIMEOUT_SECONDS}s")
        raise GenerationTimeout() from e
    except openai.RateLimitError as e:
        raise RateLimited() from e
    except openai.APIStatusError as e:
        if e.status_code == 402:
            raise QuotaExceeded() from e
        body = e.response.text if e.response is not None else ""
        print(f"[generation_service] AI gateway error: HTTP {e.status_code} — {body[:200]}")
        raise GenerationFailed(upstream_status=e.status_code, upstream_body=body) from e
    except openai.APIConnectionError as e:
        print(f"[generation_service] AI gateway unreachable: {e}")
        raise GenerationFailed(upstream_body=str(e)) from e


def _tool_arguments(response) -> dict:
    """Arguments of the first tool call. No tool call is a failure, not free text."""
    choices = getattr(response, "choices", None) or []
    if not choices:
        raise NoStructuredResult()
    tool_calls = choices[0].message.tool_calls or []
    function = getattr(tool_calls[0], "function", None) if tool_calls else None
    if function is None:
        raise NoStructuredResult()
    try:
        arguments = json.loads(function.arguments)
    except (TypeError, json.JSONDecodeError) as e:
        raise NoStructuredResult(f"Generated content was not valid JSON: {e}") from e
    if not isinstance(arguments, dict):
        raise NoStructuredResult("Generated content was not a JSON object")
    return arguments


def generate_content(request: GenerationRequest, client: OpenAI) -> GenerationResult:
    """
    Run one structured generation.

    Returns a FlashcardSet or a GeneratedQuiz depending on request.type.
    Empty content is rejected before anything is sent upstream.
    """
    if not request.content or not request.content.strip():
        raise NoSourceContent()
    kind = _generation_type(request.type)
    system_prompt, tool, result_model = _SCHEMAS[kind]

    messages = [
        {"role": "system", "content": system_prompt},
        {
            "role": "user",
            "content": f"Please analyze this study material and generate {kind.value}:\n\n{request.content}",
        },
    ]
    response  = _call_gateway(client, messages, tool)
    arguments = _tool_arguments(response)
    try:
        return result_model.model_validate(arguments)
    except ValidationError as e:
        raise NoStructuredResult(f"Generated {kind.value} did not match the schema: {e.error_count()} error(s)") from e


def quiz_warnings(quiz: GeneratedQuiz) -> List[str]:
    """Data-quality findings for a generated quiz, logged and returned as-is."""
    warnings = []
    for number, question in enumerate(quiz.questions, 1):
        for issue in question.quality_issues():
            warnings.append(f"Question {number}: {issue}")
    for warning in warnings:
        print(f"[generation_service] Quiz '{quiz.title}' — {warning}")
    return warnings


# ── Persistence mapping ───────────────────────────────────────────────────────
def persist_flashcards(result: FlashcardSet, store, owner_id: str, source_name: str) -> List[dict]:
    rows = [
        {
            "owner_id":    owner_id,
            "question":    card.question,
            "answer":      card.answer,
            "subject":     card.subject,
            "source_name": source_name,
            "difficulty":  None,
            "bookmarked":  False,
        }
        for card in result.flashcards
    ]
    if not rows:
        return []
    try:
        return store.insert_flashcards(rows)
    except StoreError as e:
        raise PersistFailed(str(e)) from e


def persist_quiz(result: GeneratedQuiz, store, owner_id: str, source_name: str) -> Tuple[dict, List[dict]]:
    try:
        quiz = store.insert_quiz({
            "owner_id":    owner_id,
            "title":       result.title,
            "source_name": source_name,
        })
    except StoreError as e:
        raise PersistFailed(str(e)) from e

    rows = [
        {
            "question":       q.question,
            "options":        q.options,
            "correct_answer": q.correct_answer,
            "explanation":    q.explanation,
        }
        for q in result.questions
    ]
    if not rows:
        return quiz, []
    try:
        questions = store.insert_quiz_questions(quiz["id"], rows)
    except StoreError as e:
        print(f"[generation_service] Quiz {quiz['id']} saved without its questions: {e}")
        raise PartialPersistFailure(quiz["id"], f"Quiz was created but its questions could not be saved: {e}") from e
    return quiz, questions


def generate_and_persist(request: GenerationRequest, client: OpenAI, store,
                         owner_id: str, source_name: str) -> dict:
    """Generate, then save. Nothing is written when generation fails."""
    result = generate_content(request, client)
    if isinstance(result, FlashcardSet):
        flashcards = persist_flashcards(result, store, owner_id, source_name)
        print(f"[generation_service] Saved {len(flashcards)} flashcard(s) from '{source_name}'")
        return {"type": GenerationType.FLASHCARDS.value, "flashcards": flashcards}

    warnings = quiz_warnings(result)
    quiz, questions = persist_quiz(result, store, owner_id, source_name)
    print(f"[generation_service] Saved quiz {quiz['id']} with {len(questions)} question(s)")
    return {
        "type":     GenerationType.QUIZ.value,
        "quiz":     {**quiz, "questions": questions},
        "warnings": warnings,
    }
