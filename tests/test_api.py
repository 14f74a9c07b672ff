import asyncio
import json

import httpx
import pytest

from core.errors import RequestFailed
from services.stream_service import Conversation, DoubtClient, ReplyState, StreamOutcome
from tests.fakes import chat_chunks, interrupted_chunks, status_error, tool_call_completion

USER = "user-123"

QUIZ_PAYLOAD = {
    "title": "Cell Biology",
    "questions": [
        {
            "question": "Where is ATP mostly produced?",
            "options": ["Nucleus", "Ribosome", "Mitochondria", "Golgi"],
            "correct_answer": "Mitochondria",
            "explanation": "Oxidative phosphorylation happens there.",
        },
        {
            "question": "What holds genetic material?",
            "options": ["Nucleus", "Membrane", "Vacuole", "Wall"],
            "correct_answer": "Nucleus",
        },
    ],
}


def seed_flashcards(api, ai_client, n=3):
    ai_client.completions.response = tool_call_completion("generate_flashcards", {
        "flashcards": [
            {"question": f"Q{i}?", "answer": f"A{i}", "subject": "Biology" if i % 2 else "History"}
            for i in range(n)
        ]
    })
    response = api.post(
        "/notes/generate",
        files=[("files", ("cells.txt", b"Cells are the unit of life.", "text/plain"))],
        data={"type": "flashcards", "user_id": USER},
    )
    assert response.status_code == 200, response.text
    return response.json()["flashcards"]


def seed_quiz(api, ai_client):
    ai_client.completions.response = tool_call_completion("generate_quiz", QUIZ_PAYLOAD)
    response = api.post(
        "/notes/generate",
        files=[("files", ("cells.md", b"# Cells\nMitochondria make ATP.", "text/markdown"))],
        data={"type": "quiz", "user_id": USER},
    )
    assert response.status_code == 200, response.text
    return response.json()["quiz"]


# ── Generation ────────────────────────────────────────────────────────────────
def test_generate_content_returns_tool_arguments(api, ai_client):
    ai_client.completions.response = tool_call_completion("generate_flashcards", {
        "flashcards": [{"question": "What class do cats belong to?", "answer": "Mammals", "subject": "Biology"}]
    })

    response = api.post("/generate-content", json={
        "content": "Cats are mammals. Dogs are mammals too.", "type": "flashcards",
    })

    assert response.status_code == 200
    assert response.json() == {
        "flashcards": [{"question": "What class do cats belong to?", "answer": "Mammals", "subject": "Biology"}]
    }


def test_generate_content_quiz_carries_warnings(api, ai_client):
    ai_client.completions.response = tool_call_completion("generate_quiz", QUIZ_PAYLOAD)
    body = api.post("/generate-content", json={"content": "cells", "type": "quiz"}).json()
    assert body["title"] == "Cell Biology"
    assert body["warnings"] == []


@pytest.mark.parametrize("status, expected", [(429, 429), (402, 402), (500, 500)])
def test_generation_error_bodies(api, ai_client, status, expected):
    ai_client.completions.error = status_error(status)

    response = api.post("/generate-content", json={"content": "cells", "type": "quiz"})

    assert response.status_code == expected
    assert "error" in response.json()


def test_generation_error_messages_are_distinct(api, ai_client):
    ai_client.completions.error = status_error(429)
    rate = api.post("/generate-content", json={"content": "cells", "type": "quiz"}).json()["error"]
    ai_client.completions.error = status_error(402)
    quota = api.post("/generate-content", json={"content": "cells", "type": "quiz"}).json()["error"]

    assert rate == "Rate limit exceeded. Please try again later."
    assert quota == "Usage limit reached. Please add credits."


def test_empty_content_and_bad_type(api, ai_client):
    assert api.post("/generate-content", json={"content": " ", "type": "quiz"}).status_code == 400
    assert api.post("/generate-content", json={"content": "x", "type": "essay"}).status_code == 400
    assert ai_client.completions.calls == []


def test_notes_generate_marks_each_file(api, ai_client, store):
    ai_client.completions.response = tool_call_completion("generate_flashcards", {"flashcards": []})

    api.post(
        "/notes/generate",
        files=[
            ("files", ("a.txt", b"Alpha notes", "text/plain")),
            ("files", ("b.md", b"Beta notes", "text/markdown")),
        ],
        data={"type": "flashcards", "user_id": USER},
    )

    sent = ai_client.completions.calls[0]["messages"][1]["content"]
    assert "--- File: a.txt ---\nAlpha notes" in sent
    assert "--- File: b.md ---\nBeta notes" in sent


def test_notes_generate_rejects_unsupported_files(api, ai_client):
    response = api.post(
        "/notes/generate",
        files=[("files", ("slides.pptx", b"...", "application/octet-stream"))],
        data={"type": "quiz", "user_id": USER},
    )
    assert response.status_code == 400
    assert ai_client.completions.calls == []


def test_notes_generate_blank_file_is_no_source_content(api, ai_client, store):
    response = api.post(
        "/notes/generate",
        files=[("files", ("empty.txt", b"   ", "text/plain"))],
        data={"type": "flashcards", "user_id": USER},
    )
    assert response.status_code == 400
    assert store.list_flashcards(USER) == []


def test_partial_persist_failure_reports_quiz_id(api, ai_client, store, monkeypatch):
    from core.errors import StoreError

    def broken(quiz_id, rows):
        raise StoreError("disk full")

    monkeypatch.setattr(store, "insert_quiz_questions", broken)
    ai_client.completions.response = tool_call_completion("generate_quiz", QUIZ_PAYLOAD)

    response = api.post(
        "/notes/generate",
        files=[("files", ("cells.md", b"cells", "text/markdown"))],
        data={"type": "quiz", "user_id": USER},
    )

    assert response.status_code == 500
    quiz_id = response.json()["quiz_id"]
    assert store.get_quiz(quiz_id)["title"] == "Cell Biology"

    assert api.delete(f"/quizzes/{quiz_id}").status_code == 204
    assert store.list_quizzes(USER) == []


# ── Flashcards ────────────────────────────────────────────────────────────────
def test_flashcards_list_and_decks(api, ai_client):
    seed_flashcards(api, ai_client, n=3)

    cards = api.get("/flashcards", params={"user_id": USER}).json()
    assert len(cards) == 3
    assert api.get("/flashcards", params={"user_id": USER, "subject": "Biology"}).json()[0]["subject"] == "Biology"

    decks = api.get("/flashcards/decks", params={"user_id": USER}).json()
    assert decks == [
        {"name": "All Cards", "count": 3},
        {"name": "Biology", "count": 1},
        {"name": "History", "count": 2},
    ]


def test_flashcard_patch(api, ai_client):
    [card, *_] = seed_flashcards(api, ai_client)

    response = api.patch(f"/flashcards/{card['id']}", json={"bookmarked": True})
    assert response.json()["bookmarked"] is True
    assert response.json()["difficulty"] is None

    assert api.patch(f"/flashcards/{card['id']}", json={"difficulty": "forgot"}).json()["difficulty"] == "forgot"
    assert api.patch(f"/flashcards/{card['id']}", json={"difficulty": "trivial"}).status_code == 422
    assert api.patch(f"/flashcards/{card['id']}", json={}).status_code == 400
    assert api.patch(f"/flashcards/{card['id']}", json={"bookmarked": None}).status_code == 400
    assert api.patch("/flashcards/nope", json={"bookmarked": True}).status_code == 404

    bookmarked = api.get("/flashcards", params={"user_id": USER, "bookmarked": True}).json()
    assert [c["id"] for c in bookmarked] == [card["id"]]


def test_flashcard_patch_clears_rating(api, ai_client):
    [card, *_] = seed_flashcards(api, ai_client)
    api.patch(f"/flashcards/{card['id']}", json={"difficulty": "hard", "bookmarked": True})

    response = api.patch(f"/flashcards/{card['id']}", json={"difficulty": None})

    assert response.status_code == 200
    assert response.json()["difficulty"] is None
    assert response.json()["bookmarked"] is True


def test_review_session_saves_ratings_and_scores(api, ai_client):
    cards = seed_flashcards(api, ai_client, n=3)
    ratings = {cards[0]["id"]: "easy", cards[1]["id"]: "medium", cards[2]["id"]: "forgot"}

    summary = api.post("/flashcards/review", json={"ratings": ratings}).json()

    assert summary["counts"] == {"easy": 1, "medium": 1, "hard": 0, "forgot": 1}
    assert summary["score"] == 56
    forgot = api.get("/flashcards", params={"user_id": USER, "difficulty": "forgot"}).json()
    assert [c["id"] for c in forgot] == [cards[2]["id"]]


def test_review_with_unknown_card_changes_nothing(api, ai_client):
    [card, *_] = seed_flashcards(api, ai_client)
    response = api.post("/flashcards/review", json={"ratings": {card["id"]: "easy", "missing": "hard"}})

    assert response.status_code == 404
    assert api.get("/flashcards", params={"user_id": USER, "difficulty": "easy"}).json() == []


# ── Quizzes ───────────────────────────────────────────────────────────────────
def test_quiz_fetch_and_submit(api, ai_client):
    quiz = seed_quiz(api, ai_client)

    fetched = api.get(f"/quizzes/{quiz['id']}").json()
    assert [q["question"] for q in fetched["questions"]] == [q["question"] for q in QUIZ_PAYLOAD["questions"]]
    assert [q["id"] for q in api.get("/quizzes", params={"user_id": USER}).json()] == [quiz["id"]]

    first, second = fetched["questions"]
    result = api.post(f"/quizzes/{quiz['id']}/submit", json={"answers": {first["id"]: 2, second["id"]: 1}}).json()

    assert result["score"] == 1
    assert result["total"] == 2
    assert result["percentage"] == 50
    assert result["results"][0]["correct"] is True
    assert result["results"][1]["correct_indexes"] == [0]


def test_quiz_submit_validation(api, ai_client):
    quiz = seed_quiz(api, ai_client)
    first = api.get(f"/quizzes/{quiz['id']}").json()["questions"][0]

    assert api.post(f"/quizzes/{quiz['id']}/submit", json={"answers": {first["id"]: 9}}).status_code == 400
    assert api.post(f"/quizzes/{quiz['id']}/submit", json={"answers": {"nope": 0}}).status_code == 400
    assert api.post("/quizzes/missing/submit", json={"answers": {}}).status_code == 404


# ── Tasks ─────────────────────────────────────────────────────────────────────
def test_task_lifecycle(api):
    created = api.post("/tasks", json={"user_id": USER, "title": "  Revise Hard Cards ", "kind": "revise"})
    assert created.status_code == 201
    task = created.json()
    assert task["title"] == "Revise Hard Cards"
    api.post("/tasks", json={"user_id": USER, "title": "Take Quiz", "kind": "quiz"})

    assert api.patch(f"/tasks/{task['id']}/toggle").json()["completed"] is True
    listing = api.get("/tasks", params={"user_id": USER}).json()
    assert [t["title"] for t in listing["pending"]] == ["Take Quiz"]
    assert [t["title"] for t in listing["completed"]] == ["Revise Hard Cards"]

    assert api.delete("/tasks/completed", params={"user_id": USER}).json() == {"removed": 1}
    pending_id = listing["pending"][0]["id"]
    assert api.delete(f"/tasks/{pending_id}").status_code == 204
    assert api.get("/tasks", params={"user_id": USER}).json() == {"pending": [], "completed": []}


def test_task_validation(api):
    assert api.post("/tasks", json={"user_id": USER, "title": "   "}).status_code == 400
    assert api.post("/tasks", json={"user_id": USER, "title": "x", "kind": "party"}).status_code == 422
    assert api.patch("/tasks/missing/toggle").status_code == 404


def test_quick_add_presets(api):
    titles = [t["title"] for t in api.get("/tasks/quick-add").json()]
    assert titles == ["Review Flashcards", "Take Quiz", "Revise Hard Cards", "Study Session"]


# ── Doubt solver ──────────────────────────────────────────────────────────────
def test_ask_doubt_streams_sse_lines(api, ai_client):
    ai_client.completions.response = chat_chunks(["Light ", "is ", "scattered."])

    response = api.post("/ask-doubt", json={"question": "Why is the sky blue?", "context": "optics notes"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    lines = [line for line in response.text.split("\n") if line]
    assert lines[-1] == "data: [DONE]"
    deltas = [json.loads(line[len("data: "):])["choices"][0]["delta"]["content"] for line in lines[:-1]]
    assert deltas == ["Light ", "is ", "scattered."]

    call = ai_client.completions.calls[0]
    assert call["stream"] is True
    assert call["messages"][1]["content"].endswith("optics notes")
    assert ai_client.completions.stream.closed is True


def test_ask_doubt_upstream_failure_ends_with_error_event(api, ai_client):
    ai_client.completions.response = interrupted_chunks(["Half an "])

    response = api.post("/ask-doubt", json={"question": "Why is the sky blue?"})

    lines = [line for line in response.text.split("\n") if line]
    assert "data: [DONE]" not in lines
    assert json.loads(lines[-1][len("data: "):]) == {"error": "Stream interrupted"}
    assert ai_client.completions.stream.closed is True


def test_ask_doubt_without_notes_sends_no_notes_message(api, ai_client):
    ai_client.completions.response = chat_chunks(["ok"])
    api.post("/ask-doubt", json={"question": "Q?"})
    roles = [m["role"] for m in ai_client.completions.calls[0]["messages"]]
    assert roles == ["system", "user"]


def test_ask_doubt_rate_limited_before_streaming(api, ai_client):
    ai_client.completions.error = status_error(429)
    response = api.post("/ask-doubt", json={"question": "Q?"})
    assert response.status_code == 429
    assert response.json()["error"] == "Rate limit exceeded. Please try again later."


def test_ask_doubt_rejects_blank_question(api, ai_client):
    assert api.post("/ask-doubt", json={"question": "  "}).status_code == 400
    assert ai_client.completions.calls == []


def test_doubt_client_against_app(app, ai_client):
    ai_client.completions.response = chat_chunks(["Plants ", "make ", "food 🌿"])

    async def scenario():
        conversation = Conversation()
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://app.test") as http_client:
            client = DoubtClient("http://app.test/ask-doubt", http_client)
            outcome = await client.ask(conversation, "What is photosynthesis?", "biology notes")
        return conversation, outcome

    conversation, outcome = asyncio.run(scenario())

    assert outcome is StreamOutcome.COMPLETE
    assert conversation.reply.content == "Plants make food 🌿"
    assert conversation.reply.sources == ["Your uploaded notes"]


def test_health(api):
    body = api.get("/health").json()
    assert body["status"] == "ok"
    assert body["collections"]["flashcards"] == 0


def test_doubt_client_marks_interrupted_answer_failed(app, ai_client):
    ai_client.completions.response = interrupted_chunks(["Half an "])

    async def scenario():
        conversation = Conversation()
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://app.test") as http_client:
            client = DoubtClient("http://app.test/ask-doubt", http_client)
            with pytest.raises(RequestFailed) as info:
                await client.ask(conversation, "Why is the sky blue?")
        return conversation, info.value

    conversation, error = asyncio.run(scenario())

    assert error.status is None
    assert error.message == "Stream interrupted"
    assert conversation.reply.content == "Half an "
    assert conversation.last_outcome is StreamOutcome.FAILED
    assert conversation.state is ReplyState.IDLE
    assert conversation.in_flight is False
