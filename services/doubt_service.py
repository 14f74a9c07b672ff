"""
services/doubt_service.py
=========================
Server side of the doubt solver: builds the tutor prompt and relays the
AI gateway's streamed completion as Server-Sent-Events lines.

The upstream stream is opened before the HTTP response starts so that
rate-limit / quota errors still reach the caller as JSON errors.
"""
import json
from typing import Iterator, List

import openai
from openai import OpenAI

from core.config import AI_MODEL, GENERATION_TIMEOUT_SECONDS
from core.errors import GenerationFailed, GenerationTimeout, QuotaExceeded, RateLimited

SYSTEM_PROMPT = """
You are a friendly study tutor helping a student with their doubts.
Explain concepts clearly and step by step, using simple language first and
adding detail where it helps. Use short examples or analogies when useful.
Use markdown formatting: **bold** for key terms, bullet points for lists,
numbered lists for steps.
If the student's notes are provided, base your answer on them and say so
when the notes do not cover the question.
""".strip()

STREAM_INTERRUPTED = "Stream interrupted"


def build_messages(question: str, context: str = "") -> List[dict]:
    messages = [{"role": "system", "content": SYSTEM_PROMPT}]
    if context.strip():
        messages.append({"role": "system", "content": f"Student's notes:\n\n{context}"})
    messages.append({"role": "user", "content": question})
    return messages


def open_answer_stream(client: OpenAI, question: str, context: str = ""):
    """Start the streamed completion. Upstream failures raise before any byte is sent."""
    try:
        return client.chat.completions.create(
            model=AI_MODEL,
            messages=build_messages(question, context),
            stream=True,
            timeout=GENERATION_TIMEOUT_SECONDS,
        )
    except openai.APITimeoutError as e:
        raise GenerationTimeout() from e
    except openai.RateLimitError as e:
        raise RateLimited() from e
    except openai.APIStatusError as e:
        if e.status_code == 402:
            raise QuotaExceeded() from e
        print(f"[doubt_service] AI gateway error: HTTP {e.status_code} — {e.response.text[:200]}")
        raise GenerationFailed("Failed to get response", e.status_code, e.response.text) from e
    except openai.APIConnectionError as e:
        print(f"[doubt_service] AI gateway unreachable: {e}")
        raise GenerationFailed("Failed to get response", upstream_body=str(e)) from e


def sse_events(stream) -> Iterator[str]:
    """
    One `data:` line per upstream chunk, closed by the [DONE] sentinel.
    An upstream failure mid-answer ends the stream with an `{"error": ...}`
    event instead. The upstream stream is closed however the generator ends.
    """
    try:
        for chunk in stream:
            yield f"data: {chunk.model_dump_json(exclude_none=True)}\n\n"
    except openai.OpenAIError as e:
        # headers are already sent, so the failure travels as an event
        print(f"[doubt_service] Stream interrupted: {e}")
        yield f"data: {json.dumps({'error': STREAM_INTERRUPTED})}\n\n"
        return
    finally:
        stream.close()
    yield "data: [DONE]\n\n"
