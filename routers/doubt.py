"""
routers/doubt.py
================
POST /ask-doubt — stream a tutor answer as Server-Sent-Events

Response lines: `data: {"choices":[{"delta":{"content":"..."}}], ...}`
terminated by `data: [DONE]`. An upstream failure after streaming started
ends the body with `data: {"error": "Stream interrupted"}` and no [DONE].
"""
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

from models.chat import AskDoubtRequest
from services.doubt_service import open_answer_stream, sse_events

router = APIRouter(tags=["Doubt Solver"])


@router.post("/ask-doubt")
def ask_doubt(body: AskDoubtRequest, request: Request):
    """
    Ask a free-form study question, optionally grounded in pasted notes.
    Rate-limit (429) and quota (402) errors are returned as JSON before streaming starts.
    """
    if not body.question.strip():
        raise HTTPException(status_code=400, detail="Question must not be empty")

    stream = open_answer_stream(request.app.state.ai_client, body.question, body.context)
    return StreamingResponse(
        sse_events(stream),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
