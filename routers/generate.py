"""
routers/generate.py
===================
POST /generate-content   — {content, type} → structured flashcards or quiz (not saved)
POST /notes/generate     — upload note files, generate, and save for a user_id
"""
from typing import List, Union

from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool

from models.study import (
    GeneratedFlashcardsResponse,
    GeneratedQuiz,
    GeneratedQuizResponse,
    GenerationRequest,
)
from services.document_service import (
    UnsupportedDocument,
    build_generation_content,
    extract_text,
    source_label,
)
from services.generation_service import (
    generate_and_persist,
    generate_content,
    quiz_warnings,
)

router = APIRouter(tags=["Generation"])


@router.post("/generate-content")
def generate(body: GenerationRequest, request: Request):
    """Returns the generated tool-call arguments as-is; quizzes also carry data-quality warnings."""
    result = generate_content(body, request.app.state.ai_client)
    payload = result.model_dump()
    if isinstance(result, GeneratedQuiz):
        payload["warnings"] = quiz_warnings(result)
    return payload


@router.post(
    "/notes/generate",
    response_model=Union[GeneratedFlashcardsResponse, GeneratedQuizResponse],
)
async def generate_from_notes(
    request: Request,
    files: List[UploadFile] = File(...),
    type: str = Form(...),
    user_id: str = Form(...),
):
    """
    Extract text from .txt / .md / .pdf notes, generate flashcards or a quiz,
    and persist them. Nothing is saved when generation fails.
    """
    documents, names = [], []
    for file in files:
        try:
            text = extract_text(file.filename or "", await file.read())
        except UnsupportedDocument as e:
            raise HTTPException(status_code=400, detail=str(e))
        documents.append((file.filename, text))
        names.append(file.filename)

    return await run_in_threadpool(
        generate_and_persist,
        GenerationRequest(content=build_generation_content(documents), type=type),
        client=request.app.state.ai_client,
        store=request.app.state.store,
        owner_id=user_id,
        source_name=source_label(names),
    )
