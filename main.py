"""
main.py
=======
FastAPI application entry point.

Start the server:
  python main.py
  OR
  uvicorn main:app --reload --host 0.0.0.0 --port 8000
"""
import os
import sys
from contextlib import asynccontextmanager

from dotenv import load_dotenv
load_dotenv()   # load .env BEFORE importing anything that reads config

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.config import STUDY_STORE_FILE
from core.errors import StudyAssistantError
from routers.doubt import router as doubt_router
from routers.flashcards import router as flashcards_router
from routers.generate import router as generate_router
from routers.quizzes import router as quizzes_router
from routers.tasks import router as tasks_router
from services.generation_service import make_ai_client
from services.study_store import JsonStudyStore


# ── Startup env validation ─────────────────────────────────────────────────────
# Check the EXACT variable names that config.py reads from .env
REQUIRED_ENV_VARS = [
    "AI_GATEWAY_API_KEY",
]

def validate_env():
    missing = [var for var in REQUIRED_ENV_VARS if not os.getenv(var)]
    if missing:
        print("\n❌ ERROR: Missing required environment variables in your .env file:")
        for var in missing:
            print(f"   - {var}")
        print("\nCopy .env.example to .env and fill in all values.")
        print("Make sure the variable names match EXACTLY as listed above.\n")
        sys.exit(1)


# ── Lifespan (startup / shutdown) ─────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    validate_env()
    print("[startup] ✅ Environment variables loaded.")
    app.state.ai_client = make_ai_client()
    app.state.store = JsonStudyStore(STUDY_STORE_FILE)
    print(f"[startup] ✅ Study store at {STUDY_STORE_FILE}. Server accepting requests.")
    yield
    app.state.ai_client.close()
    print("[shutdown] Server stopping.")


# ── App ───────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="Study Assistant API",
    description=(
        "Doubt solver with streamed answers, AI-generated flashcards and quizzes "
        "from uploaded notes, flashcard review, quiz grading and study tasks."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS ──────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Errors ────────────────────────────────────────────────────────────────────
@app.exception_handler(StudyAssistantError)
async def study_assistant_error_handler(request: Request, exc: StudyAssistantError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(doubt_router)
app.include_router(generate_router)
app.include_router(flashcards_router)
app.include_router(quizzes_router)
app.include_router(tasks_router)


@app.get("/health", tags=["Health"])
def health(request: Request):
    return {"status": "ok", "collections": request.app.state.store.counts()}


# ── Dev runner ────────────────────────────────────────────────────────────────
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
