"""
core/config.py
==============
Central configuration — all secrets loaded from environment variables.
Never hardcode keys here.
"""
import os
from dotenv import load_dotenv

load_dotenv()

# ── AI gateway (OpenAI-compatible chat completions) ──────────────────────────
AI_GATEWAY_URL: str     = os.getenv("AI_GATEWAY_URL", "https://ai.gateway.lovable.dev/v1")
AI_GATEWAY_API_KEY: str = os.getenv("AI_GATEWAY_API_KEY", "")
AI_MODEL: str           = os.getenv("AI_MODEL", "google/gemini-2.5-flash")

# Bounded wait on every upstream call (generation and chat stream open)
GENERATION_TIMEOUT_SECONDS: float = float(os.getenv("GENERATION_TIMEOUT_SECONDS", "60"))

# ── Study store (JSON file-based, swap for Postgres in prod) ─────────────────
STUDY_STORE_FILE: str = os.getenv("STUDY_STORE_FILE", "study_store/study.json")

# ── Doubt solver ─────────────────────────────────────────────────────────────
DOUBT_SOLVER_URL: str   = os.getenv("DOUBT_SOLVER_URL", "http://localhost:8000/ask-doubt")
NOTES_SOURCE_LABEL: str = "Your uploaded notes"

# ── Note uploads ─────────────────────────────────────────────────────────────
MAX_NOTE_CHARS: int = int(os.getenv("MAX_NOTE_CHARS", "100000"))   # per uploaded file
