"""
services/study_store.py
=======================
Simple JSON-based study store (swap for Postgres in production).

Stores: { flashcards: [...], quizzes: [...], quiz_questions: [...], tasks: [...] }
Rows are plain dicts shaped like the models in models/study.py.
"""
import json
import os
import threading
import uuid
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from core.errors import NotFound, StoreError

COLLECTIONS = ("flashcards", "quizzes", "quiz_questions", "tasks")
WRITABLE_FLASHCARD_FIELDS = {"difficulty", "bookmarked"}


def new_id() -> str:
    return str(uuid.uuid4())


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class JsonStudyStore:
    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    # ── File access ───────────────────────────────────────────────────────────
    def _load(self) -> dict:
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            if not os.path.exists(self.path):
                db = {}
            else:
                with open(self.path, "r", encoding="utf-8") as f:
                    db = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Cannot read study store '{self.path}': {e}") from e
        for name in COLLECTIONS:
            db.setdefault(name, [])
        return db

    def _save(self, db: dict) -> None:
        try:
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(db, f, ensure_ascii=False, indent=2)
        except OSError as e:
            raise StoreError(f"Cannot write study store '{self.path}': {e}") from e

    @staticmethod
    def _find(rows: List[dict], row_id: str, kind: str) -> dict:
        for row in rows:
            if row["id"] == row_id:
                return row
        raise NotFound(f"{kind} '{row_id}' not found")

    # ── Flashcards ────────────────────────────────────────────────────────────
    def insert_flashcards(self, rows: Iterable[dict]) -> List[dict]:
        """Insert a batch; all rows are written in one save or not at all."""
        created = [{"id": new_id(), "created_at": now_iso(), **row} for row in rows]
        with self._lock:
            db = self._load()
            db["flashcards"].extend(created)
            self._save(db)
        return created

    def list_flashcards(
        self,
        owner_id: str,
        subject: Optional[str] = None,
        bookmarked: Optional[bool] = None,
        difficulty: Optional[str] = None,
    ) -> List[dict]:
        with self._lock:
            rows = self._load()["flashcards"]
        rows = [r for r in rows if r["owner_id"] == owner_id]
        if subject is not None:
            rows = [r for r in rows if r["subject"] == subject]
        if bookmarked is not None:
            rows = [r for r in rows if r["bookmarked"] == bookmarked]
        if difficulty is not None:
            rows = [r for r in rows if r["difficulty"] == difficulty]
        return rows

    def get_flashcard(self, card_id: str) -> dict:
        with self._lock:
            return self._find(self._load()["flashcards"], card_id, "Flashcard")

    def update_flashcard(self, card_id: str, **changes) -> dict:
        """
        Field-level update; only difficulty and bookmarked are writable.
        Fields not passed are left alone, so difficulty=None clears a rating.
        """
        unknown = set(changes) - WRITABLE_FLASHCARD_FIELDS
        if unknown:
            raise ValueError(f"Flashcard fields are not writable: {sorted(unknown)}")
        with self._lock:
            db = self._load()
            row = self._find(db["flashcards"], card_id, "Flashcard")
            row.update(changes)
            self._save(db)
            return row

    # ── Quizzes ───────────────────────────────────────────────────────────────
    def insert_quiz(self, row: dict) -> dict:
        created = {"id": new_id(), "created_at": now_iso(), **row}
        with self._lock:
            db = self._load()
            db["quizzes"].append(created)
            self._save(db)
        return created

    def insert_quiz_questions(self, quiz_id: str, rows: Iterable[dict]) -> List[dict]:
        created = [
            {"id": new_id(), "quiz_id": quiz_id, "position": position, **row}
            for position, row in enumerate(rows)
        ]
        with self._lock:
            db = self._load()
            self._find(db["quizzes"], quiz_id, "Quiz")
            db["quiz_questions"].extend(created)
            self._save(db)
        return created

    def get_quiz(self, quiz_id: str) -> dict:
        with self._lock:
            return self._find(self._load()["quizzes"], quiz_id, "Quiz")

    def list_quizzes(self, owner_id: str) -> List[dict]:
        with self._lock:
            rows = self._load()["quizzes"]
        return [r for r in rows if r["owner_id"] == owner_id]

    def list_quiz_questions(self, quiz_id: str) -> List[dict]:
        with self._lock:
            rows = self._load()["quiz_questions"]
        return sorted((r for r in rows if r["quiz_id"] == quiz_id), key=lambda r: r["position"])

    def delete_quiz(self, quiz_id: str) -> None:
        """Remove a quiz and any questions that reference it."""
        with self._lock:
            db = self._load()
            self._find(db["quizzes"], quiz_id, "Quiz")
            db["quizzes"] = [r for r in db["quizzes"] if r["id"] != quiz_id]
            db["quiz_questions"] = [r for r in db["quiz_questions"] if r["quiz_id"] != quiz_id]
            self._save(db)

    # ── Tasks ─────────────────────────────────────────────────────────────────
    def add_task(self, owner_id: str, title: str, kind: str) -> dict:
        task = {
            "id":         new_id(),
            "owner_id":   owner_id,
            "title":      title,
            "kind":       kind,
            "completed":  False,
            "created_at": now_iso(),
        }
        with self._lock:
            db = self._load()
            db["tasks"].insert(0, task)
            self._save(db)
        return task

    def list_tasks(self, owner_id: str) -> List[dict]:
        """Newest first."""
        with self._lock:
            rows = self._load()["tasks"]
        return [r for r in rows if r["owner_id"] == owner_id]

    def toggle_task(self, task_id: str) -> dict:
        with self._lock:
            db = self._load()
            task = self._find(db["tasks"], task_id, "Task")
            task["completed"] = not task["completed"]
            self._save(db)
            return task

    def delete_task(self, task_id: str) -> None:
        with self._lock:
            db = self._load()
            self._find(db["tasks"], task_id, "Task")
            db["tasks"] = [r for r in db["tasks"] if r["id"] != task_id]
            self._save(db)

    def clear_completed_tasks(self, owner_id: str) -> int:
        with self._lock:
            db = self._load()
            before = len(db["tasks"])
            db["tasks"] = [
                r for r in db["tasks"]
                if not (r["owner_id"] == owner_id and r["completed"])
            ]
            self._save(db)
            return before - len(db["tasks"])

    def counts(self) -> Dict[str, int]:
        with self._lock:
            db = self._load()
        return {name: len(db[name]) for name in COLLECTIONS}
