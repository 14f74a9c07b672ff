"""
core/errors.py
==============
Error taxonomy shared by services and routers.

Every StudyAssistantError carries the HTTP status the API answers with;
main.py turns them into {"error": "..."} JSON bodies.
"""
from typing import Any, Dict, Optional


class StudyAssistantError(Exception):
    status_code: int = 500
    default_message: str = "Request failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message}


class MissingCredential(EnvironmentError):
    """AI gateway credential is not configured."""


# ── Streaming path ────────────────────────────────────────────────────────────
class RequestFailed(StudyAssistantError):
    status_code = 502
    default_message = "Failed to get response"

    def __init__(self, status: Optional[int], message: Optional[str] = None):
        self.status = status
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "upstream_status": self.status}


class NoStream(StudyAssistantError):
    status_code = 502
    default_message = "No response body"


class MalformedEvent(ValueError):
    """A data line that is not (yet) valid JSON. Never leaves stream_service."""


# ── Generation path ───────────────────────────────────────────────────────────
class RateLimited(StudyAssistantError):
    status_code = 429
    default_message = "Rate limit exceeded. Please try again later."


class QuotaExceeded(StudyAssistantError):
    status_code = 402
    default_message = "Usage limit reached. Please add credits."


class GenerationFailed(StudyAssistantError):
    status_code = 500
    default_message = "Failed to generate content"

    def __init__(self, message: Optional[str] = None,
                 upstream_status: Optional[int] = None,
                 upstream_body: str = ""):
        self.upstream_status = upstream_status
        self.upstream_body   = upstream_body
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error":           self.message,
            "upstream_status": self.upstream_status,
            "upstream_body":   self.upstream_body[:500],
        }


class GenerationTimeout(StudyAssistantError):
    status_code = 504
    default_message = "AI gateway did not answer in time"


class NoStructuredResult(StudyAssistantError):
    status_code = 502
    default_message = "No content generated"


class NoSourceContent(StudyAssistantError):
    status_code = 400
    default_message = "No note content to generate from"


class InvalidGenerationType(StudyAssistantError):
    status_code = 400
    default_message = "Invalid type. Must be 'flashcards' or 'quiz'"


# ── Persistence ───────────────────────────────────────────────────────────────
class StoreError(Exception):
    """Raised by the study store when it cannot read or write its file."""


class PersistFailed(StudyAssistantError):
    status_code = 500
    default_message = "Could not save generated content"


class PartialPersistFailure(StudyAssistantError):
    status_code = 500
    default_message = "Quiz was created but its questions could not be saved"

    def __init__(self, quiz_id: str, message: Optional[str] = None):
        self.quiz_id = quiz_id
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "quiz_id": self.quiz_id}


class NotFound(StudyAssistantError):
    status_code = 404
    default_message = "Not found"
