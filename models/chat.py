"""
models/chat.py
==============
Pydantic schemas for the doubt solver.
ChatMessage is frozen: a growing reply is replaced, never edited in place.
"""
import uuid
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    USER      = "user"
    ASSISTANT = "assistant"


class AskDoubtRequest(BaseModel):
    question: str
    context:  str = ""     # optional pasted notes


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    id:      str = Field(default_factory=lambda: uuid.uuid4().hex)
    role:    Role
    content: str = ""
    sources: Optional[List[str]] = None   # only on assistant replies backed by notes
