"""
services/stream_service.py
==========================
Client side of the doubt solver: reads the /ask-doubt Server-Sent-Events
byte stream and rebuilds the assistant reply while tokens arrive.

  SSEDecoder    — bytes → content fragments (line framing, [DONE], error events, rewind)
  Conversation  — message list + {IDLE, STREAMING_REPLY} reply state
  consume_stream / DoubtClient — the async read loop and the HTTP call

Each chunk read is the only suspension point; decoding and message updates
run synchronously between reads, and the message list is always replaced
as a whole.
"""
import asyncio
import codecs
import json
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, List, Optional

import httpx

from core.config import DOUBT_SOLVER_URL, GENERATION_TIMEOUT_SECONDS, NOTES_SOURCE_LABEL
from core.errors import MalformedEvent, NoStream, RequestFailed
from models.chat import ChatMessage, Role

DATA_PREFIX   = "data: "
DONE_SENTINEL = "[DONE]"


class ReplyState(str, Enum):
    IDLE            = "idle"
    STREAMING_REPLY = "streaming_reply"


class StreamOutcome(str, Enum):
    COMPLETE = "complete"
    ABORTED  = "aborted"
    FAILED   = "failed"


# ── Conversation state ────────────────────────────────────────────────────────
class Conversation:
    """
    Messages of one doubt-solver conversation.

    A turn opens with begin_turn(); the assistant reply is created by the
    first non-empty delta and frozen by finish(). Only one turn can be in
    flight at a time.
    """

    def __init__(self):
        self.messages: List[ChatMessage] = []
        self.state = ReplyState.IDLE
        self.in_flight = False
        self.last_outcome: Optional[StreamOutcome] = None
        self._reply_index: Optional[int] = None

    def begin_turn(self, question: str) -> ChatMessage:
        if self.in_flight:
            raise RuntimeError("A reply is already streaming for this conversation")
        message = ChatMessage(role=Role.USER, content=question)
        self.messages = [*self.messages, message]
        self.in_flight = True
        self._reply_index = None
        return message

    def apply_delta(self, fragment: str, sources: Optional[List[str]] = None) -> None:
        if not fragment:
            return
        if self.state is ReplyState.IDLE:
            reply = ChatMessage(role=Role.ASSISTANT, content=fragment, sources=sources)
            self._reply_index = len(self.messages)
            self.messages = [*self.messages, reply]
            self.state = ReplyState.STREAMING_REPLY
            return

        current = self.messages[self._reply_index]
        updated = current.model_copy(update={"content": current.content + fragment})
        messages = list(self.messages)
        messages[self._reply_index] = updated
        self.messages = messages

    def finish(self, outcome: StreamOutcome) -> None:
        self.state = ReplyState.IDLE
        self.in_flight = False
        self.last_outcome = outcome
        if outcome is not StreamOutcome.COMPLETE:
            print(f"[stream_service] Reply stream ended: {outcome.value}")

    @property
    def reply(self) -> Optional[ChatMessage]:
        """Assistant message of the latest turn, if one was started."""
        if self._reply_index is None:
            return None
        return self.messages[self._reply_index]


# ── SSE framing ───────────────────────────────────────────────────────────────
def _delta_content(event: Any) -> Optional[str]:
    """choices[0].delta.content, or None when the event carries no text."""
    try:
        content = event["choices"][0]["delta"].get("content")
    except (KeyError, IndexError, TypeError, AttributeError):
        return None
    if isinstance(content, str) and content:
        return content
    return None


class SSEDecoder:
    """
    Incremental decoder for `data: <json>` event lines.

    text_buffer keeps whatever has not formed a complete line yet. A data
    line that fails to parse is put back at the front of the buffer and
    extraction stops until more bytes arrive. An `{"error": ...}` event
    raises RequestFailed.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self.text_buffer = ""
        self.done = False

    def feed(self, chunk: bytes) -> List[str]:
        if self.done:
            return []
        self.text_buffer += self._decoder.decode(chunk)

        fragments: List[str] = []
        while not self.done:
            newline_index = self.text_buffer.find("\n")
            if newline_index == -1:
                break
            line = self.text_buffer[:newline_index]
            self.text_buffer = self.text_buffer[newline_index + 1:]
            try:
                fragment = self._parse_line(line)
            except MalformedEvent:
                self.text_buffer = line + "\n" + self.text_buffer
                break
            if fragment:
                fragments.append(fragment)
        return fragments

    def _parse_line(self, line: str) -> Optional[str]:
        if line.endswith("\r"):
            line = line[:-1]
        if line.startswith(":") or not line.strip():
            return None
        if not line.startswith(DATA_PREFIX):
            return None

        payload = line[len(DATA_PREFIX):].strip()
        if payload == DONE_SENTINEL:
            self.done = True
            return None
        try:
            event = json.loads(payload)
        except json.JSONDecodeError as e:
            raise MalformedEvent(str(e)) from e
        if isinstance(event, dict) and event.get("error"):
            # the server gave up after headers were sent; nothing more follows
            self.done = True
            raise RequestFailed(None, str(event["error"]))
        return _delta_content(event)


# ── Read loop ─────────────────────────────────────────────────────────────────
class _Aborted(Exception):
    pass


async def _read(iterator: AsyncIterator[bytes]) -> Optional[bytes]:
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return None


async def _next_chunk(iterator: AsyncIterator[bytes],
                      cancel: Optional[asyncio.Event]) -> Optional[bytes]:
    """Next chunk, None at end of stream. Raises _Aborted once cancel is set."""
    if cancel is None:
        return await _read(iterator)
    if cancel.is_set():
        raise _Aborted()

    read    = asyncio.ensure_future(_read(iterator))
    stopped = asyncio.ensure_future(cancel.wait())
    done, _ = await asyncio.wait({read, stopped}, return_when=asyncio.FIRST_COMPLETED)
    if read in done:
        stopped.cancel()
        await asyncio.gather(stopped, return_exceptions=True)
        return read.result()

    read.cancel()
    await asyncio.gather(read, return_exceptions=True)
    raise _Aborted()


async def consume_stream(
    chunks: AsyncIterator[bytes],
    conversation: Conversation,
    sources: Optional[List[str]] = None,
    cancel: Optional[asyncio.Event] = None,
) -> StreamOutcome:
    """
    Feed every chunk through an SSEDecoder into the conversation.

    Stops at end of transport (a trailing partial line is dropped), at the
    [DONE] sentinel, or when `cancel` is set. An error event from the server
    raises RequestFailed with the reply frozen as FAILED. Always leaves the
    conversation IDLE with last_outcome recorded.
    """
    decoder  = SSEDecoder()
    iterator = chunks.__aiter__()
    outcome  = StreamOutcome.COMPLETE
    try:
        while not decoder.done:
            chunk = await _next_chunk(iterator, cancel)
            if chunk is None:
                break
            for fragment in decoder.feed(chunk):
                conversation.apply_delta(fragment, sources)
    except _Aborted:
        outcome = StreamOutcome.ABORTED
    except asyncio.CancelledError:
        conversation.finish(StreamOutcome.ABORTED)
        raise
    except Exception:
        conversation.finish(StreamOutcome.FAILED)
        raise

    conversation.finish(outcome)
    return outcome


# ── HTTP client ───────────────────────────────────────────────────────────────
def _error_message(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return response.text or None
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return None


def _has_no_body(response: httpx.Response) -> bool:
    return response.status_code == 204 or response.headers.get("content-length") == "0"


class DoubtClient:
    """Posts a question to /ask-doubt and streams the answer into a Conversation."""

    def __init__(self, url: str = DOUBT_SOLVER_URL,
                 http_client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self._http_client = http_client

    @asynccontextmanager
    async def _client(self):
        if self._http_client is not None:
            yield self._http_client
            return
        timeout = httpx.Timeout(GENERATION_TIMEOUT_SECONDS, read=None)
        async with httpx.AsyncClient(timeout=timeout) as client:
            yield client

    async def ask(
        self,
        conversation: Conversation,
        question: str,
        context: str = "",
        cancel: Optional[asyncio.Event] = None,
    ) -> StreamOutcome:
        conversation.begin_turn(question)
        sources = [NOTES_SOURCE_LABEL] if context.strip() else None
        payload = {"question": question, "context": context}

        try:
            async with self._client() as client:
                async with client.stream("POST", self.url, json=payload) as response:
                    if not response.is_success:
                        await response.aread()
                        raise RequestFailed(response.status_code, _error_message(response))
                    if _has_no_body(response):
                        raise NoStream()
                    return await consume_stream(response.aiter_bytes(), conversation, sources, cancel)
        except (RequestFailed, NoStream):
            if conversation.in_flight:
                conversation.finish(StreamOutcome.FAILED)
            raise
        except httpx.HTTPError as e:
            if conversation.in_flight:
                conversation.finish(StreamOutcome.FAILED)
            raise RequestFailed(None, f"Could not reach the doubt solver: {e}") from e
