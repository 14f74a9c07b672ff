"""
scripts/ask_doubt.py
====================
Terminal doubt solver. Streams answers from a running server.

  python scripts/ask_doubt.py                 # no notes
  python scripts/ask_doubt.py notes.md        # answers grounded in notes.md

Ctrl-C while an answer is streaming stops that answer; Ctrl-C at the prompt exits.
"""
import asyncio
import os
import signal
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import DOUBT_SOLVER_URL
from core.errors import StudyAssistantError
from services.stream_service import Conversation, DoubtClient, StreamOutcome


async def _print_reply(conversation: Conversation, done: asyncio.Event) -> None:
    printed = 0
    while True:
        reply = conversation.reply
        if reply is not None and len(reply.content) > printed:
            print(reply.content[printed:], end="", flush=True)
            printed = len(reply.content)
        if done.is_set():
            return
        await asyncio.sleep(0.05)


async def main(context: str) -> None:
    client = DoubtClient(DOUBT_SOLVER_URL)
    conversation = Conversation()
    loop = asyncio.get_running_loop()

    while True:
        try:
            question = (await loop.run_in_executor(None, input, "\nYou: ")).strip()
        except (EOFError, KeyboardInterrupt):
            return
        if not question:
            continue

        cancel, done = asyncio.Event(), asyncio.Event()
        loop.add_signal_handler(signal.SIGINT, cancel.set)
        printer = asyncio.create_task(_print_reply(conversation, done))
        print("Tutor: ", end="", flush=True)
        try:
            outcome = await client.ask(conversation, question, context, cancel)
        except StudyAssistantError as e:
            outcome = None
            print(f"\n[error] {e.message}")
        finally:
            loop.remove_signal_handler(signal.SIGINT)
            done.set()
            await printer

        if outcome is StreamOutcome.ABORTED:
            print("\n[stopped]")
        elif conversation.reply is not None and conversation.reply.sources:
            print(f"\n  (sources: {', '.join(conversation.reply.sources)})")


if __name__ == "__main__":
    notes = ""
    if len(sys.argv) > 1:
        with open(sys.argv[1], "r", encoding="utf-8") as f:
            notes = f.read()
    asyncio.run(main(notes))
