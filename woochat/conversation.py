"""Conversation turn lifecycle: submit, search, cancel, retry, and clear.

Turn states:
    idle -> sending -> success | aborted | failed

    - submit appends the user message before awaiting the network (optimistic).
    - success appends the assistant reply with the matched products attached.
    - aborted (the turn's cancellation event fired) appends nothing and leaves the
      error untouched.
    - failed records the error string and appends an assistant-role apology so the
      failure is visible in the transcript.

At most one turn owns the in-flight slot. A turn only releases the slot if it
still owns it, so an interrupted turn unwinding late cannot clobber its successor.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from .completion_client import CompletionClient, ConversationWindow
from .context import ContextAssembler
from .errors import RequestCancelled, WooChatError
from .models import Message, Product, StoreSettings
from .storage import KeyValueStore, MemoryStore, clear_messages, load_messages, save_messages

logger = logging.getLogger("woochat.conversation")

ERROR_REPLY_TEMPLATE = "I apologize, but I encountered an error: {error}. Please try again."
MISSING_API_KEY_REPLY = "Please configure your OpenAI API key in settings to use the chatbot."
MISSING_STORE_REPLY = (
    "Please configure your WooCommerce connection in settings to access product information."
)
FALLBACK_ERROR = "Failed to get response from AI"
PLACEHOLDER_PREFIXES = ("error-", "notice-")


@dataclass
class _Turn:
    text: str
    cancel: asyncio.Event = field(default_factory=asyncio.Event)


def _new_message(prefix: str, role: str, content: str, products: Optional[List[Product]] = None) -> Message:
    return Message(
        id=f"{prefix}-{uuid.uuid4().hex}",
        role=role,
        content=content,
        timestamp=datetime.now(timezone.utc),
        products=products or None,
    )


class ConversationManager:
    """Owns the visible transcript, the upstream window, and the in-flight turn."""

    def __init__(
        self,
        completion: CompletionClient,
        assembler: ContextAssembler,
        window: ConversationWindow,
        store: Optional[KeyValueStore] = None,
        settings: Optional[StoreSettings] = None,
    ) -> None:
        self._completion = completion
        self._assembler = assembler
        self._window = window
        self._store = store or MemoryStore()
        self.settings = settings or StoreSettings()
        self._messages: List[Message] = []
        self._error: Optional[str] = None
        self._last_user_text = ""
        self._last_was_search = False
        self._turn: Optional[_Turn] = None

    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def is_sending(self) -> bool:
        return self._turn is not None

    @property
    def last_user_text(self) -> str:
        return self._last_user_text

    def load(self) -> None:
        """Purpose: Restore the persisted transcript and reseed the upstream window.
        Inputs/Outputs: No inputs; no return value.
        Side Effects / State: Replaces messages; resets the window and replays only
            completed exchanges, i.e. a user message directly followed by a real
            assistant reply. Failed and aborted turns never reached the window live,
            so they are not replayed either.
        Failure Modes: Corrupt storage yields an empty transcript (logged by storage).
        """
        self._messages = load_messages(self._store)
        self._window.reset()
        previous: Optional[Message] = None
        for message in self._messages:
            if (
                previous is not None
                and previous.role == "user"
                and message.role == "assistant"
                and not message.id.startswith(PLACEHOLDER_PREFIXES)
            ):
                self._window.append("user", previous.content)
                self._window.append("assistant", message.content)
            previous = message
        logger.info("transcript loaded messages=%s", len(self._messages))

    def _append(self, prefix: str, role: str, content: str, products: Optional[List[Product]] = None) -> Message:
        message = _new_message(prefix, role, content, products)
        self._messages.append(message)
        save_messages(self._store, self._messages)
        return message

    def _fail(self, prefix: str, error: str, content: str) -> Message:
        self._error = error
        return self._append(prefix, "assistant", content)

    async def submit(self, text: str, interrupt: bool = False) -> Optional[Message]:
        """Purpose: Run one conversation turn for the operator's text.
        Inputs/Outputs: Inputs are the raw text and whether an in-flight turn may be
            interrupted; output is the assistant message appended, or None when the
            call was a no-op or the turn was aborted.
        Side Effects / State: Appends the user message immediately, then the reply or an
            error placeholder; persists the transcript after each append.
        Dependencies: ContextAssembler.assemble, CompletionClient.complete.
        Failure Modes: Missing credentials short-circuit with a notice before any network
            call. Upstream failures become an in-line apology plus the error string.
            Cancellation is silent. Storage errors propagate after the turn is released.
        Testing Notes: Block the transport, submit twice without interrupt, and check the
            transcript length is unchanged by the second call.
        """
        return await self._turn_for(text, interrupt, search=False)

    async def search(self, term: str, interrupt: bool = False) -> Optional[Message]:
        """Run a turn built from a store-side product search instead of the cached catalog."""
        return await self._turn_for(term, interrupt, search=True)

    async def _turn_for(self, text: str, interrupt: bool, search: bool) -> Optional[Message]:
        content = (text or "").strip()
        if not content:
            return None
        if self._turn is not None:
            if not interrupt:
                logger.info("submit ignored: a turn is already in flight")
                return None
            self.cancel()

        if not self.settings.has_api_key:
            return self._fail("notice", MISSING_API_KEY_REPLY, MISSING_API_KEY_REPLY)
        if not self.settings.has_store_credentials:
            return self._fail("notice", MISSING_STORE_REPLY, MISSING_STORE_REPLY)

        turn = _Turn(content)
        self._turn = turn
        self._last_user_text = content
        self._last_was_search = search
        self._error = None
        try:
            self._append("user", "user", content)
            return await self._run(turn, search)
        finally:
            if self._turn is turn:
                self._turn = None

    async def _run(self, turn: _Turn, search: bool) -> Optional[Message]:
        try:
            if search:
                assembled = await self._assembler.assemble_search(turn.text)
            else:
                assembled = await self._assembler.assemble(turn.text)
            if turn.cancel.is_set():
                raise RequestCancelled("Turn was cancelled during context assembly")
            reply = await self._completion.complete(self._window, assembled.content, cancel=turn.cancel)
        except RequestCancelled:
            logger.info("turn aborted")
            return None
        except WooChatError as exc:
            error = str(exc) or FALLBACK_ERROR
            logger.warning("turn failed: %s", error)
            return self._fail("error", error, ERROR_REPLY_TEMPLATE.format(error=error))
        except Exception as exc:
            logger.exception("turn failed unexpectedly")
            error = str(exc) or FALLBACK_ERROR
            return self._fail("error", error, ERROR_REPLY_TEMPLATE.format(error=error))

        self._error = None
        return self._append("assistant", "assistant", reply, assembled.products)

    def cancel(self) -> bool:
        """Abort the in-flight turn, if any; it finishes silently as aborted."""
        turn = self._turn
        if turn is None:
            return False
        turn.cancel.set()
        self._turn = None
        logger.info("in-flight turn cancelled")
        return True

    async def retry_last(self) -> Optional[Message]:
        """Purpose: Resubmit the remembered user text after dropping a trailing reply.
        Inputs/Outputs: No inputs; output as for submit, or None when it was a no-op.
        Side Effects / State: Removes the last message when it is an assistant message
            (normally the error placeholder), then reruns the same kind of turn.
        Failure Modes: No-op while a turn is in flight or before any user text was sent.
        """
        if self._turn is not None or not self._last_user_text:
            return None
        if self._messages and self._messages[-1].role == "assistant":
            self._messages.pop()
            save_messages(self._store, self._messages)
        return await self._turn_for(self._last_user_text, False, search=self._last_was_search)

    def clear(self) -> None:
        """Cancel any in-flight turn and return to an empty, error-free idle state."""
        self.cancel()
        self._messages = []
        self._last_user_text = ""
        self._last_was_search = False
        self._error = None
        self._window.reset()
        clear_messages(self._store)
        logger.info("transcript cleared")
