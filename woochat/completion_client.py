from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from .config import DEFAULT_OPENAI_API_URL
from .errors import CompletionError, ConfigurationError, RequestCancelled
from .models import CompletionMessage
from .utils import safe_json_loads

logger = logging.getLogger("woochat.completion")


class ConversationWindow:
    """Role-tagged messages sent upstream, always led by the system instruction."""

    def __init__(self, system_prompt: str) -> None:
        self._system = CompletionMessage(role="system", content=system_prompt)
        self._turns: List[CompletionMessage] = []

    @property
    def messages(self) -> List[CompletionMessage]:
        return [self._system, *self._turns]

    def history(self) -> List[CompletionMessage]:
        """Window contents without the system instruction."""
        return list(self._turns)

    def append(self, role: str, content: str) -> None:
        if role == "system":
            raise ValueError("The system instruction is fixed; only user/assistant turns can be appended")
        self._turns.append(CompletionMessage(role=role, content=content))

    def reset(self) -> None:
        self._turns = []


class CompletionClient:
    """Chat completion client with bearer auth and cooperative cancellation."""

    def __init__(
        self,
        api_key: str = "",
        model: str = "gpt-4o-mini",
        api_url: str = DEFAULT_OPENAI_API_URL,
        max_tokens: int = 1000,
        temperature: float = 0.7,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ) -> None:
        """Purpose: Configure the completion endpoint, model, and generation bounds.
        Inputs/Outputs: Inputs are credentials, model/limits, and an optional AsyncClient.
        Side Effects / State: Creates an owned AsyncClient when none is injected.
        Dependencies: httpx.
        Failure Modes: None at init; a missing key is reported by complete().
        Testing Notes: Inject a client built on httpx.MockTransport and inspect the body.
        """
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)
        self._api_key = (api_key or "").strip()
        self._model = model
        self._api_url = api_url
        self._max_tokens = max_tokens
        self._temperature = temperature

    def set_api_key(self, api_key: str) -> None:
        self._api_key = (api_key or "").strip()

    def reset(self) -> None:
        self._api_key = ""

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    def build_payload(self, messages: List[CompletionMessage]) -> Dict[str, Any]:
        return {
            "model": self._model,
            "messages": [message.model_dump() for message in messages],
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
        }

    async def complete(
        self,
        window: ConversationWindow,
        content: str,
        cancel: Optional[asyncio.Event] = None,
    ) -> str:
        """Purpose: Send the window plus a new user turn and return the top reply.
        Inputs/Outputs: Inputs are the conversation window, the assembled user content, and
            an optional cancellation event; output is the first choice's text.
        Side Effects / State: One HTTP request; on success the user turn and the reply are
            appended to the window, on any failure the window is left untouched.
        Dependencies: _post, ConversationWindow.
        Failure Modes: ConfigurationError without an API key (no request is made);
            RequestCancelled when the event fires first; CompletionError otherwise.
        Testing Notes: Set the event while the transport is blocked and expect RequestCancelled.
        """
        if not self.is_configured:
            raise ConfigurationError("OpenAI API key is not configured. Please add it in settings.")
        if cancel is not None and cancel.is_set():
            raise RequestCancelled("Request was cancelled before it was sent")

        outbound = window.messages + [CompletionMessage(role="user", content=content)]
        payload = self.build_payload(outbound)
        logger.info("completion request model=%s messages=%s", self._model, len(outbound))

        request = asyncio.ensure_future(self._post(payload))
        if cancel is None:
            data = await request
        else:
            waiter = asyncio.ensure_future(cancel.wait())
            try:
                done, _ = await asyncio.wait({request, waiter}, return_when=asyncio.FIRST_COMPLETED)
            except asyncio.CancelledError:
                request.cancel()
                raise
            finally:
                waiter.cancel()
            if request not in done or cancel.is_set():
                # Abort the pending transport call and wait for it to unwind.
                request.cancel()
                await asyncio.gather(request, return_exceptions=True)
                logger.info("completion request cancelled")
                raise RequestCancelled("Request was cancelled")
            data = request.result()

        reply = _extract_reply(data)
        window.append("user", content)
        window.append("assistant", reply)
        return reply

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Purpose: POST a completion payload and decode the JSON response.
        Inputs/Outputs: Input is the request body; output is the decoded response object.
        Side Effects / State: One HTTP request.
        Failure Modes: CompletionError for transport failures, non-2xx statuses (message
            taken from error.message when present), and undecodable bodies.
        """
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }
        try:
            response = await self._http.post(self._api_url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("completion request failed error=%s", exc)
            raise CompletionError(f"Network error: {exc}", error_type="network_error") from exc

        if response.is_error:
            body = safe_json_loads(response.text) or {}
            error = body.get("error")
            if not isinstance(error, dict):
                error = {}
            message = error.get("message") or f"HTTP error! status: {response.status_code}"
            logger.warning(
                "completion error status=%s type=%s", response.status_code, error.get("type")
            )
            raise CompletionError(
                str(message),
                status=response.status_code,
                error_type=str(error.get("type") or "unknown_error"),
                code=error.get("code"),
            )

        data = safe_json_loads(response.text)
        if data is None:
            raise CompletionError(
                "Invalid response from completion API",
                status=response.status_code,
                error_type="invalid_response",
            )
        usage = data.get("usage")
        if isinstance(usage, dict):
            logger.debug("completion usage total_tokens=%s", usage.get("total_tokens"))
        return data


def _extract_reply(data: Dict[str, Any]) -> str:
    # Only the first choice is used.
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        raise CompletionError("Completion API returned no choices", error_type="invalid_response")
    message = choices[0].get("message") if isinstance(choices[0], dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    if not isinstance(content, str):
        raise CompletionError("Completion API returned an empty message", error_type="invalid_response")
    return content.strip()
