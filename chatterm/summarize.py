"""Context-window control: recap and reset the buffer when it grows too large."""

from __future__ import annotations

import logging
import time
from typing import Callable

from chatterm.config import SUMMARY_MAX_ATTEMPTS, SUMMARY_RETRY_WAIT
from chatterm.conversation import ConversationBuffer, Role, Turn
from chatterm.errors import MalformedResponseError, RateLimitError
from chatterm.responses.client import ResponsesClient
from chatterm.responses.types import ResponseRequest, TextInput

logger = logging.getLogger("chatterm.summarize")

SUMMARY_PREFIX = "Summary of previous messages for context: "

RECAP_INSTRUCTION = (
    "Write a detailed recap of the following dialogue. Preserve names, places, "
    "and concrete facts. The recap must be at least 100 characters and at most "
    "2048 characters long.\n\n"
)


def build_recap_prompt(turns: list[Turn]) -> str:
    lines = []
    for turn in turns:
        if turn.role is Role.SYSTEM:
            continue
        label = "User" if turn.role is Role.USER else "Assistant"
        lines.append(f"{label}: {turn.content}")
    return RECAP_INSTRUCTION + "\n".join(lines)


class Summarizer:
    """Replaces the buffer with one system turn once it reaches the window.

    The replacement is all-or-nothing: if the recap request fails the buffer
    is left exactly as it was.
    """

    def __init__(
        self,
        client: ResponsesClient,
        model: str,
        max_context_window: int,
        max_attempts: int = SUMMARY_MAX_ATTEMPTS,
        retry_wait: float = SUMMARY_RETRY_WAIT,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.model = model
        self.max_context_window = max_context_window
        self.max_attempts = max_attempts
        self.retry_wait = retry_wait
        self._sleep = sleep

    def needed(self, buffer: ConversationBuffer) -> bool:
        return buffer.cumulative_tokens >= self.max_context_window

    def summarize(self, buffer: ConversationBuffer) -> Turn:
        """Recap the buffer and reset it to the single summary turn."""
        prompt = build_recap_prompt(buffer.snapshot())
        request = ResponseRequest(model=self.model, input=TextInput(prompt), store=False)

        for attempt in range(self.max_attempts):
            try:
                # Rate limits are handled here with a fixed wait, not by the client's backoff
                response = self.client.create(request, max_retries=1)
                break
            except RateLimitError:
                if attempt == self.max_attempts - 1:
                    raise
                logger.warning(
                    "Summary rate limited, waiting %.0fs", self.retry_wait,
                    extra={"attempt": attempt + 1, "status_code": 429},
                )
                self._sleep(self.retry_wait)

        summary = response.output_text.strip()
        if not summary:
            raise MalformedResponseError("summary response contained no text")

        turn = Turn(
            role=Role.SYSTEM,
            content=SUMMARY_PREFIX + summary,
            tokens_used=response.usage.total_tokens,
        )
        logger.info(
            "Summarized %d turns (%d tokens) into %d tokens",
            len(buffer), buffer.cumulative_tokens, response.usage.total_tokens,
            extra={"response_id": response.id},
        )
        buffer.reset([turn], tokens=response.usage.total_tokens)
        return turn
