"""
Forced-summary fallback.

When the round loop ends without any user-facing text, one extra tool-free
model call turns the collected tool results into a reply.  If that call
fails or comes back empty, a fixed apology is used: a completed request never
returns an empty message.
"""

from __future__ import annotations

import json
import logging
from typing import Sequence

from conductor.config import settings
from conductor.core.llm_client import ModelTransportError, ReasoningModel
from conductor.core.progress import ToolResult

logger = logging.getLogger(__name__)

FALLBACK_APOLOGY = "I couldn't generate a response. Please try again."

_MAX_RESULTS_CHARS = 24_000


def build_summary_prompt(context_turn: str, results: Sequence[ToolResult]) -> str:
    payload = json.dumps([r.to_dict() for r in results], default=str)
    if len(payload) > _MAX_RESULTS_CHARS:
        payload = payload[:_MAX_RESULTS_CHARS] + "…"

    if not results:
        task = (
            "Reply to the user's latest message in plain language. "
            "Do not call any tools."
        )
    elif all(not r.ok for r in results):
        task = (
            "Every tool call above failed. In 2-4 sentences, tell the user plainly what went wrong "
            "and suggest what they can do next (for example reconnecting their channel or trying "
            "again later). Do not call any tools."
        )
    else:
        task = (
            "Using the tool results above, answer the user's latest message in plain language. "
            "Summarize the key numbers and findings concisely. Do not call any tools."
        )
    return f"{context_turn}\n\nTool results:\n{payload}\n\n{task}"


class ForcedSummary:
    def __init__(self, model: ReasoningModel):
        self.model = model

    async def summarize(self, context_turn: str, results: Sequence[ToolResult]) -> str:
        prompt = build_summary_prompt(context_turn, results)
        try:
            response = await self.model.chat_completion(
                messages=[{"role": "user", "content": prompt}],
                temperature=settings.summary_temperature,
                max_tokens=settings.summary_max_tokens,
            )
        except ModelTransportError as e:
            logger.warning(f"Forced summary failed, using apology: {e}")
            return FALLBACK_APOLOGY
        except Exception:
            logger.exception("Forced summary raised unexpectedly, using apology")
            return FALLBACK_APOLOGY
        text = response.text
        if not text:
            logger.warning("Forced summary returned no text, using apology")
            return FALLBACK_APOLOGY
        return text
