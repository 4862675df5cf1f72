"""Prompt shaping and reply decoding shared by text-generation providers."""

from __future__ import annotations

import logging
from abc import abstractmethod
from dataclasses import dataclass
from typing import Any

from messagemind.analysis.parsing import Decoded, decode_label, decode_list, decode_text
from messagemind.errors import ProviderBadResponse
from messagemind.models import Priority, Sentiment
from messagemind.providers.base import (
    ANALYSIS_CAPABILITIES,
    AnalysisPayload,
    CallOptions,
    Capability,
    ProviderAdapter,
)

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a helpful AI assistant that analyzes chat conversations and answers "
    "with accurate, concise, strictly valid JSON."
)


@dataclass(frozen=True)
class PromptTemplate:
    instruction: str
    temperature: float
    max_tokens: int


PROMPTS: dict[Capability, PromptTemplate] = {
    Capability.SUMMARIZE: PromptTemplate(
        'Summarize this conversation. Return ONLY a JSON object matching {"summary": "..."}. '
        "Keep it under 100 words and focus on the main topics, key requests or questions, "
        "and any outcomes or decisions.",
        temperature=0.1,
        max_tokens=220,
    ),
    Capability.SENTIMENT: PromptTemplate(
        "Classify the overall emotional tone of this conversation. Return ONLY a JSON "
        'object matching {"sentiment": "positive|neutral|negative"}.',
        temperature=0.0,
        max_tokens=40,
    ),
    Capability.TOPICS: PromptTemplate(
        "Extract the main topics of this conversation. Return ONLY a JSON array of 3-5 "
        'short strings, e.g. ["topic1", "topic2"].',
        temperature=0.0,
        max_tokens=160,
    ),
    Capability.INSIGHTS: PromptTemplate(
        "Give 2-3 key insights about communication patterns, relationships or important "
        "themes in this conversation. Return ONLY a JSON array of strings.",
        temperature=0.15,
        max_tokens=220,
    ),
    Capability.PATTERNS: PromptTemplate(
        "Describe up to 3 communication patterns in this conversation (response pace, who "
        "drives it, how often questions come up). Return ONLY a JSON array of strings.",
        temperature=0.15,
        max_tokens=220,
    ),
    Capability.ACTION_ITEMS: PromptTemplate(
        "List up to 3 follow-up actions or open requests from this conversation. Return "
        "ONLY a JSON array of strings, or [] if there are none.",
        temperature=0.0,
        max_tokens=220,
    ),
    Capability.PRIORITY: PromptTemplate(
        "Assess how urgently this conversation needs attention. Consider urgency keywords "
        "(urgent, ASAP, important), question frequency, emotional tone and follow-up "
        'requirements. Return ONLY a JSON object matching {"priority": "high|medium|low", '
        '"urgency": 0.0-1.0, "reasoning": "short explanation"}.',
        temperature=0.0,
        max_tokens=80,
    ),
}


def build_prompt(capability: Capability, payload: AnalysisPayload) -> str:
    """Render the user prompt for one capability."""
    template = PROMPTS[capability]
    participants = ", ".join(payload.participants) or "unknown participants"
    return (
        f"{template.instruction}\n\n"
        f"Conversation ({payload.message_count} messages between {participants}):\n"
        f"{payload.text}\n\n"
        f"Respond with valid JSON and nothing else."
    )


def decode_reply(provider: str, capability: Capability, reply: str) -> Any:
    """Decode a model reply into the capability's value type.

    Raises:
        ProviderBadResponse: Every decoding step failed.
    """
    decoded: Decoded[Any]
    if capability is Capability.SUMMARIZE:
        decoded = decode_text(reply, key="summary")
    elif capability is Capability.SENTIMENT:
        decoded = decode_label(reply, [s.value for s in Sentiment], key="sentiment")
        if decoded.ok:
            decoded = Decoded.success(Sentiment(decoded.value), decoded.method)
    elif capability is Capability.PRIORITY:
        decoded = decode_label(reply, [p.value for p in Priority], key="priority")
        if decoded.ok:
            decoded = Decoded.success(Priority(decoded.value), decoded.method)
    elif capability is Capability.TOPICS:
        decoded = decode_list(reply, key="topics", limit=5)
    elif capability is Capability.INSIGHTS:
        decoded = decode_list(reply, key="insights", limit=3, min_item_length=6)
    elif capability is Capability.PATTERNS:
        decoded = decode_list(reply, key="patterns", limit=3, min_item_length=6)
    elif capability is Capability.ACTION_ITEMS:
        decoded = decode_list(reply, key="action_items", limit=3, allow_empty=True)
    else:
        decoded = Decoded.failure()

    if not decoded.ok:
        msg = f"could not decode {capability} from reply: {reply[:80]!r}"
        raise ProviderBadResponse(provider, msg)
    logger.debug("%s decoded %s via %s", provider, capability, decoded.method)
    return decoded.value


class GenerativeAdapter(ProviderAdapter):
    """Base for chat-completion style providers.

    Subclasses implement ``_complete``; this class turns each analysis
    capability into a prompt and decodes the reply.
    """

    capabilities = frozenset(ANALYSIS_CAPABILITIES)

    async def _invoke(
        self,
        capability: Capability,
        payload: AnalysisPayload | list[str],
        options: CallOptions,
    ) -> Any:
        if not isinstance(payload, AnalysisPayload):
            msg = f"{capability} expects a conversation payload"
            raise ProviderBadResponse(self.name, msg)
        template = PROMPTS[capability]
        reply = await self._complete(
            build_prompt(capability, payload),
            temperature=template.temperature,
            max_tokens=template.max_tokens,
            timeout=max(options.remaining(), 0.1),
        )
        return decode_reply(self.name, capability, reply)

    @abstractmethod
    async def _complete(
        self,
        prompt: str,
        *,
        temperature: float,
        max_tokens: int,
        timeout: float,
    ) -> str:
        """Send one prompt and return the model's text reply."""
        ...
