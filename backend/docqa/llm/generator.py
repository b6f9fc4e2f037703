"""
Answer generation — streamed chat completion

The generator receives the grounded system prompt (see
``docqa.rag.citations.build_grounded_context``) plus the conversation so far
and yields text fragments as the model produces them. The concatenation of
all fragments is the complete answer, including the trailing ``Sources:``
block the prompt asks for; callers must not assume fragment boundaries line
up with words or lines.

    system prompt + turns ──▶ ChatOpenAI.astream() ──▶ "The sky" " is blue [S1]" ...
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from docqa.core.config import Settings, settings as default_settings
from docqa.core.errors import GenerationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversationTurn:
    role:    str        # "user" | "assistant" | "system"
    content: str


def last_user_text(turns: Sequence[ConversationTurn]) -> str:
    """Text of the most recent user turn, or "" when there is none."""
    for turn in reversed(turns):
        if turn.role == "user" and turn.content:
            return turn.content
    return ""


def build_messages(system_prompt: str, turns: Sequence[ConversationTurn]) -> list[BaseMessage]:
    """
    [SystemMessage, ...conversation] in LangChain message form.

    Client-sent "system" turns are dropped; the grounded prompt is the only
    system instruction the model sees.
    """
    messages: list[BaseMessage] = [SystemMessage(content=system_prompt)]
    for turn in turns:
        if turn.role == "user":
            messages.append(HumanMessage(content=turn.content))
        elif turn.role == "assistant":
            messages.append(AIMessage(content=turn.content))
    return messages


class AnswerGenerator(ABC):

    @abstractmethod
    def stream(
        self, system_prompt: str, turns: Sequence[ConversationTurn],
    ) -> AsyncIterator[str]:
        """Yield answer fragments in order."""


class OpenAIAnswerGenerator(AnswerGenerator):
    """Streaming generation through langchain-openai's ChatOpenAI."""

    def __init__(self, cfg: Settings | None = None, llm=None) -> None:
        self._cfg = cfg or default_settings
        self._llm = llm or self._build_llm(self._cfg)

    @staticmethod
    def _build_llm(cfg: Settings):
        from langchain_openai import ChatOpenAI
        return ChatOpenAI(
            model=cfg.llm_model,
            api_key=cfg.openai_api_key or None,
            temperature=cfg.llm_temperature,
            streaming=True,
        )

    async def stream(
        self, system_prompt: str, turns: Sequence[ConversationTurn],
    ) -> AsyncIterator[str]:
        messages = build_messages(system_prompt, turns)
        t0 = time.perf_counter()
        produced = 0

        try:
            async for chunk in self._llm.astream(messages):
                token = chunk.content if isinstance(chunk.content, str) else ""
                if token:
                    produced += len(token)
                    yield token
        except Exception as exc:
            logger.exception("Generation failed | model=%s chars_so_far=%d", self._cfg.llm_model, produced)
            raise GenerationError("The language model request failed.", detail=str(exc)) from exc

        logger.info(
            "Generation done | model=%s chars=%d latency_ms=%.1f",
            self._cfg.llm_model, produced, (time.perf_counter() - t0) * 1000,
        )
