"""
Chat & evidence — Pydantic Request/Response Schemas
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from docqa.llm.generator import ConversationTurn


class ChatMessage(BaseModel):
    role:    Literal["user", "assistant", "system"]
    content: str = ""

    def to_turn(self) -> ConversationTurn:
        return ConversationTurn(role=self.role, content=self.content)


class ChatRequest(BaseModel):
    """
    The whole conversation so far; the question is the last user message.
    The response is a text/plain stream ending with the ``Sources:`` block.
    """
    messages: list[ChatMessage] = Field(default_factory=list)


class EvidenceResponse(BaseModel):
    filename:    str
    chunk_index: int
    content:     str
