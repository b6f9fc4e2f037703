"""
Answer generation package.

Public API::

    from docqa.llm import OpenAIAnswerGenerator, ConversationTurn

    generator = OpenAIAnswerGenerator()
    async for fragment in generator.stream(system_prompt, [ConversationTurn("user", "Why?")]):
        ...
"""

from docqa.llm.generator import AnswerGenerator, ConversationTurn, OpenAIAnswerGenerator

__all__ = [
    "AnswerGenerator",
    "ConversationTurn",
    "OpenAIAnswerGenerator",
]
