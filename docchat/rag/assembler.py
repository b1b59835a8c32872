from __future__ import annotations

"""Builds the message list sent to the generative model."""

from dataclasses import dataclass
from typing import Sequence

from docchat.rag.types import ChatMessage, Turn

CONTEXT_HEADER = "Company context:\n"

DEFAULT_INSTRUCTIONS = (
    "You are a focused customer service representative.\n"
    "Only answer questions related to the provided company information.\n"
    "If the question is unrelated to the company or the context does not contain "
    "relevant information, politely say you can only help with company-related "
    "questions.\n"
    "Match the wording and tone of the context and the user when appropriate.\n"
    "Keep responses short, human and concise.\n"
    "Use emojis and light humor when appropriate.\n"
)


def extract_context(system_message: ChatMessage) -> str:
    """Return the retrieved-context section of an assembled system message."""
    _, _, context = system_message.content.partition(CONTEXT_HEADER)
    return context


@dataclass(frozen=True)
class ContextAssembler:
    """System prompt, bounded history and the current user turn.

    History is unbounded unless `max_history_turns` or `max_history_chars` is a
    positive number; when either limit applies the oldest turns are dropped first.
    """
    instructions: str = DEFAULT_INSTRUCTIONS
    max_history_turns: int | None = None
    max_history_chars: int | None = None

    def assemble(
        self,
        retrieved_context: str,
        history: Sequence[Turn],
        current_message: str,
    ) -> list[ChatMessage]:
        messages = [self.system_message(retrieved_context)]
        for turn in self.trim_history(history):
            role = "user" if turn.role == "user" else "assistant"
            messages.append(ChatMessage(role=role, content=turn.content))
        messages.append(ChatMessage(role="user", content=current_message))
        return messages

    def system_message(self, retrieved_context: str) -> ChatMessage:
        return ChatMessage(
            role="system",
            content=f"{self.instructions}{CONTEXT_HEADER}{retrieved_context or ''}",
        )

    def trim_history(self, history: Sequence[Turn]) -> list[Turn]:
        """Apply the turn and character budgets, oldest turns evicted first."""
        turns = list(history)
        if self.max_history_turns and self.max_history_turns > 0:
            turns = turns[-self.max_history_turns :]
        if self.max_history_chars and self.max_history_chars > 0:
            total = sum(len(turn.content) for turn in turns)
            while turns and total > self.max_history_chars:
                total -= len(turns.pop(0).content)
        return turns
