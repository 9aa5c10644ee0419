"""Prompt templates for grounded, cited answers.

The retriever produces a context block whose entries are numbered
``[1]``, ``[2]``, …; the system prompt tells the model to cite with the
same markers.
"""

from __future__ import annotations

from typing import Any

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

ANSWER_SYSTEM = """\
You are a helpful assistant that answers questions using the user's knowledge base.

Below are numbered excerpts retrieved from the knowledge base. Each ends
with its source document title and a similarity score.

{context}

Guidelines:
- Answer using ONLY the excerpts above.
- Cite every claim with the excerpt number in square brackets, e.g. [1] or [2][3].
- If the excerpts do not contain the answer, say so plainly instead of guessing.
"""

NO_CONTEXT_SYSTEM = """\
You are a helpful assistant that answers questions using the user's knowledge base.

No matching content was found in the knowledge base for this question.
Tell the user that nothing relevant was found in their documents. Do not
invent sources or citations; you may suggest rephrasing the question or
adding documents that cover the topic.
"""

_ROLE_TO_MESSAGE = {
    "user": HumanMessage,
    "assistant": AIMessage,
    "system": SystemMessage,
}


def build_system_prompt(context: str) -> str:
    """System prompt embedding *context*, or a no-content notice when empty."""
    if not context.strip():
        return NO_CONTEXT_SYSTEM
    return ANSWER_SYSTEM.format(context=context)


def build_messages(history: list[dict[str, Any]], context: str) -> list[BaseMessage]:
    """Convert ``[{"role", "content"}]`` history into LangChain messages.

    The system prompt built from *context* always comes first.
    """
    messages: list[BaseMessage] = [SystemMessage(content=build_system_prompt(context))]
    for turn in history:
        role = turn.get("role", "user")
        try:
            message_cls = _ROLE_TO_MESSAGE[role]
        except KeyError:
            raise ValueError(f"Unknown message role: {role!r}") from None
        messages.append(message_cls(content=turn.get("content", "")))
    return messages
