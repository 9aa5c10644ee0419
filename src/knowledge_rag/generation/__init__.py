"""
Generation — the boundary between retrieved context and the chat model.

Public API
----------
- :func:`build_system_prompt` — citation-aware system prompt for a context block.
- :func:`build_messages` — system prompt plus conversation history.
- :func:`get_chat_model` — provider-aware ``ChatOpenAI`` factory.
- :func:`stream_answer` — async token stream for a grounded answer.
"""

from knowledge_rag.generation.llm import get_chat_model, stream_answer
from knowledge_rag.generation.prompts import build_messages, build_system_prompt

__all__ = [
    "build_messages",
    "build_system_prompt",
    "get_chat_model",
    "stream_answer",
]
