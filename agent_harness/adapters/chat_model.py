"""LangChain chat-model adapters for the Generator collaborator.

ChatModelGenerator turns a Conversation into LangChain messages, binds the
tools whose names are currently available, invokes the model, and reads
text, tool calls and token usage back into a Generation.

Usage:
    generator = ChatModelGenerator(default_chat_model(), tools=[run_tests, edit_file])
    result = TurnLimitedLoop().execute("Fix the build", generator, ["run_tests"])
"""

from __future__ import annotations

import logging
import os
from typing import Any, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from agent_harness.config import settings
from agent_harness.domain.conversation import ActionRequest, Conversation, Generation, Message, MessageRole

logger = logging.getLogger(__name__)


def default_chat_model():
    """Create a Gemini chat model from environment config."""
    from langchain_google_genai import ChatGoogleGenerativeAI

    api_key = os.environ.get("GOOGLE_API_KEY") or os.environ.get("HARNESS_GEMINI_API_KEY")
    if not api_key:
        raise RuntimeError(
            "Gemini API key not found. Set GOOGLE_API_KEY or HARNESS_GEMINI_API_KEY "
            "in your environment variables."
        )

    return ChatGoogleGenerativeAI(
        model=settings.gemini_model,
        google_api_key=api_key,
        temperature=settings.gemini_temperature,
        max_output_tokens=settings.gemini_max_output_tokens,
    )


def to_langchain_messages(messages: Sequence[Message]) -> list[BaseMessage]:
    """Map harness messages onto LangChain message classes.

    Tool results carry no call id in a Conversation, so they are sent as
    user turns prefixed with ``[tool]``.
    """
    converted: list[BaseMessage] = []
    for message in messages:
        if message.role == MessageRole.SYSTEM:
            converted.append(SystemMessage(content=message.content))
        elif message.role == MessageRole.ASSISTANT:
            converted.append(AIMessage(content=message.content))
        elif message.role == MessageRole.TOOL:
            converted.append(HumanMessage(content=f"[tool] {message.content}"))
        else:
            converted.append(HumanMessage(content=message.content))
    return converted


def response_text(response: Any) -> str:
    """Plain text of a chat-model response, joining multi-part content."""
    content = response.content if hasattr(response, "content") else response
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(str(part.get("text", "")))
        return "".join(parts)
    return str(content)


def _tool_name(tool: Any) -> str | None:
    if isinstance(tool, dict):
        return tool.get("name") or tool.get("function", {}).get("name")
    return getattr(tool, "name", None) or getattr(tool, "__name__", None)


class ChatModelGenerator:
    """Generator backed by a langchain_core BaseChatModel."""

    def __init__(self, model: Any, tools: Sequence[Any] = ()) -> None:
        self._model = model
        self._tools = list(tools)

    def generate(self, conversation: Conversation, available_actions: Sequence[str]) -> Generation:
        allowed = set(available_actions)
        tools = [tool for tool in self._tools if _tool_name(tool) in allowed]

        model = self._model.bind_tools(tools) if tools else self._model
        response = model.invoke(to_langchain_messages(conversation.messages))

        actions = [
            ActionRequest(name=call["name"], arguments=call.get("args") or {}, id=call.get("id"))
            for call in getattr(response, "tool_calls", None) or []
        ]
        usage = getattr(response, "usage_metadata", None) or {}
        tokens = int(usage.get("total_tokens", 0))

        logger.debug("Model responded: %d tool calls, %d tokens", len(actions), tokens)
        return Generation(text=response_text(response), requested_actions=actions, tokens_used=tokens)
