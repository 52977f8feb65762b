"""Tests for the LangChain chat-model adapters.

The chat model is a MagicMock; responses are SimpleNamespace objects with
the attributes LangChain's AIMessage exposes.
"""

from __future__ import annotations

import json
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from agent_harness.adapters.chat_model import (
    ChatModelGenerator,
    default_chat_model,
    response_text,
    to_langchain_messages,
)
from agent_harness.adapters.llm_jury import ChatModelJury, parse_verdict
from agent_harness.domain.conversation import Conversation, Message, MessageRole
from agent_harness.domain.run_state import RunState


def _response(content, tool_calls=None, total_tokens=None) -> SimpleNamespace:
    usage = {"total_tokens": total_tokens} if total_tokens is not None else None
    return SimpleNamespace(content=content, tool_calls=tool_calls or [], usage_metadata=usage)


class TestMessageConversion:
    def test_roles_map_to_langchain_classes(self) -> None:
        converted = to_langchain_messages([
            Message(role=MessageRole.SYSTEM, content="be brief"),
            Message(role=MessageRole.USER, content="hi"),
            Message(role=MessageRole.ASSISTANT, content="hello"),
            Message(role=MessageRole.TOOL, content="exit 0"),
        ])
        assert isinstance(converted[0], SystemMessage)
        assert isinstance(converted[1], HumanMessage)
        assert isinstance(converted[2], AIMessage)
        assert isinstance(converted[3], HumanMessage)
        assert converted[3].content == "[tool] exit 0"

    def test_response_text_joins_parts(self) -> None:
        response = SimpleNamespace(content=["a", {"type": "text", "text": "b"}, {"type": "image"}])
        assert response_text(response) == "ab"
        assert response_text(SimpleNamespace(content="plain")) == "plain"


class TestChatModelGenerator:
    def test_reads_text_tool_calls_and_tokens(self) -> None:
        model = MagicMock()
        bound = MagicMock()
        model.bind_tools.return_value = bound
        bound.invoke.return_value = _response(
            "running tests",
            tool_calls=[{"name": "run_tests", "args": {"path": "tests"}, "id": "call-1"}],
            total_tokens=321,
        )
        run_tests = SimpleNamespace(name="run_tests")
        deploy = SimpleNamespace(name="deploy")

        generator = ChatModelGenerator(model, tools=[run_tests, deploy])
        generation = generator.generate(Conversation.from_prompt("go"), ["run_tests"])

        model.bind_tools.assert_called_once_with([run_tests])
        assert generation.text == "running tests"
        assert generation.tokens_used == 321
        assert generation.requested_actions[0].name == "run_tests"
        assert generation.requested_actions[0].arguments == {"path": "tests"}
        assert generation.requested_actions[0].id == "call-1"

    def test_no_available_tools_skips_binding(self) -> None:
        model = MagicMock()
        model.invoke.return_value = _response("done")
        generation = ChatModelGenerator(model, tools=[SimpleNamespace(name="deploy")]).generate(
            Conversation.from_prompt("go"), []
        )
        model.bind_tools.assert_not_called()
        assert not generation.has_actions
        assert generation.tokens_used == 0


class TestVerdictParsing:
    def test_parses_json(self) -> None:
        verdict = parse_verdict(json.dumps({"score": 0.7, "passed": True, "reasoning": "solid"}))
        assert verdict.score == 0.7
        assert verdict.passed
        assert verdict.reasoning == "solid"

    def test_strips_code_fences(self) -> None:
        verdict = parse_verdict('```json\n{"score": 0.4, "passed": false}\n```')
        assert verdict.score == 0.4
        assert not verdict.passed

    def test_clamps_score(self) -> None:
        assert parse_verdict('{"score": 3}').score == 1.0

    def test_fallback_on_garbage(self) -> None:
        verdict = parse_verdict("I think it's fine")
        assert verdict.score == 0.0
        assert not verdict.passed

    def test_fallback_on_non_object(self) -> None:
        assert not parse_verdict("[1, 2]").passed


class TestChatModelJury:
    def test_prompt_includes_output_and_criteria(self) -> None:
        model = MagicMock()
        model.invoke.return_value = _response('{"score": 0.9, "passed": true, "reasoning": "ok"}')
        jury = ChatModelJury(model, criteria="All tests pass.")
        verdict = jury.evaluate(RunState.initial("r1"), "42 tests passed", Path("/work"))

        prompt = model.invoke.call_args.args[0]
        assert "All tests pass." in prompt
        assert "42 tests passed" in prompt
        assert verdict.passed

    def test_invocation_errors_propagate(self) -> None:
        model = MagicMock()
        model.invoke.side_effect = RuntimeError("quota")
        with pytest.raises(RuntimeError):
            ChatModelJury(model).evaluate(RunState.initial("r1"), None, Path("."))


class TestDefaultChatModel:
    def test_missing_api_key(self) -> None:
        pytest.importorskip("langchain_google_genai")
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(RuntimeError, match="API key"):
                default_chat_model()
