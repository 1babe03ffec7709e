"""Tests for error-list truncation and the repair agent call."""

import asyncio
import json
from unittest.mock import patch, AsyncMock, MagicMock

import pytest

from infographics.core.llm import LLMClient
from infographics.exceptions import ProviderError
from infographics.services.html_validator import (
    ValidationMessage, ERROR, WARNING, INFO, ORIGIN_MARKUP, ORIGIN_RUNTIME,
)
from infographics.services.repair_agent import (
    RepairAgent, truncate_messages, serialize_messages,
)


def _msg(severity, text, origin=ORIGIN_MARKUP):
    return ValidationMessage(severity=severity, text=text, origin=origin)


def _llm_response(content):
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    return response


class TestTruncateMessages:

    def test_everything_fits(self):
        messages = [_msg(ERROR, "a"), _msg(ERROR, "b")]
        assert truncate_messages(messages, 10_000) == messages

    def test_orders_by_severity_then_original_order(self):
        messages = [
            _msg(INFO, "i1"),
            _msg(ERROR, "e1"),
            _msg(WARNING, "w1"),
            _msg(ERROR, "e2"),
        ]
        result = truncate_messages(messages, 10_000)
        assert [m.text for m in result] == ["e1", "e2", "w1", "i1"]

    def test_result_fits_budget_and_keeps_whole_records(self):
        messages = [_msg(ERROR, f"error number {i} " + "x" * 50) for i in range(40)]
        budget = 500
        result = truncate_messages(messages, budget)
        assert 0 < len(result) < len(messages)
        assert len(serialize_messages(result)) <= budget
        assert result == messages[:len(result)]

    def test_stops_at_first_record_that_does_not_fit(self):
        small, big, tiny = _msg(ERROR, "s"), _msg(ERROR, "b" * 400), _msg(ERROR, "t")
        result = truncate_messages([small, big, tiny], 200)
        assert result == [small]

    def test_top_record_kept_even_when_over_budget(self):
        huge = _msg(ERROR, "x" * 1000)
        assert truncate_messages([huge, _msg(ERROR, "y")], 50) == [huge]

    def test_empty_input(self):
        assert truncate_messages([], 100) == []


class TestSerializeMessages:

    def test_unset_fields_are_dropped(self):
        blob = serialize_messages([
            ValidationMessage(severity=ERROR, text="boom", origin=ORIGIN_RUNTIME, url="https://cdn.example/x.js"),
        ])
        assert json.loads(blob) == [
            {"severity": "error", "text": "boom", "origin": "runtime", "url": "https://cdn.example/x.js"},
        ]


class TestRepairAgent:

    def _agent(self, budget=6000):
        return RepairAgent(LLMClient(api_key="sk-test"), model="openai/gpt-4.1-mini", error_budget=budget)

    def test_refuses_empty_error_list(self):
        with pytest.raises(ValueError):
            asyncio.run(self._agent().repair("<html></html>", []))

    def test_sends_html_and_errors_and_returns_fixed_html(self):
        fixed = "<!DOCTYPE html><html><body></body></html>"
        mock = AsyncMock(return_value=_llm_response(json.dumps({"fixedHtml": fixed})))
        with patch("infographics.core.llm.litellm.acompletion", mock):
            result = asyncio.run(self._agent().repair(
                "<html><body></div></body></html>",
                [_msg(ERROR, "Stray end tag div.")],
            ))

        assert result == fixed
        kwargs = mock.call_args.kwargs
        assert kwargs["model"] == "openai/gpt-4.1-mini"
        assert kwargs["response_format"]["json_schema"]["name"] == "html_fix"
        assert kwargs["response_format"]["json_schema"]["schema"]["required"] == ["fixedHtml"]
        system, user = kwargs["messages"][0]["content"], kwargs["messages"][1]["content"]
        assert "ONLY FIX THE LISTED ERRORS" in system
        assert "<html><body></div></body></html>" in user
        assert "Stray end tag div." in user

    def test_error_blob_respects_budget(self):
        errors = [_msg(ERROR, f"problem {i} " + "z" * 80) for i in range(200)]
        mock = AsyncMock(return_value=_llm_response(json.dumps({"fixedHtml": "<html></html>"})))
        with patch("infographics.core.llm.litellm.acompletion", mock):
            asyncio.run(self._agent(budget=1000).repair("<html></html>", errors))

        user = mock.call_args.kwargs["messages"][1]["content"]
        blob = user.split("address exactly and only:\n", 1)[1]
        assert len(blob) <= 1000
        assert "problem 0 " in blob
        assert "problem 199 " not in blob

    def test_provider_error_propagates(self):
        with patch("infographics.core.llm.litellm.acompletion", AsyncMock(side_effect=TimeoutError("slow"))):
            with pytest.raises(ProviderError):
                asyncio.run(self._agent().repair("<html></html>", [_msg(ERROR, "x")]))
