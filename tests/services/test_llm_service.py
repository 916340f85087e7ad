"""
Tests for the OpenAI wrapper: JSON contract and error mapping
"""

import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import openai
import pytest

from chemgrader.exceptions import (
    ConfigurationError,
    MalformedProviderResponse,
    ProviderRejected,
    ProviderTimeout,
    ProviderUnavailable,
)
from chemgrader.models.markscheme import MarkingRules, MarkSchemeQuestion
from chemgrader.services.llm_service import LLMService, build_marking_prompt

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def status_error(error_cls, status_code):
    return error_cls("error", response=httpx.Response(status_code, request=REQUEST), body=None)


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def service(client):
    return LLMService(model="test-model", temperature=0, timeout=5, client=client)


@pytest.fixture
def question():
    return MarkSchemeQuestion.from_dict({
        "id": "2.1", "type": "extended_response", "maxMarks": 2,
        "markingPoints": [{"id": "M1", "description": "Lone pair attacks carbon"}],
    })


class TestCompleteJson:

    def test_returns_parsed_object(self, service, client):
        client.chat.completions.create.return_value = completion('{"questions": []}')

        payload = service.complete_json("system", "user", "structuring", required_fields=("questions",))

        assert payload == {"questions": []}
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["response_format"] == {"type": "json_object"}

    def test_model_override(self, service, client):
        client.chat.completions.create.return_value = completion("{}")

        service.complete_json("system", "user", "structuring", model="big-model")

        assert client.chat.completions.create.call_args.kwargs["model"] == "big-model"

    @pytest.mark.parametrize("content", ["", "   ", "not json", "[1, 2]"])
    def test_unusable_content_is_malformed(self, service, client, content):
        client.chat.completions.create.return_value = completion(content)

        with pytest.raises(MalformedProviderResponse):
            service.complete_json("system", "user", "structuring")

    def test_missing_required_field_is_malformed(self, service, client):
        client.chat.completions.create.return_value = completion('{"paperCode": "7405/1"}')

        with pytest.raises(MalformedProviderResponse) as exc_info:
            service.complete_json("system", "user", "structuring", required_fields=("questions",))
        assert exc_info.value.details["missing_fields"] == ["questions"]

    def test_no_choices_is_malformed(self, service, client):
        client.chat.completions.create.return_value = SimpleNamespace(choices=[])

        with pytest.raises(MalformedProviderResponse):
            service.complete_json("system", "user", "marking")


class TestErrorMapping:

    def test_timeout(self, service, client):
        client.chat.completions.create.side_effect = openai.APITimeoutError(request=REQUEST)

        with pytest.raises(ProviderTimeout):
            service.complete_json("system", "user", "marking")

    def test_connection_error(self, service, client):
        client.chat.completions.create.side_effect = openai.APIConnectionError(request=REQUEST)

        with pytest.raises(ProviderUnavailable):
            service.complete_json("system", "user", "marking")

    def test_rate_limit_and_server_errors_are_unavailable(self, service, client):
        for error in (status_error(openai.RateLimitError, 429),
                      status_error(openai.InternalServerError, 500)):
            client.chat.completions.create.side_effect = error
            with pytest.raises(ProviderUnavailable):
                service.complete_json("system", "user", "marking")

    def test_bad_request_is_rejected(self, service, client):
        client.chat.completions.create.side_effect = status_error(openai.BadRequestError, 400)

        with pytest.raises(ProviderRejected):
            service.complete_json("system", "user", "marking")

    def test_rejected_key_is_configuration_error(self, service, client):
        client.chat.completions.create.side_effect = status_error(openai.AuthenticationError, 401)

        with pytest.raises(ConfigurationError):
            service.complete_json("system", "user", "marking")


def test_missing_api_key_raises_configuration_error(monkeypatch):
    from chemgrader.services import llm_service

    monkeypatch.setattr(llm_service.config.api, "openai_api_key", "")

    with pytest.raises(ConfigurationError):
        LLMService()


class TestMarkAnswer:

    def test_valid_marking_reply(self, service, client, question):
        client.chat.completions.create.return_value = completion(json.dumps({
            "score": 1, "maxScore": 2, "feedback": "Half right",
            "breakdown": [{"point": "M1", "awarded": True, "reason": "Mentions lone pair"}],
        }))

        payload = service.mark_answer(question, "the lone pair attacks", MarkingRules())

        assert payload["score"] == 1.0
        assert payload["breakdown"][0] == {"point": "M1", "awarded": True, "reason": "Mentions lone pair"}

    def test_breakdown_entry_without_awarded_is_malformed(self, service, client, question):
        client.chat.completions.create.return_value = completion(json.dumps({
            "score": 1, "maxScore": 2, "breakdown": [{"point": "M1"}],
        }))

        with pytest.raises(MalformedProviderResponse):
            service.mark_answer(question, "answer", MarkingRules())

    def test_non_numeric_score_is_malformed(self, service, client, question):
        client.chat.completions.create.return_value = completion(json.dumps({
            "score": "lots", "maxScore": 2, "breakdown": [],
        }))

        with pytest.raises(MalformedProviderResponse):
            service.mark_answer(question, "answer", MarkingRules())

    def test_prompt_reflects_marking_rules(self, question):
        prompt = build_marking_prompt(question, "answer", MarkingRules(list_penalty=False))

        assert "Apply list penalty" not in prompt
        assert "consequential marking" in prompt
        assert "Lone pair attacks carbon" in prompt
