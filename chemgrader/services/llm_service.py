"""
LLM Service for mark-scheme structuring and fallback answer marking.

Wraps the OpenAI chat completions API behind a strict JSON contract: a reply
that does not parse, or that lacks a required field, is a hard failure of
that call and is never partially consumed.
"""

import json
import time
from typing import Any, Dict, Iterable, List, Optional

import openai
from openai import OpenAI

from chemgrader.config.unified_config import config
from chemgrader.exceptions.application_errors import (
    ConfigurationError,
    MalformedProviderResponse,
    ProviderRejected,
    ProviderTimeout,
    ProviderUnavailable,
)
from chemgrader.models.markscheme import MarkingRules, MarkSchemeQuestion
from utils.logger import logger

PROVIDER = "openai"

MARKING_SYSTEM_PROMPT = (
    "You are an expert A-Level Chemistry examiner. You must mark student answers "
    "according to the provided mark scheme with precision and consistency. "
    "Return your response as valid JSON only."
)

MARKING_FIELDS = ("score", "maxScore", "breakdown")


class LLMService:
    """
    Thin, typed wrapper around an OpenAI-compatible chat completions client.

    The client is created from configuration unless one is injected, which is
    how tests substitute a fake.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        timeout: Optional[float] = None,
        client: Any = None,
    ):
        """Initialize the LLM service.

        Args:
            api_key: OpenAI API key (from configuration if not provided)
            base_url: Optional base URL for OpenAI-compatible endpoints
            model: Default chat model
            temperature: Sampling temperature
            timeout: Per-request timeout in seconds
            client: Pre-built client; skips key checks when given

        Raises:
            ConfigurationError: If no client is given and no API key is available
        """
        self.model = model or config.api.openai_model
        self.temperature = config.api.llm_temperature if temperature is None else temperature
        self.timeout = timeout or config.api.llm_timeout

        if client is not None:
            self.client = client
        else:
            api_key = api_key or config.api.openai_api_key
            if not api_key:
                raise ConfigurationError(
                    "OpenAI API key not configured. Set OPENAI_API_KEY in .env",
                    config_key="OPENAI_API_KEY",
                )
            self.client = OpenAI(
                api_key=api_key,
                base_url=base_url or config.api.openai_base_url,
                timeout=self.timeout,
                max_retries=0,
            )
        logger.info(f"LLM service initialized with model: {self.model}")

    def complete_json(
        self,
        system_prompt: str,
        user_prompt: str,
        purpose: str,
        required_fields: Iterable[str] = (),
        model: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Run one JSON-mode completion and validate the top-level fields.

        Raises:
            ProviderTimeout: the request timed out
            ProviderUnavailable: network failure, rate limiting or a 5xx reply
            ProviderRejected: the request itself was refused
            ConfigurationError: the API key was rejected
            MalformedProviderResponse: empty, non-JSON or incomplete reply
        """
        model = model or self.model
        started = time.time()
        try:
            completion = self.client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=self.temperature,
                response_format={"type": "json_object"},
            )
        except openai.APITimeoutError as e:
            logger.log_llm_call(purpose, model, time.time() - started, success=False)
            raise ProviderTimeout(
                f"OpenAI request timed out during {purpose}",
                timeout_duration=self.timeout, provider=PROVIDER, original_error=e,
            ) from e
        except openai.APIConnectionError as e:
            logger.log_llm_call(purpose, model, time.time() - started, success=False)
            raise ProviderUnavailable(
                f"OpenAI API unreachable during {purpose}: {e}", provider=PROVIDER, original_error=e
            ) from e
        except openai.AuthenticationError as e:
            raise ConfigurationError(
                "OpenAI API key was rejected", config_key="OPENAI_API_KEY", original_error=e
            ) from e
        except openai.APIStatusError as e:
            logger.log_llm_call(purpose, model, time.time() - started, success=False)
            if e.status_code == 429 or e.status_code >= 500:
                raise ProviderUnavailable(
                    f"OpenAI API error {e.status_code} during {purpose}",
                    provider=PROVIDER, original_error=e,
                ) from e
            raise ProviderRejected(
                f"OpenAI API rejected the {purpose} request ({e.status_code})",
                provider=PROVIDER, original_error=e,
            ) from e

        logger.log_llm_call(purpose, model, time.time() - started)
        return self.parse_json_response(completion, purpose, required_fields)

    @staticmethod
    def parse_json_response(completion: Any, purpose: str,
                            required_fields: Iterable[str] = ()) -> Dict[str, Any]:
        try:
            content = completion.choices[0].message.content
        except (AttributeError, IndexError) as e:
            raise MalformedProviderResponse(
                f"OpenAI returned no choices for {purpose}", provider=PROVIDER
            ) from e
        if not content or not content.strip():
            raise MalformedProviderResponse(
                f"OpenAI returned an empty response for {purpose}", provider=PROVIDER
            )

        try:
            payload = json.loads(content)
        except json.JSONDecodeError as e:
            raise MalformedProviderResponse(
                f"OpenAI returned invalid JSON for {purpose}: {e.msg}", provider=PROVIDER
            ) from e
        if not isinstance(payload, dict):
            raise MalformedProviderResponse(
                f"OpenAI returned a {type(payload).__name__} instead of an object for {purpose}",
                provider=PROVIDER,
            )

        missing = [name for name in required_fields if name not in payload]
        if missing:
            raise MalformedProviderResponse(
                f"OpenAI {purpose} response missing fields: {', '.join(missing)}",
                provider=PROVIDER, details={"missing_fields": missing},
            )
        return payload

    def mark_answer(self, question: MarkSchemeQuestion, answer: str,
                    rules: MarkingRules) -> Dict[str, Any]:
        """Mark one answer with the model.

        Returns:
            Dict with ``score``, ``maxScore``, ``feedback`` and a ``breakdown``
            list of ``{"point", "awarded", "reason"}`` entries
        """
        payload = self.complete_json(
            MARKING_SYSTEM_PROMPT,
            build_marking_prompt(question, answer, rules),
            purpose="marking",
            required_fields=MARKING_FIELDS,
        )
        return validate_marking_payload(payload)


def build_marking_prompt(question: MarkSchemeQuestion, answer: str, rules: MarkingRules) -> str:
    scheme = json.dumps([point.to_dict() for point in question.marking_points], indent=2)
    principles = [
        'Accept alternative correct answers unless mark scheme specifies "only"',
        "Be precise with chemical terminology and equations",
    ]
    if rules.list_penalty:
        principles.append("Apply list penalty: if student gives correct and incorrect answers, award no marks")
    if rules.allow_ecf:
        principles.append("Check for consequential marking (ECF) where applicable")

    accepted = ", ".join(question.all_accepted_answers) or "see marking points"
    return f"""
Mark this A-Level Chemistry student answer according to the provided mark scheme.

QUESTION: {question.question_id} ({question.question_type.value}, {question.max_marks} marks)
{question.text}

MARK SCHEME:
Accepted answers: {accepted}
{"Model equation: " + question.correct_equation if question.correct_equation else ""}
Marking points:
{scheme}

STUDENT ANSWER:
{answer}

MARKING INSTRUCTIONS:
1. Award marks only for points explicitly mentioned in the mark scheme
2. Apply marking principles:
{chr(10).join("   - " + item for item in principles)}
3. For each marking point, explain whether it was awarded and why
4. Provide constructive feedback for improvement

Return your response as JSON with this exact structure:
{{
  "score": number,
  "maxScore": {question.max_marks},
  "feedback": "Overall feedback on the answer",
  "breakdown": [
    {{"point": "Marking point id", "awarded": boolean, "reason": "Why it was or wasn't awarded"}}
  ]
}}"""


def validate_marking_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Check field types of a marking reply; raise instead of guessing."""
    try:
        score = float(payload["score"])
        max_score = float(payload["maxScore"])
    except (TypeError, ValueError) as e:
        raise MalformedProviderResponse(
            "OpenAI marking response has non-numeric score fields", provider=PROVIDER
        ) from e

    breakdown = payload["breakdown"]
    if not isinstance(breakdown, list):
        raise MalformedProviderResponse(
            "OpenAI marking response breakdown is not a list", provider=PROVIDER
        )
    entries: List[Dict[str, Any]] = []
    for entry in breakdown:
        if not isinstance(entry, dict) or "awarded" not in entry:
            raise MalformedProviderResponse(
                "OpenAI marking response breakdown entry lacks 'awarded'", provider=PROVIDER
            )
        entries.append({
            "point": str(entry.get("point", "")),
            "awarded": bool(entry["awarded"]),
            "reason": str(entry.get("reason", "")),
        })

    return {
        "score": score,
        "maxScore": max_score,
        "feedback": str(payload.get("feedback") or ""),
        "breakdown": entries,
    }
