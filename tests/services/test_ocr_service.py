"""
Tests for the extraction adapter and the Mathpix provider
"""

from unittest.mock import MagicMock

import pytest
import requests

from chemgrader.exceptions import (
    ConfigurationError,
    ProviderRejected,
    ProviderTimeout,
    ProviderUnavailable,
)
from chemgrader.models.documents import Document, JobState, ProviderJobStatus
from chemgrader.services.ocr_service import MathpixProvider, OCRService, extract_math
from conftest import FakeExtractionProvider, no_sleep


def make_service(provider, **kwargs):
    kwargs.setdefault("max_attempts", 3)
    return OCRService(provider, poll_delay=0, sleep=no_sleep, **kwargs)


class TestOCRService:

    def test_polls_until_done(self, answer_sheet):
        provider = FakeExtractionProvider(states=[JobState.PENDING, JobState.PENDING, JobState.DONE])

        result = make_service(provider).extract(answer_sheet)

        assert provider.polls == 3
        assert result.text.startswith("1.1 B")
        assert result.confidence == 1.0
        assert "H2O" in result.discovered_formulas

    def test_pending_after_attempt_budget_is_timeout(self, answer_sheet):
        provider = FakeExtractionProvider(states=[JobState.PENDING])

        with pytest.raises(ProviderTimeout) as exc_info:
            make_service(provider).extract(answer_sheet)

        assert provider.polls == 3
        assert "still pending after 3 polling attempts" in str(exc_info.value)

    def test_job_error_is_rejected(self, answer_sheet):
        provider = FakeExtractionProvider(states=[JobState.ERROR], error="corrupt file")

        with pytest.raises(ProviderRejected) as exc_info:
            make_service(provider).extract(answer_sheet)

        assert str(exc_info.value) == "OCR extraction failed: corrupt file"

    def test_empty_document_is_rejected_before_submission(self):
        provider = FakeExtractionProvider()

        with pytest.raises(ProviderRejected):
            make_service(provider).extract(Document("empty.pdf", b""))
        assert provider.submitted == []

    def test_oversized_document_is_rejected(self):
        provider = FakeExtractionProvider()
        document = Document("big.pdf", b"x" * (1024 * 1024 + 1))

        with pytest.raises(ProviderRejected):
            make_service(provider, max_file_size_mb=1).extract(document)

    def test_small_images_use_synchronous_recognition(self):
        class SyncProvider(FakeExtractionProvider):
            def recognize(self, document):
                return ProviderJobStatus(JobState.DONE, text="$CO_2$", confidence=0.92)

        provider = SyncProvider()
        result = make_service(provider).extract(Document("answer.png", b"\x89PNG"))

        assert provider.submitted == []
        assert result.confidence == 0.92
        assert result.discovered_formulas == ["CO_2"]


def test_extract_math_collects_spans_and_formulas():
    text = "$$E = mc^2$$ and $CO_2$ plus NaCl"

    assert extract_math(text) == ["E = mc^2", "CO_2", "NaCl"]


def response(status_code=200, payload=None, text=""):
    mock = MagicMock()
    mock.status_code = status_code
    mock.text = text
    if payload is None:
        mock.json.side_effect = ValueError("no json")
    else:
        mock.json.return_value = payload
    return mock


class TestMathpixProvider:

    @pytest.fixture
    def session(self):
        return MagicMock()

    @pytest.fixture
    def provider(self, session):
        return MathpixProvider(
            app_id="app", app_key="key", base_url="https://api.test/v3/",
            request_timeout=5, session=session,
        )

    def test_missing_credentials(self, monkeypatch):
        from chemgrader.services import ocr_service

        monkeypatch.setattr(ocr_service.config.api, "mathpix_app_id", "")
        monkeypatch.setattr(ocr_service.config.api, "mathpix_app_key", "")

        with pytest.raises(ConfigurationError):
            MathpixProvider()

    def test_submit_returns_job_id(self, provider, session, answer_sheet):
        session.request.return_value = response(payload={"pdf_id": "abc123"})

        assert provider.submit(answer_sheet) == "abc123"
        args, kwargs = session.request.call_args
        assert args == ("POST", "https://api.test/v3/pdf")
        assert kwargs["headers"] == {"app_id": "app", "app_key": "key"}
        assert kwargs["timeout"] == 5

    def test_poll_completed_downloads_markdown(self, provider, session):
        session.request.side_effect = [
            response(payload={"status": "completed"}),
            response(text="1.1 B"),
        ]

        status = provider.poll("abc123")

        assert status.state is JobState.DONE
        assert status.text == "1.1 B"
        assert status.confidence == 1.0
        assert session.request.call_args.args[1] == "https://api.test/v3/pdf/abc123.md"

    def test_poll_falls_back_to_mmd(self, provider, session):
        session.request.side_effect = [
            response(payload={"status": "completed"}),
            response(status_code=404, text="not found"),
            response(text="1.1 B"),
        ]

        status = provider.poll("abc123")

        assert status.text == "1.1 B"
        assert session.request.call_args.args[1] == "https://api.test/v3/pdf/abc123.mmd"

    def test_poll_states(self, provider, session):
        session.request.return_value = response(payload={"status": "split"})
        assert provider.poll("abc123").state is JobState.PENDING

        session.request.return_value = response(payload={"status": "error", "error_info": "bad pdf"})
        status = provider.poll("abc123")
        assert status.state is JobState.ERROR
        assert status.error == "bad pdf"

    def test_error_payload_is_rejected(self, provider, session, answer_sheet):
        session.request.return_value = response(payload={"error": "Invalid file"})

        with pytest.raises(ProviderRejected):
            provider.submit(answer_sheet)

    @pytest.mark.parametrize("status_code, error_cls", [
        (500, ProviderUnavailable),
        (429, ProviderUnavailable),
        (400, ProviderRejected),
    ])
    def test_http_errors(self, provider, session, status_code, error_cls):
        session.request.return_value = response(status_code=status_code, text="failure")

        with pytest.raises(error_cls):
            provider.poll("abc123")

    def test_network_failure_is_unavailable(self, provider, session):
        session.request.side_effect = requests.ConnectionError("refused")

        with pytest.raises(ProviderUnavailable):
            provider.poll("abc123")

    def test_non_json_reply_is_unavailable(self, provider, session):
        session.request.return_value = response(text="<html>")

        with pytest.raises(ProviderUnavailable):
            provider.poll("abc123")

    def test_recognize_sends_data_uri(self, provider, session):
        session.request.return_value = response(payload={"text": "NaCl", "confidence": 0.97})

        status = provider.recognize(Document("answer.png", b"\x89PNG"))

        assert status.text == "NaCl"
        assert status.confidence == 0.97
        args, kwargs = session.request.call_args
        assert args == ("POST", "https://api.test/v3/text")
        assert kwargs["json"]["src"].startswith("data:image/png;base64,")
