"""
Test configuration and fixtures for the Chemistry Grader test suite.
"""

import os
import sys
from typing import Any, Dict, List, Optional

import pytest
from flask import current_app

# Project root on path so the packages import without installation
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from chemgrader.database.models import db
from chemgrader.models.documents import Document, JobState, ProviderJobStatus
from chemgrader.models.markscheme import MarkScheme
from chemgrader.services.ocr_service import ExtractionProvider, OCRService
from webapp.app_factory import create_app

ANSWER_SHEET_TEXT = (
    "1.1 B\n"
    "1.2 0.25 mol\n"
    "1.3 2H2 + O2 → 2H2O\n"
    "1.4 covalent bond\n"
)


class FakeExtractionProvider(ExtractionProvider):
    """Provider returning scripted poll states; records every call."""

    name = "fake"

    def __init__(self, text: str = ANSWER_SHEET_TEXT, states: Optional[List[JobState]] = None,
                 confidence: float = 1.0, error: str = None):
        self.text = text
        self.states = list(states or [JobState.DONE])
        self.confidence = confidence
        self.error = error
        self.submitted: List[Document] = []
        self.polls = 0

    def submit(self, document):
        self.submitted.append(document)
        return f"job-{len(self.submitted)}"

    def poll(self, job_id):
        state = self.states[min(self.polls, len(self.states) - 1)]
        self.polls += 1
        if state is JobState.DONE:
            return ProviderJobStatus(JobState.DONE, text=self.text, confidence=self.confidence)
        if state is JobState.ERROR:
            return ProviderJobStatus(JobState.ERROR, error=self.error or "conversion failed")
        return ProviderJobStatus(JobState.PENDING)


class FakeLLMService:
    """Stands in for LLMService; replies are served in order."""

    def __init__(self, replies: Optional[List[Any]] = None, marking: Optional[Dict] = None):
        self.replies = list(replies or [])
        self.marking = marking
        self.calls: List[Dict[str, Any]] = []

    def complete_json(self, system_prompt, user_prompt, purpose, required_fields=(), model=None):
        self.calls.append({"purpose": purpose, "prompt": user_prompt, "model": model})
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply

    def mark_answer(self, question, answer, rules):
        self.calls.append({"purpose": "marking", "question": question.question_id})
        if isinstance(self.marking, Exception):
            raise self.marking
        return self.marking


class SyncDispatcher:
    """Runs the pipeline inline so tests can assert on the final state."""

    def __init__(self):
        self.dispatched: List[str] = []

    def dispatch(self, submission_id):
        self.dispatched.append(submission_id)
        current_app.extensions["chemgrader"]["pipeline"].run_pipeline(submission_id)


def no_sleep(seconds):
    return None


def scheme_payload() -> Dict[str, Any]:
    """Structured mark scheme covering four question types, one mark each."""
    return {
        "paperCode": "7405/1",
        "session": "June 2024",
        "totalMarks": 99,
        "questions": [
            {
                "id": "1.1", "type": "multiple_choice", "maxMarks": 1,
                "correctAnswer": "B",
                "markingPoints": [{"id": "M1", "marks": 1, "description": "B"}],
            },
            {
                "id": "1.2", "type": "calculation", "maxMarks": 1,
                "correctAnswer": "0.25",
                "markingPoints": [{"id": "M1", "marks": 1, "description": "0.25 mol"}],
            },
            {
                "id": "1.3", "type": "chemical_equation", "maxMarks": 1,
                "correctEquation": "2H2 + O2 = 2H2O", "balanceRequired": True,
                "markingPoints": [{"id": "M1", "marks": 1, "description": "Balanced equation"}],
            },
            {
                "id": "1.4", "type": "short_answer", "maxMarks": 1,
                "acceptedAnswers": ["covalent bond"],
                "markingPoints": [{"id": "M1", "marks": 1, "keywords": ["covalent"]}],
            },
        ],
        "markingRules": {"listPenalty": True, "allowECF": True, "spellingTolerance": "moderate"},
    }


def build_scheme(paper_id: str = "paper-1", payload: Optional[Dict[str, Any]] = None) -> MarkScheme:
    return MarkScheme.from_dict(paper_id, payload or scheme_payload())


@pytest.fixture
def extraction_provider():
    return FakeExtractionProvider()


@pytest.fixture
def fake_llm():
    return FakeLLMService(replies=[scheme_payload()])


@pytest.fixture
def dispatcher():
    return SyncDispatcher()


@pytest.fixture
def app(tmp_path, extraction_provider, fake_llm, dispatcher):
    """Create test application with fake providers and an in-memory database."""
    app = create_app(
        "testing",
        test_config={"UPLOAD_FOLDER": str(tmp_path / "uploads")},
        services={
            "llm_service": fake_llm,
            "extraction_service": OCRService(
                extraction_provider, max_attempts=3, poll_delay=0, sleep=no_sleep
            ),
            "dispatcher": dispatcher,
        },
    )

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def services(app):
    return app.extensions["chemgrader"]


@pytest.fixture
def active_scheme(services):
    """Activate the four-question scheme for ``paper-1``."""
    markschemes = services["markschemes"]
    result = markschemes.structure("raw mark scheme text", paper_id="paper-1")
    return markschemes.activate("paper-1", result)


@pytest.fixture
def answer_sheet():
    return Document(filename="answers.pdf", content=b"%PDF-1.4 answer sheet")
