"""
Tests for the submission pipeline and its state machine
"""

import time
from unittest.mock import MagicMock

import pytest

from chemgrader.database.models import MarkingResult, Submission, db
from chemgrader.exceptions import (
    NotFoundError,
    ProviderTimeout,
    ProviderUnavailable,
    StateTransitionError,
    ValidationError,
)
from chemgrader.models.documents import Document, JobState
from chemgrader.models.status import SubmissionStatus
from chemgrader.services.background_tasks import (
    CeleryDispatcher,
    ThreadDispatcher,
    create_dispatcher,
)


@pytest.fixture
def pipeline(services):
    return services["pipeline"]


def submit(pipeline, document, paper_id="paper-1", user_id="student-1"):
    return pipeline.submit(document, paper_id=paper_id, user_id=user_id)


class TestSubmit:

    def test_requires_active_mark_scheme(self, pipeline, answer_sheet, dispatcher):
        with pytest.raises(ValidationError) as exc_info:
            submit(pipeline, answer_sheet, paper_id="unknown-paper")

        assert "No active mark scheme" in str(exc_info.value)
        assert dispatcher.dispatched == []

    @pytest.mark.parametrize("document", [
        Document("answers.exe", b"MZ"),
        Document("answers.pdf", b""),
        Document("", b"%PDF"),
    ])
    def test_rejects_bad_files(self, pipeline, active_scheme, document):
        with pytest.raises(ValidationError):
            submit(pipeline, document)

    def test_requires_user(self, pipeline, active_scheme, answer_sheet):
        with pytest.raises(ValidationError):
            submit(pipeline, answer_sheet, user_id="")

    def test_stores_file_and_dispatches(self, pipeline, active_scheme, answer_sheet, dispatcher, app):
        submission = submit(pipeline, answer_sheet)

        assert dispatcher.dispatched == [submission.id]
        assert submission.mark_scheme_id == active_scheme.id
        assert submission.file_path.startswith(app.config["UPLOAD_FOLDER"])
        assert submission.file_path.endswith("_answers.pdf")
        assert submission.file_size == len(answer_sheet.content)


class TestRunPipeline:

    def test_end_to_end_marks_every_question(self, pipeline, active_scheme, answer_sheet):
        submission = submit(pipeline, answer_sheet)

        status = pipeline.get_status(submission.id)
        assert status.status is SubmissionStatus.MARKING_COMPLETE
        assert status.progress == 100

        results = pipeline.get_results(submission.id)
        assert results.available
        assert results.score.total_score == 4
        assert results.score.max_score == 4
        assert results.score.percentage == 100.0
        assert results.score.grade == "A*"
        assert [r["question_id"] for r in results.results] == ["1.1", "1.2", "1.3", "1.4"]

        stored = db.session.get(Submission, submission.id)
        assert stored.raw_text.startswith("1.1 B")
        assert stored.extracted_answers["1.3"] == "2H2 + O2 → 2H2O"
        assert "H2O" in stored.discovered_formulas
        assert stored.started_at is not None and stored.completed_at is not None

    def test_calcium_carbonate_paper_scores_full_marks(self, pipeline, services, fake_llm,
                                                      extraction_provider, answer_sheet):
        fake_llm.replies = [{"questions": [
            {"id": "01.1", "type": "multiple_choice", "maxMarks": 1, "correctAnswer": "C"},
            {"id": "01.2", "type": "chemical_equation", "maxMarks": 3,
             "correctEquation": "CaCO3 + 2HCl = CaCl2 + H2O + CO2", "balanceRequired": True},
        ]}]
        markschemes = services["markschemes"]
        markschemes.activate("paper-2", markschemes.structure("raw text", paper_id="paper-2"))
        extraction_provider.text = "01.1 C\n01.2 CaCO3+2HCl=CaCl2+H2O+CO2\n"

        submission = submit(pipeline, answer_sheet, paper_id="paper-2")

        results = pipeline.get_results(submission.id)
        assert results.score.total_score == 4
        assert results.score.max_score == 4
        assert results.score.percentage == 100
        assert results.score.grade == "A*"

    def test_repeated_question_ids_still_complete(self, pipeline, services, fake_llm,
                                                  extraction_provider, answer_sheet):
        fake_llm.replies = [{"questions": [
            {"id": "1.1", "type": "multiple_choice", "maxMarks": 1, "correctAnswer": "B"},
            {"id": "1.1", "type": "multiple_choice", "maxMarks": 1, "correctAnswer": "C"},
        ]}]
        markschemes = services["markschemes"]
        markschemes.activate("paper-3", markschemes.structure("raw text", paper_id="paper-3"))
        extraction_provider.text = "1.1 B\n"

        submission = submit(pipeline, answer_sheet, paper_id="paper-3")

        assert pipeline.get_status(submission.id).status is SubmissionStatus.MARKING_COMPLETE
        results = pipeline.get_results(submission.id)
        assert [r["question_id"] for r in results.results] == ["1.1", "1.1_2"]
        assert results.score.total_score == 1

    def test_ocr_timeout_fails_submission(self, pipeline, active_scheme, answer_sheet,
                                          extraction_provider):
        extraction_provider.states = [JobState.PENDING]

        submission = submit(pipeline, answer_sheet)

        status = pipeline.get_status(submission.id)
        assert status.status is SubmissionStatus.FAILED
        assert status.error_category == "timeout"
        assert status.error_message.startswith("OCR processing timed out: ")
        assert extraction_provider.polls == 3

        results = pipeline.get_results(submission.id)
        assert not results.available
        assert results.message == status.error_message
        assert db.session.execute(
            db.select(MarkingResult).filter_by(submission_id=submission.id)
        ).first() is None

    def test_extraction_error_is_ocr_failure(self, pipeline, active_scheme, answer_sheet,
                                             extraction_provider):
        extraction_provider.states = [JobState.ERROR]
        extraction_provider.error = "unreadable scan"

        submission = submit(pipeline, answer_sheet)

        status = pipeline.get_status(submission.id)
        assert status.error_category == "ocr"
        assert status.error_message == "OCR processing failed: OCR extraction failed: unreadable scan"

    def test_missing_extraction_service_is_configuration_failure(self, pipeline, active_scheme,
                                                                 answer_sheet):
        pipeline.extraction_service = None

        submission = submit(pipeline, answer_sheet)

        status = pipeline.get_status(submission.id)
        assert status.status is SubmissionStatus.FAILED
        assert status.error_category == "configuration"

    def test_stage_timeout_abandons_worker(self, pipeline, active_scheme, answer_sheet):
        slow = MagicMock()
        slow.extract.side_effect = lambda document: time.sleep(0.5)
        pipeline.extraction_service = slow
        pipeline.pipeline_config.extraction_timeout = 0.05

        submission = submit(pipeline, answer_sheet)

        status = pipeline.get_status(submission.id)
        assert status.status is SubmissionStatus.FAILED
        assert status.error_message.startswith("OCR processing timed out: Extraction stage timed out")

    def test_unavailable_extraction_is_retried(self, pipeline, active_scheme, answer_sheet,
                                               services):
        extraction = MagicMock()
        extraction.extract.side_effect = [
            ProviderUnavailable("Mathpix OCR service error 503"),
            services["extraction"].extract(answer_sheet),
        ]
        pipeline.extraction_service = extraction
        pipeline.pipeline_config.extraction_attempts = 2

        submission = submit(pipeline, answer_sheet)

        assert pipeline.get_status(submission.id).status is SubmissionStatus.MARKING_COMPLETE
        assert extraction.extract.call_count == 2

    def test_run_twice_is_illegal(self, pipeline, active_scheme, answer_sheet):
        submission = submit(pipeline, answer_sheet)

        with pytest.raises(StateTransitionError):
            pipeline.run_pipeline(submission.id)

    def test_unknown_submission(self, pipeline):
        with pytest.raises(NotFoundError):
            pipeline.get_status("does-not-exist")


class TestReadContracts:

    def test_results_not_available_before_marking(self, pipeline, active_scheme, answer_sheet):
        pipeline.dispatcher = None

        submission = submit(pipeline, answer_sheet)

        status = pipeline.get_status(submission.id)
        assert status.status is SubmissionStatus.UPLOADED
        assert status.message == "Submission received"
        results = pipeline.get_results(submission.id)
        assert not results.available
        assert results.message == "Results are not yet available"
        assert "total_score" not in results.to_dict()

    def test_question_statistics(self, pipeline, active_scheme, answer_sheet, extraction_provider):
        submit(pipeline, answer_sheet)
        extraction_provider.text = "1.1 C\n1.2 0.25\n"
        submit(pipeline, answer_sheet)

        statistics = {row["question_id"]: row for row in pipeline.question_statistics("paper-1")}

        assert statistics["1.1"]["attempts"] == 2
        assert statistics["1.1"]["success_rate"] == 50.0
        assert statistics["1.2"]["average_marks"] == 1.0
        assert statistics["1.4"]["average_marks"] == 0.5


class TestDispatchers:

    def test_thread_dispatcher_runs_pipeline_in_app_context(self):
        app = MagicMock()
        pipeline = app.extensions["chemgrader"]["pipeline"]

        thread = ThreadDispatcher(app).dispatch("submission-1")
        thread.join(timeout=5)

        app.app_context.assert_called_once()
        pipeline.run_pipeline.assert_called_once_with("submission-1")

    def test_thread_dispatcher_logs_errors(self):
        app = MagicMock()
        app.extensions["chemgrader"]["pipeline"].run_pipeline.side_effect = NotFoundError("gone")

        thread = ThreadDispatcher(app).dispatch("submission-1")
        thread.join(timeout=5)

        assert not thread.is_alive()

    def test_create_dispatcher(self):
        app = MagicMock()

        assert isinstance(create_dispatcher(app, "thread"), ThreadDispatcher)
        assert isinstance(create_dispatcher(app, "celery"), CeleryDispatcher)


def test_provider_timeout_is_a_provider_error():
    assert ProviderTimeout("late").http_status == 504
