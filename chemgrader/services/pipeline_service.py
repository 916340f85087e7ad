"""
Submission Pipeline: document in, graded and aggregated results out.

The pipeline owns the submission state machine

    UPLOADED -> PROCESSING -> OCR_COMPLETE -> MARKING -> MARKING_COMPLETE

with FAILED reachable from any non-terminal state. Every transition is
committed before the next stage starts, so ``get_status`` (which always
re-reads the row) reflects real progress. External stages run on a worker
thread bounded by a timeout; a timed-out worker is abandoned, not awaited.
"""

import concurrent.futures
import uuid
from collections import defaultdict
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from werkzeug.utils import secure_filename

from chemgrader.config.unified_config import FileConfig, PipelineConfig, config
from chemgrader.database import repository
from chemgrader.database.models import Submission, db
from chemgrader.exceptions.application_errors import (
    ConfigurationError,
    NotFoundError,
    ProviderTimeout,
    ProviderUnavailable,
    StateTransitionError,
    ValidationError,
)
from chemgrader.exceptions.error_mapper import classify_failure
from chemgrader.grading.aggregator import ScoreAggregator
from chemgrader.grading.answer_segmenter import AnswerSegmenter
from chemgrader.models.documents import Document
from chemgrader.models.markscheme import MarkScheme
from chemgrader.models.results import ResultsView, SubmissionScore, SubmissionSummary
from chemgrader.models.status import STAGE_PROGRESS, StatusView, SubmissionStatus, can_transition
from chemgrader.services.markscheme_service import default_rules
from utils.logger import logger

RESULTS_PENDING_MESSAGE = "Results are not yet available"


class PipelineService:
    """Runs submissions through extraction, grading and aggregation."""

    def __init__(self, extraction_service, grading_service,
                 aggregator: Optional[ScoreAggregator] = None,
                 segmenter: Optional[AnswerSegmenter] = None,
                 dispatcher=None,
                 pipeline_config: Optional[PipelineConfig] = None,
                 file_config: Optional[FileConfig] = None):
        """
        Args:
            extraction_service: OCRService (or anything with ``extract(document)``)
            grading_service: GradingService
            aggregator: Score aggregator
            segmenter: Answer segmenter
            dispatcher: Object with ``dispatch(submission_id)``; None leaves runs to the caller
            pipeline_config: Stage timeouts and attempts
            file_config: Upload whitelist, size limit and folder
        """
        self.extraction_service = extraction_service
        self.grading_service = grading_service
        self.aggregator = aggregator or ScoreAggregator()
        self.segmenter = segmenter or AnswerSegmenter()
        self.dispatcher = dispatcher
        self.pipeline_config = pipeline_config or config.pipeline
        self.file_config = file_config or config.files

    # Submission intake

    def submit(self, document: Document, paper_id: str, user_id: str) -> Submission:
        """Validate and store an upload, then hand it to the dispatcher.

        Raises:
            ValidationError: bad file, or no active mark scheme for the paper
        """
        self._validate_document(document)
        if not paper_id:
            raise ValidationError("paper_id is required", field="paper_id")
        if not user_id:
            raise ValidationError("user_id is required", field="user_id")

        mark_scheme = repository.get_active_mark_scheme(paper_id)
        if mark_scheme is None:
            raise ValidationError(
                f"No active mark scheme for paper {paper_id}", field="paper_id"
            )

        file_path = self._store(document)
        progress = STAGE_PROGRESS[SubmissionStatus.UPLOADED]
        submission = repository.create_submission(
            user_id=user_id,
            paper_id=paper_id,
            mark_scheme_id=mark_scheme.id,
            filename=document.filename,
            file_path=str(file_path),
            file_size=document.size,
            status=SubmissionStatus.UPLOADED,
            progress_stage=progress.stage,
            progress_message=progress.message,
            progress_percent=progress.percent,
        )
        logger.info(f"Submission {submission.id} created for paper {paper_id} by user {user_id}")

        if self.dispatcher is not None:
            self.dispatcher.dispatch(submission.id)
        return submission

    def _validate_document(self, document: Document) -> None:
        if not document.filename:
            raise ValidationError("No file selected", field="file")
        if document.extension not in self.file_config.supported_formats:
            raise ValidationError(
                f"Unsupported file type {document.extension or '(none)'}. "
                f"Allowed: {', '.join(self.file_config.supported_formats)}",
                field="file",
            )
        if not document.size:
            raise ValidationError("Uploaded file is empty", field="file")
        if document.size > self.file_config.max_content_length:
            raise ValidationError(
                f"File exceeds the {self.file_config.max_file_size_mb}MB limit", field="file"
            )

    def _store(self, document: Document) -> Path:
        self.file_config.ensure_directories()
        name = secure_filename(document.filename) or f"upload{document.extension}"
        path = self.file_config.upload_dir / f"{uuid.uuid4().hex}_{name}"
        path.write_bytes(document.content)
        return path

    # Pipeline execution

    def run_pipeline(self, submission_id: str) -> SubmissionStatus:
        """Run every stage for a submission and return its final status.

        Stage failures never escape: they move the submission to FAILED.

        Raises:
            NotFoundError: unknown submission
            StateTransitionError: the submission has already been run
        """
        submission = self._load(submission_id)
        if not can_transition(submission.status, SubmissionStatus.PROCESSING):
            raise StateTransitionError(submission.status.value, SubmissionStatus.PROCESSING.value)

        logger.log_metric("pipeline_runs")
        try:
            submission.started_at = datetime.utcnow()
            self._transition(submission, SubmissionStatus.PROCESSING)

            document = Document.from_path(submission.file_path, submission.filename)
            extraction = self._run_extraction(document)
            mark_scheme = MarkScheme.from_dict(
                submission.paper_id, submission.mark_scheme.content, default_rules()
            )
            answers = self.segmenter.segment(extraction.text, mark_scheme.question_ids)

            submission.raw_text = extraction.text
            submission.extraction_confidence = extraction.confidence
            submission.discovered_formulas = extraction.discovered_formulas
            submission.extracted_answers = dict(answers)
            self._transition(submission, SubmissionStatus.OCR_COMPLETE)

            self._transition(submission, SubmissionStatus.MARKING)
            results = self._run_stage(
                "grading", self.pipeline_config.grading_timeout,
                self.grading_service.grade_submission, mark_scheme, answers,
            )
            score = self.aggregator.aggregate(results)

            repository.replace_results(submission, results)
            submission.total_score = score.total_score
            submission.max_score = score.max_score
            submission.percentage = score.percentage
            submission.grade = score.grade
            submission.summary = score.summary.to_dict()
            submission.completed_at = datetime.utcnow()
            self._transition(submission, SubmissionStatus.MARKING_COMPLETE)

            logger.info(
                f"Submission {submission_id} marked: {score.total_score}/{score.max_score} "
                f"({score.percentage}%, grade {score.grade})"
            )
            return SubmissionStatus.MARKING_COMPLETE
        except Exception as e:
            return self._fail(submission_id, e)

    def _run_extraction(self, document: Document):
        if self.extraction_service is None:
            raise ConfigurationError(
                "Mathpix credentials not configured; document extraction is unavailable",
                config_key="MATHPIX_APP_KEY",
            )
        attempts = self.pipeline_config.extraction_attempts
        for attempt in range(1, attempts + 1):
            try:
                return self._run_stage(
                    "extraction", self.pipeline_config.extraction_timeout,
                    self.extraction_service.extract, document,
                )
            except ProviderUnavailable as e:
                if attempt >= attempts:
                    raise
                logger.warning(f"Extraction attempt {attempt}/{attempts} failed: {e}")

    def _run_stage(self, stage: str, timeout: float, func: Callable, *args) -> Any:
        """Run ``func`` on a worker thread and wait at most ``timeout`` seconds."""
        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix=f"pipeline-{stage}"
        )
        future = executor.submit(func, *args)
        try:
            return future.result(timeout=timeout)
        except concurrent.futures.TimeoutError:
            raise ProviderTimeout(
                f"{stage.capitalize()} stage timed out after {timeout}s",
                timeout_duration=timeout,
            ) from None
        finally:
            executor.shutdown(wait=False)

    def _transition(self, submission: Submission, target: SubmissionStatus) -> None:
        if not can_transition(submission.status, target):
            raise StateTransitionError(submission.status.value, target.value)

        progress = STAGE_PROGRESS[target]
        previous = submission.status
        submission.status = target
        submission.progress_stage = progress.stage
        submission.progress_message = progress.message
        submission.progress_percent = progress.percent
        db.session.commit()
        logger.info(f"Submission {submission.id}: {previous.value} -> {target.value}")

    def _fail(self, submission_id: str, error: Exception) -> SubmissionStatus:
        db.session.rollback()
        failure = classify_failure(error)
        logger.log_metric("pipeline_failures")
        logger.log_error_with_context(
            error, {"submission_id": submission_id, "category": failure.category.value}
        )

        submission = self._load(submission_id)
        if submission.status.is_terminal:
            return submission.status

        progress = STAGE_PROGRESS[SubmissionStatus.FAILED]
        submission.status = SubmissionStatus.FAILED
        submission.progress_stage = progress.stage
        submission.progress_message = progress.message
        submission.progress_percent = progress.percent
        submission.error_message = failure.message
        submission.error_category = failure.category.value
        submission.completed_at = datetime.utcnow()
        db.session.commit()
        logger.warning(f"Submission {submission_id} failed: {failure.message}")
        return SubmissionStatus.FAILED

    # Read contracts

    def _load(self, submission_id: str) -> Submission:
        submission = repository.get_submission(submission_id, refresh=True)
        if submission is None:
            raise NotFoundError(
                f"Submission {submission_id} not found",
                resource_type="submission", resource_id=submission_id,
            )
        return submission

    def get_status(self, submission_id: str) -> StatusView:
        submission = self._load(submission_id)
        return StatusView(
            submission_id=submission.id,
            status=submission.status,
            message=submission.progress_message or STAGE_PROGRESS[submission.status].message,
            progress=submission.progress_percent or 0,
            stage=submission.progress_stage or STAGE_PROGRESS[submission.status].stage,
            error_message=submission.error_message,
            error_category=submission.error_category,
        )

    def get_results(self, submission_id: str) -> ResultsView:
        submission = self._load(submission_id)
        if submission.status is not SubmissionStatus.MARKING_COMPLETE:
            message = RESULTS_PENDING_MESSAGE
            if submission.status is SubmissionStatus.FAILED:
                message = submission.error_message or message
            return ResultsView(
                submission_id=submission.id,
                status=submission.status.value,
                available=False,
                message=message,
            )

        summary = SubmissionSummary(**(submission.summary or {
            "correct_answers": 0, "total_questions": 0, "accuracy_rate": 0.0,
        }))
        return ResultsView(
            submission_id=submission.id,
            status=submission.status.value,
            available=True,
            message="Marking complete",
            score=SubmissionScore(
                total_score=submission.total_score,
                max_score=submission.max_score,
                percentage=submission.percentage,
                grade=submission.grade,
                summary=summary,
            ),
            results=[row.to_dict() for row in repository.get_results(submission.id)],
        )

    def question_statistics(self, paper_id: str) -> List[Dict[str, Any]]:
        """Attempts, average marks and success rate per question of a paper."""
        grouped: Dict[str, List] = defaultdict(list)
        for row in repository.get_paper_results(paper_id):
            grouped[row.question_id].append(row)

        statistics = []
        for question_id, rows in grouped.items():
            attempts = len(rows)
            statistics.append({
                "question_id": question_id,
                "attempts": attempts,
                "max_marks": rows[0].max_marks,
                "average_marks": round(sum(row.marks_awarded for row in rows) / attempts, 2),
                "success_rate": round(sum(1 for row in rows if row.is_correct) / attempts * 100, 2),
            })
        return statistics
