"""
Persistence operations used by the services.

Every write commits before returning, so a status read from another session
always sees the last completed transition.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func

from chemgrader.database.models import MarkingResult, MarkScheme, Submission, db
from chemgrader.models.results import QuestionResult
from chemgrader.models.status import SubmissionStatus
from utils.logger import logger


def get_active_mark_scheme(paper_id: str) -> Optional[MarkScheme]:
    return db.session.execute(
        db.select(MarkScheme).filter_by(paper_id=paper_id, is_active=True)
    ).scalar_one_or_none()


def save_mark_scheme_version(paper_id: str, content: Dict[str, Any], total_marks: int,
                             question_count: int, warnings: List[Dict[str, Any]]) -> MarkScheme:
    """Store a new active version and supersede the current one."""
    latest = db.session.execute(
        db.select(func.max(MarkScheme.version)).filter_by(paper_id=paper_id)
    ).scalar()

    previous = get_active_mark_scheme(paper_id)
    if previous is not None:
        previous.is_active = False
        previous.superseded_at = datetime.utcnow()

    version = MarkScheme(
        paper_id=paper_id,
        version=(latest or 0) + 1,
        is_active=True,
        content=content,
        total_marks=total_marks,
        question_count=question_count,
        warnings=warnings,
    )
    db.session.add(version)
    db.session.commit()
    logger.info(f"Activated mark scheme v{version.version} for paper {paper_id}")
    return version


def create_submission(**fields) -> Submission:
    submission = Submission(**fields)
    db.session.add(submission)
    db.session.commit()
    return submission


def get_submission(submission_id: str, refresh: bool = False) -> Optional[Submission]:
    """Load a submission; ``refresh`` overwrites any state cached in the session."""
    query = db.select(Submission).filter_by(id=submission_id)
    if refresh:
        query = query.execution_options(populate_existing=True)
    return db.session.execute(query).scalar_one_or_none()


def replace_results(submission: Submission, results: Sequence[QuestionResult]) -> None:
    """Swap the submission's result rows for ``results`` without committing."""
    db.session.execute(
        db.delete(MarkingResult).where(MarkingResult.submission_id == submission.id)
    )
    for position, result in enumerate(results):
        db.session.add(MarkingResult(
            submission_id=submission.id,
            question_id=result.question_id,
            position=position,
            student_answer=result.student_answer,
            marks_awarded=result.marks_awarded,
            max_marks=result.max_marks,
            is_correct=result.is_correct,
            confidence=result.confidence,
            feedback=result.feedback,
            marking_points=[award.to_dict() for award in result.marking_points],
            strategy=result.strategy,
            degraded=result.degraded,
        ))


def get_results(submission_id: str) -> List[MarkingResult]:
    return list(db.session.execute(
        db.select(MarkingResult)
        .filter_by(submission_id=submission_id)
        .order_by(MarkingResult.position)
    ).scalars())


def get_paper_results(paper_id: str) -> List[MarkingResult]:
    """Result rows of every completed submission for a paper."""
    return list(db.session.execute(
        db.select(MarkingResult)
        .join(Submission, MarkingResult.submission_id == Submission.id)
        .filter(Submission.paper_id == paper_id)
        .filter(Submission.status == SubmissionStatus.MARKING_COMPLETE)
        .order_by(MarkingResult.position)
    ).scalars())
