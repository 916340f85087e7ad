"""
Database models for the Chemistry Grader.

Mark schemes are versioned per paper, submissions carry their lifecycle
state and progress record, and marking results hold one row per
(submission, question).
"""
import uuid
from datetime import datetime
from typing import Any, Dict

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from chemgrader.models.status import SubmissionStatus

# Initialize SQLAlchemy
db = SQLAlchemy()


def get_uuid_column():
    """Get appropriate UUID column type based on database."""
    return Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))


class TimestampMixin:
    """Mixin for adding timestamp fields to models."""

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class MarkScheme(db.Model, TimestampMixin):
    """One structured version of a paper's mark scheme."""

    __tablename__ = "mark_schemes"

    id = get_uuid_column()
    paper_id = Column(String(100), nullable=False, index=True)
    version = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, default=True, nullable=False)
    content = Column(JSON, nullable=False)
    total_marks = Column(Integer, nullable=False)
    question_count = Column(Integer, nullable=False)
    warnings = Column(JSON)
    superseded_at = Column(DateTime)

    submissions = relationship("Submission", back_populates="mark_scheme")

    __table_args__ = (
        UniqueConstraint("paper_id", "version", name="uq_mark_scheme_paper_version"),
        db.Index("idx_mark_scheme_paper_active", "paper_id", "is_active"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "paper_id": self.paper_id,
            "version": self.version,
            "is_active": self.is_active,
            "content": self.content,
            "total_marks": self.total_marks,
            "question_count": self.question_count,
            "warnings": self.warnings or [],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "superseded_at": self.superseded_at.isoformat() if self.superseded_at else None,
        }


class Submission(db.Model, TimestampMixin):
    """Student answer sheet moving through the grading pipeline."""

    __tablename__ = "submissions"

    id = get_uuid_column()
    user_id = Column(String(36), nullable=False, index=True)
    paper_id = Column(String(100), nullable=False, index=True)
    mark_scheme_id = Column(String(36), ForeignKey("mark_schemes.id"), nullable=False)
    filename = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=False)
    file_size = Column(Integer, nullable=False)

    status = Column(
        Enum(SubmissionStatus, native_enum=False, length=32),
        default=SubmissionStatus.UPLOADED,
        nullable=False,
    )
    progress_stage = Column(String(50))
    progress_message = Column(String(255))
    progress_percent = Column(Integer, default=0)
    error_message = Column(Text)
    error_category = Column(String(50))

    raw_text = Column(Text)
    extraction_confidence = Column(Float)
    discovered_formulas = Column(JSON)
    extracted_answers = Column(JSON)

    total_score = Column(Integer)
    max_score = Column(Integer)
    percentage = Column(Float)
    grade = Column(String(5))
    summary = Column(JSON)

    started_at = Column(DateTime)
    completed_at = Column(DateTime)

    mark_scheme = relationship("MarkScheme", back_populates="submissions")
    marking_results = relationship(
        "MarkingResult",
        back_populates="submission",
        cascade="all, delete-orphan",
        order_by="MarkingResult.position",
    )

    __table_args__ = (
        db.Index("idx_submission_user_status", "user_id", "status"),
        db.Index("idx_submission_paper_status", "paper_id", "status"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "paper_id": self.paper_id,
            "mark_scheme_id": self.mark_scheme_id,
            "filename": self.filename,
            "file_size": self.file_size,
            "status": self.status.value if self.status else None,
            "progress_stage": self.progress_stage,
            "progress_message": self.progress_message,
            "progress_percent": self.progress_percent,
            "error_message": self.error_message,
            "total_score": self.total_score,
            "max_score": self.max_score,
            "percentage": self.percentage,
            "grade": self.grade,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class MarkingResult(db.Model, TimestampMixin):
    """Marks for one question of one submission."""

    __tablename__ = "marking_results"

    id = get_uuid_column()
    submission_id = Column(
        String(36), ForeignKey("submissions.id"), nullable=False, index=True
    )
    question_id = Column(String(50), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    student_answer = Column(Text)
    marks_awarded = Column(Integer, nullable=False, default=0)
    max_marks = Column(Integer, nullable=False)
    is_correct = Column(Boolean, default=False, nullable=False)
    confidence = Column(Float, nullable=False, default=0.0)
    feedback = Column(Text)
    marking_points = Column(JSON)
    strategy = Column(String(50))
    degraded = Column(Boolean, default=False, nullable=False)

    submission = relationship("Submission", back_populates="marking_results")

    __table_args__ = (
        UniqueConstraint("submission_id", "question_id", name="uq_marking_result_question"),
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "question_id": self.question_id,
            "student_answer": self.student_answer,
            "marks_awarded": self.marks_awarded,
            "max_marks": self.max_marks,
            "is_correct": self.is_correct,
            "confidence": self.confidence,
            "feedback": self.feedback,
            "marking_points": self.marking_points or [],
            "strategy": self.strategy,
            "degraded": self.degraded,
        }
