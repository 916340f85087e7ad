"""
Submission lifecycle states.

UPLOADED -> PROCESSING -> OCR_COMPLETE -> MARKING -> MARKING_COMPLETE, with
FAILED reachable from every non-terminal state. No state is ever re-entered.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional


class SubmissionStatus(str, Enum):
    UPLOADED = "UPLOADED"
    PROCESSING = "PROCESSING"
    OCR_COMPLETE = "OCR_COMPLETE"
    MARKING = "MARKING"
    MARKING_COMPLETE = "MARKING_COMPLETE"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (SubmissionStatus.MARKING_COMPLETE, SubmissionStatus.FAILED)


ALLOWED_TRANSITIONS: Dict[SubmissionStatus, FrozenSet[SubmissionStatus]] = {
    SubmissionStatus.UPLOADED: frozenset(
        {SubmissionStatus.PROCESSING, SubmissionStatus.FAILED}
    ),
    SubmissionStatus.PROCESSING: frozenset(
        {SubmissionStatus.OCR_COMPLETE, SubmissionStatus.FAILED}
    ),
    SubmissionStatus.OCR_COMPLETE: frozenset(
        {SubmissionStatus.MARKING, SubmissionStatus.FAILED}
    ),
    SubmissionStatus.MARKING: frozenset(
        {SubmissionStatus.MARKING_COMPLETE, SubmissionStatus.FAILED}
    ),
    SubmissionStatus.MARKING_COMPLETE: frozenset(),
    SubmissionStatus.FAILED: frozenset(),
}


def can_transition(current: SubmissionStatus, target: SubmissionStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


@dataclass
class ProgressRecord:
    """Structured progress, kept apart from the status and the error message."""
    stage: str
    message: str
    percent: int


# Progress shown to pollers for each state.
STAGE_PROGRESS: Dict[SubmissionStatus, ProgressRecord] = {
    SubmissionStatus.UPLOADED: ProgressRecord("upload", "Submission received", 0),
    SubmissionStatus.PROCESSING: ProgressRecord("extraction", "Extracting text from document", 10),
    SubmissionStatus.OCR_COMPLETE: ProgressRecord("extraction", "Text extraction complete", 40),
    SubmissionStatus.MARKING: ProgressRecord("grading", "Marking answers", 60),
    SubmissionStatus.MARKING_COMPLETE: ProgressRecord("complete", "Marking complete", 100),
    SubmissionStatus.FAILED: ProgressRecord("failed", "Processing failed", 100),
}


@dataclass
class StatusView:
    """Read-only status snapshot returned to pollers."""
    submission_id: str
    status: SubmissionStatus
    message: str
    progress: int
    stage: str
    error_message: Optional[str] = None
    error_category: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "submission_id": self.submission_id,
            "status": self.status.value,
            "message": self.message,
            "progress": self.progress,
            "stage": self.stage,
        }
        if self.status is SubmissionStatus.FAILED:
            data["error_message"] = self.error_message
            data["error_category"] = self.error_category
        return data
