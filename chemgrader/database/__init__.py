"""Database models and persistence helpers."""

from .models import MarkingResult, MarkScheme, Submission, TimestampMixin, db, get_uuid_column

__all__ = [
    "db",
    "get_uuid_column",
    "TimestampMixin",
    "MarkScheme",
    "Submission",
    "MarkingResult",
]
