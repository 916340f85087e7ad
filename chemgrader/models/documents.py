"""
Document models for the extraction boundary.
"""

import mimetypes
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union


@dataclass
class Document:
    """An uploaded document held in memory."""
    filename: str
    content: bytes
    mime_type: Optional[str] = None

    def __post_init__(self):
        if not self.mime_type:
            self.mime_type = mimetypes.guess_type(self.filename)[0] or "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        return Path(self.filename).suffix.lower()

    @classmethod
    def from_path(cls, path: Union[str, Path], filename: Optional[str] = None) -> "Document":
        path = Path(path)
        return cls(filename=filename or path.name, content=path.read_bytes())


class JobState(str, Enum):
    PENDING = "pending"
    DONE = "done"
    ERROR = "error"


@dataclass
class ProviderJobStatus:
    """One poll answer from an extraction provider."""
    state: JobState
    text: Optional[str] = None
    confidence: Optional[float] = None
    error: Optional[str] = None


@dataclass
class ExtractionResult:
    text: str
    confidence: float = 0.0
    discovered_formulas: List[str] = field(default_factory=list)
