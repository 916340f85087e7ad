"""Standardized API response models for consistent response formatting."""

from dataclasses import dataclass, field
from datetime import datetime
import json
from enum import Enum
from typing import Optional, Dict, Any, List

class ResponseStatus(Enum):
    """Standard response status codes."""
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    PENDING = "pending"

class ErrorCode(Enum):
    """Standard error codes for consistent error handling."""
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INVALID_STATE = "INVALID_STATE"
    PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"
    PROVIDER_TIMEOUT = "PROVIDER_TIMEOUT"
    PROVIDER_REJECTED = "PROVIDER_REJECTED"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"
    GRADING_DEGRADED = "GRADING_DEGRADED"

@dataclass
class APIMetadata:
    """Metadata for API responses."""
    timestamp: datetime = field(default_factory=datetime.utcnow)
    request_id: Optional[str] = None
    version: str = "1.0"
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert metadata to dictionary."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "request_id": self.request_id,
            "version": self.version,
            "warnings": self.warnings
        }

@dataclass
class ErrorDetail:
    """Detailed error information."""
    code: ErrorCode
    message: str
    field: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "code": self.code.value,
            "message": self.message
        }
        if self.field:
            result["field"] = self.field
        if self.details:
            result["details"] = self.details
        return result

@dataclass
class APIResponse:
    """Standardized API response format."""
    status: ResponseStatus
    data: Optional[Any] = None
    message: Optional[str] = None
    errors: List[ErrorDetail] = field(default_factory=list)
    metadata: APIMetadata = field(default_factory=APIMetadata)

    def to_dict(self) -> Dict[str, Any]:
        """Convert response to dictionary for JSON serialization."""
        result = {
            "status": self.status.value,
            "data": self.data,
            "metadata": self.metadata.to_dict()
        }

        if self.message:
            result["message"] = self.message

        if self.errors:
            result["errors"] = [error.to_dict() for error in self.errors]

        return result

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    @classmethod
    def success(cls, data: Any = None, message: str = None, warnings: List[str] = None) -> 'APIResponse':
        """Create a success response."""
        return cls(
            status=ResponseStatus.SUCCESS,
            data=data,
            message=message,
            metadata=APIMetadata(warnings=list(warnings or []))
        )

    @classmethod
    def pending(cls, data: Any = None, message: str = "Processing...") -> 'APIResponse':
        """Create a response for work that has not finished yet."""
        return cls(
            status=ResponseStatus.PENDING,
            data=data,
            message=message
        )

    @classmethod
    def error(cls, message: str, code: ErrorCode = ErrorCode.INTERNAL_ERROR,
              field: str = None, details: Dict[str, Any] = None) -> 'APIResponse':
        """Create an error response with a single error detail."""
        return cls(
            status=ResponseStatus.ERROR,
            message=message,
            errors=[ErrorDetail(code=code, message=message, field=field, details=details)]
        )
