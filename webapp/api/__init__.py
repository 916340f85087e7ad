"""
API Module

JSON endpoints for submissions, mark schemes and health, all answering with
the standard ``APIResponse`` envelope.
"""

from .error_handlers import register_error_handlers
from .health import health_bp
from .markschemes import markschemes_bp
from .submissions import submissions_bp

__all__ = ["health_bp", "markschemes_bp", "submissions_bp", "register_error_handlers"]
