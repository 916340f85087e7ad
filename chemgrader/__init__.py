"""
Chemistry exam grading core.

Extraction, mark-scheme structuring, deterministic chemistry marking and the
submission pipeline that ties them together.
"""

__version__ = "0.2.0"
