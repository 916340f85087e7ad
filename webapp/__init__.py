"""
Webapp package for the Chemistry Grader.

Flask application factory and the JSON API blueprints.
"""

__version__ = "0.2.0"

from .app_factory import create_app, create_database_tables

__all__ = ["create_app", "create_database_tables"]
