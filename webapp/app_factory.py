"""
Application Factory - Flask App Creation

Builds the JSON API around the grading services. Providers are created from
configuration here; tests replace them through ``services``.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

from flask import Flask
from flask_cors import CORS

from chemgrader.config.unified_config import FileConfig, UnifiedConfig
from chemgrader.database.models import db
from chemgrader.exceptions.application_errors import ConfigurationError
from chemgrader.grading.aggregator import ScoreAggregator
from chemgrader.grading.answer_segmenter import AnswerSegmenter
from chemgrader.services.background_tasks import create_dispatcher
from chemgrader.services.grading_service import GradingService
from chemgrader.services.llm_service import LLMService
from chemgrader.services.markscheme_service import MarkSchemeService
from chemgrader.services.ocr_service import MathpixProvider, OCRService
from chemgrader.services.pipeline_service import PipelineService
from utils.logger import logger


def create_app(config_name: Optional[str] = None,
               test_config: Optional[Dict[str, Any]] = None,
               services: Optional[Dict[str, Any]] = None) -> Flask:
    """
    Application factory function.

    Args:
        config_name: Configuration environment name
        test_config: Flask settings applied over the environment configuration
        services: Prebuilt collaborators (``llm_service``, ``extraction_service``,
            ``dispatcher``) used instead of the configured providers

    Returns:
        Configured Flask application instance
    """
    app = Flask(__name__)

    # Load configuration
    config = UnifiedConfig(config_name)
    app.config.update(config.get_flask_config())

    # Override for testing environment
    if config.environment == "testing":
        app.config["TESTING"] = True
        app.config["SQLALCHEMY_DATABASE_URI"] = "sqlite:///:memory:"
    if test_config:
        app.config.update(test_config)

    _init_extensions(app)
    _init_services(app, config, services or {})
    _register_blueprints(app)
    _setup_error_handlers(app)
    create_database_tables(app)

    logger.info(f"Flask application created successfully (config: {config.environment})")
    return app


def _init_extensions(app: Flask) -> None:
    """Initialize Flask extensions."""
    db.init_app(app)

    allowed_origins = os.getenv("ALLOWED_ORIGINS", "*")
    if allowed_origins != "*":
        origins = [origin.strip() for origin in allowed_origins.split(",")]
        CORS(app, origins=origins, supports_credentials=True)
    else:
        CORS(app, supports_credentials=True)


def _init_services(app: Flask, config: UnifiedConfig, services: Dict[str, Any]) -> None:
    """Wire providers and services into ``app.extensions["chemgrader"]``."""
    llm_service = services.get("llm_service")
    if llm_service is None and "llm_service" not in services:
        try:
            llm_service = LLMService()
        except ConfigurationError as e:
            logger.warning(f"LLM service unavailable: {e}")

    extraction_service = services.get("extraction_service")
    if extraction_service is None and "extraction_service" not in services:
        try:
            extraction_service = OCRService(MathpixProvider())
        except ConfigurationError as e:
            logger.warning(f"Extraction service unavailable: {e}")

    file_config = FileConfig(
        upload_dir=Path(app.config["UPLOAD_FOLDER"]),
        max_file_size_mb=config.files.max_file_size_mb,
        supported_formats=list(config.files.supported_formats),
    )
    grading_service = GradingService(
        llm_service=llm_service,
        use_llm_marking=config.grading.use_llm_marking,
        numeric_tolerance=config.grading.numeric_tolerance,
    )
    pipeline = PipelineService(
        extraction_service=extraction_service,
        grading_service=grading_service,
        aggregator=ScoreAggregator(),
        segmenter=AnswerSegmenter(),
        pipeline_config=config.pipeline,
        file_config=file_config,
    )
    pipeline.dispatcher = services.get("dispatcher") or create_dispatcher(app, config.pipeline.executor)

    app.extensions["chemgrader"] = {
        "config": config,
        "llm": llm_service,
        "extraction": extraction_service,
        "markschemes": MarkSchemeService(llm_service, extraction_service),
        "grading": grading_service,
        "pipeline": pipeline,
    }


def _register_blueprints(app: Flask) -> None:
    """Register application blueprints."""
    from webapp.api.health import health_bp
    from webapp.api.markschemes import markschemes_bp
    from webapp.api.submissions import submissions_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(submissions_bp)
    app.register_blueprint(markschemes_bp)


def _setup_error_handlers(app: Flask) -> None:
    """Set up global error handlers."""
    from webapp.api.error_handlers import register_error_handlers

    register_error_handlers(app)


def create_database_tables(app: Flask) -> None:
    """Create database tables if they don't exist."""
    with app.app_context():
        db.create_all()
        logger.info("Database tables created successfully")
