"""
Unified Configuration Management for the Chemistry Grader.

All settings are read from the environment (optionally seeded from ``.env``
files) into small validated dataclasses, and exposed through the global
``config`` instance.
"""

import os
import secrets
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from chemgrader.exceptions.application_errors import ConfigurationError
from utils.logger import logger


def load_environment_variables():
    """Load environment variables from .env files with priority."""
    instance_env = Path("instance/.env")
    if instance_env.exists():
        load_dotenv(instance_env, override=True)

    root_env = Path(".env")
    if root_env.exists():
        load_dotenv(root_env, override=False)  # Don't override instance settings


load_environment_variables()

SPELLING_TOLERANCE_LEVELS = ("strict", "moderate", "lenient")
FORMULA_TOLERANCE_LEVELS = ("strict", "moderate")


def _env_bool(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class DatabaseConfig:
    """Database configuration settings."""

    database_url: str = "sqlite:///chemgrader.db"
    database_echo: bool = False

    def __post_init__(self):
        if not self.database_url:
            raise ConfigurationError("DATABASE_URL is required", config_key="DATABASE_URL")


@dataclass
class FileConfig:
    """Upload handling settings."""

    upload_dir: Path = field(default_factory=lambda: Path("uploads"))
    max_file_size_mb: int = 50
    supported_formats: List[str] = field(
        default_factory=lambda: [".pdf", ".png", ".jpg", ".jpeg"]
    )

    def __post_init__(self):
        if self.max_file_size_mb <= 0:
            raise ConfigurationError(
                "max_file_size_mb must be positive", config_key="MAX_FILE_SIZE_MB"
            )
        self.supported_formats = [fmt.lower() for fmt in self.supported_formats]

    @property
    def max_content_length(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    def ensure_directories(self) -> None:
        self.upload_dir.mkdir(parents=True, exist_ok=True)


@dataclass
class APIConfig:
    """External provider settings (Mathpix extraction and OpenAI models)."""

    mathpix_app_id: str = ""
    mathpix_app_key: str = ""
    mathpix_api_url: str = "https://api.mathpix.com/v3"
    openai_api_key: str = ""
    openai_base_url: Optional[str] = None
    openai_model: str = "gpt-4o"
    structuring_model: str = "gpt-4o"
    llm_timeout: float = 120.0
    llm_temperature: float = 0.1
    ocr_request_timeout: float = 60.0
    ocr_poll_attempts: int = 30
    ocr_poll_delay: float = 10.0
    ocr_sync_limit_bytes: int = 1024 * 1024

    def __post_init__(self):
        if not (self.mathpix_app_id and self.mathpix_app_key):
            logger.warning(
                "Mathpix credentials not configured - document extraction will be unavailable"
            )
        if not self.openai_api_key:
            logger.warning(
                "OpenAI API key not configured - mark scheme structuring and LLM marking will be unavailable"
            )
        if self.ocr_poll_attempts < 1:
            raise ConfigurationError(
                "ocr_poll_attempts must be at least 1", config_key="OCR_POLL_ATTEMPTS"
            )
        if self.ocr_poll_delay < 0:
            raise ConfigurationError(
                "ocr_poll_delay must not be negative", config_key="OCR_POLL_DELAY"
            )


@dataclass
class GradingConfig:
    """Deterministic marking defaults.

    The tolerance levels are used whenever a mark scheme does not carry its
    own rule. When unset in the environment they fall back to "moderate" with
    a logged warning; ``strict`` turns a missing value into a startup error.
    """

    spelling_tolerance: Optional[str] = None
    formula_tolerance: Optional[str] = None
    numeric_tolerance: float = 0.01
    use_llm_marking: bool = False
    strict: bool = False

    def __post_init__(self):
        for name, levels in (
            ("spelling_tolerance", SPELLING_TOLERANCE_LEVELS),
            ("formula_tolerance", FORMULA_TOLERANCE_LEVELS),
        ):
            value = getattr(self, name)
            if value is None:
                if self.strict:
                    raise ConfigurationError(
                        f"{name.upper()} is not configured", config_key=name.upper()
                    )
                logger.warning(f"{name.upper()} not set, defaulting to 'moderate'")
                setattr(self, name, "moderate")
                continue
            value = value.strip().lower()
            if value not in levels:
                raise ConfigurationError(
                    f"{name} must be one of {list(levels)}", config_key=name.upper()
                )
            setattr(self, name, value)

        if self.numeric_tolerance < 0:
            raise ConfigurationError(
                "numeric_tolerance must not be negative", config_key="NUMERIC_TOLERANCE"
            )


@dataclass
class PipelineConfig:
    """Submission pipeline execution settings."""

    extraction_timeout: float = 600.0
    grading_timeout: float = 300.0
    extraction_attempts: int = 1
    executor: str = "thread"
    max_workers: int = 4

    def __post_init__(self):
        if self.executor not in ("thread", "celery"):
            raise ConfigurationError(
                "PIPELINE_EXECUTOR must be 'thread' or 'celery'", config_key="PIPELINE_EXECUTOR"
            )
        if self.extraction_timeout <= 0 or self.grading_timeout <= 0:
            raise ConfigurationError("Stage timeouts must be positive")
        if self.extraction_attempts < 1:
            raise ConfigurationError(
                "extraction_attempts must be at least 1", config_key="EXTRACTION_ATTEMPTS"
            )


@dataclass
class CeleryConfig:
    broker_url: str = "sqla+sqlite:///celery_broker.db"
    result_backend: str = "db+sqlite:///celery_results.db"


@dataclass
class LoggingConfig:
    """Logging configuration settings."""

    log_level: str = "INFO"
    log_file: Optional[str] = None

    def __post_init__(self):
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level.upper() not in valid_levels:
            raise ConfigurationError(f"log_level must be one of {valid_levels}")


@dataclass
class ServerConfig:
    """Server configuration settings."""

    host: str = "127.0.0.1"
    port: int = 5000
    debug: bool = False
    testing: bool = False
    secret_key: str = ""

    def __post_init__(self):
        if not (1 <= self.port <= 65535):
            raise ConfigurationError("port must be between 1 and 65535", config_key="PORT")


class UnifiedConfig:
    """Single entry point for every configuration section."""

    def __init__(self, environment: Optional[str] = None):
        self.environment = environment or os.getenv("APP_ENV", "development")
        self._load_configuration()
        logger.info(f"Configuration loaded for environment: {self.environment}")

    def _load_configuration(self) -> None:
        self.database = DatabaseConfig(
            database_url=os.getenv("DATABASE_URL", "sqlite:///chemgrader.db"),
            database_echo=_env_bool("DATABASE_ECHO"),
        )

        supported_formats = [
            fmt.strip() if fmt.strip().startswith(".") else "." + fmt.strip()
            for fmt in os.getenv("SUPPORTED_FORMATS", "").split(",")
            if fmt.strip()
        ]
        self.files = FileConfig(
            upload_dir=Path(os.getenv("UPLOAD_DIR", "uploads")),
            max_file_size_mb=int(os.getenv("MAX_FILE_SIZE_MB", "50")),
            supported_formats=supported_formats or [".pdf", ".png", ".jpg", ".jpeg"],
        )

        self.api = APIConfig(
            mathpix_app_id=os.getenv("MATHPIX_APP_ID", ""),
            mathpix_app_key=os.getenv("MATHPIX_APP_KEY", ""),
            mathpix_api_url=os.getenv("MATHPIX_API_URL", "https://api.mathpix.com/v3"),
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            openai_base_url=os.getenv("OPENAI_BASE_URL") or None,
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o"),
            structuring_model=os.getenv("STRUCTURING_MODEL", os.getenv("OPENAI_MODEL", "gpt-4o")),
            llm_timeout=float(os.getenv("LLM_TIMEOUT", "120")),
            ocr_poll_attempts=int(os.getenv("OCR_POLL_ATTEMPTS", "30")),
            ocr_poll_delay=float(os.getenv("OCR_POLL_DELAY", "10")),
        )

        self.grading = GradingConfig(
            spelling_tolerance=os.getenv("SPELLING_TOLERANCE") or None,
            formula_tolerance=os.getenv("FORMULA_TOLERANCE") or None,
            numeric_tolerance=float(os.getenv("NUMERIC_TOLERANCE", "0.01")),
            use_llm_marking=_env_bool("USE_LLM_MARKING"),
            strict=_env_bool("STRICT_CONFIG"),
        )

        self.pipeline = PipelineConfig(
            extraction_timeout=float(os.getenv("EXTRACTION_TIMEOUT", "600")),
            grading_timeout=float(os.getenv("GRADING_TIMEOUT", "300")),
            extraction_attempts=int(os.getenv("EXTRACTION_ATTEMPTS", "1")),
            executor=os.getenv("PIPELINE_EXECUTOR", "thread").lower(),
            max_workers=int(os.getenv("PIPELINE_MAX_WORKERS", "4")),
        )

        self.celery = CeleryConfig(
            broker_url=os.getenv("CELERY_BROKER_URL", "sqla+sqlite:///celery_broker.db"),
            result_backend=os.getenv("CELERY_RESULT_BACKEND", "db+sqlite:///celery_results.db"),
        )

        self.logging = LoggingConfig(
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_file=os.getenv("LOG_FILE"),
        )

        self.server = ServerConfig(
            host=os.getenv("HOST", "127.0.0.1"),
            port=int(os.getenv("PORT", "5000")),
            debug=_env_bool("DEBUG"),
            testing=self.environment == "testing",
            secret_key=self._get_secret_key(),
        )

    def _get_secret_key(self) -> str:
        secret_key = os.getenv("SECRET_KEY")
        if not secret_key:
            if self.environment == "production":
                raise ConfigurationError(
                    "SECRET_KEY must be set in production environment", config_key="SECRET_KEY"
                )
            secret_key = secrets.token_hex(32)
            logger.warning(
                "Using generated SECRET_KEY for development. Set SECRET_KEY for production."
            )
        return secret_key

    def get_flask_config(self) -> Dict[str, Any]:
        """
        Get Flask-compatible configuration dictionary.

        Returns:
            Dictionary of Flask configuration settings
        """
        engine_options: Dict[str, Any] = {"echo": self.database.database_echo}
        if self.database.database_url.startswith("sqlite"):
            # Pipeline threads share the SQLite file with request handlers.
            engine_options["connect_args"] = {"check_same_thread": False, "timeout": 30}

        return {
            "SECRET_KEY": self.server.secret_key,
            "DEBUG": self.server.debug,
            "TESTING": self.server.testing,
            "MAX_CONTENT_LENGTH": self.files.max_content_length,
            "UPLOAD_FOLDER": str(self.files.upload_dir),
            "SQLALCHEMY_DATABASE_URI": self.database.database_url,
            "SQLALCHEMY_TRACK_MODIFICATIONS": False,
            "SQLALCHEMY_ENGINE_OPTIONS": engine_options,
        }


config = UnifiedConfig()
