"""Configuration package."""

from .unified_config import (
    APIConfig,
    DatabaseConfig,
    FileConfig,
    GradingConfig,
    PipelineConfig,
    UnifiedConfig,
    config,
)

__all__ = [
    "APIConfig",
    "DatabaseConfig",
    "FileConfig",
    "GradingConfig",
    "PipelineConfig",
    "UnifiedConfig",
    "config",
]
