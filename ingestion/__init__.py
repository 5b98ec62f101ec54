"""FX rate ingestion package bootstrap."""

from .celery_app import create_celery_app, get_celery_app  # noqa: F401
from .settings import Settings, SourceConfig, get_settings, reset_settings_cache  # noqa: F401

__all__ = [
    "Settings",
    "SourceConfig",
    "create_celery_app",
    "get_celery_app",
    "get_settings",
    "reset_settings_cache",
]
