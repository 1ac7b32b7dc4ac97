"""
Core module - Configuration and cross-cutting concerns.

This module provides:
- config.py         : Environment-based configuration management
- logging_config.py : Centralized logging setup
- exceptions.py     : Error taxonomy shared by services and the API
- context.py        : Explicit caller identity
- tasks.py          : Background task queue
"""
from companion.core.config import get_settings, Settings
from companion.core.context import RequestContext
from companion.core.logging_config import setup_logging, get_logger, LoggerMixin
from companion.core.tasks import BackgroundTaskQueue

__all__ = [
    "get_settings",
    "Settings",
    "RequestContext",
    "setup_logging",
    "get_logger",
    "LoggerMixin",
    "BackgroundTaskQueue",
]
