"""
Logging Configuration Module
============================

Responsibility:
- Root logger level and handlers for a pipeline run.
- Colored console output and a rotating UTF-8 file log.
"""

from .logging_config import LoggingConfigurator, ColoredFormatter

__all__ = ['LoggingConfigurator', 'ColoredFormatter']
