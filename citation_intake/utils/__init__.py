"""Utility modules for configuration, logging, and error handling."""

from .config import Config
from .logging import setup_logging, set_context, clear_context

__all__ = [
    'Config',
    'setup_logging',
    'set_context',
    'clear_context'
]
