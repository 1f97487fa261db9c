"""
Utility modules for the catalog drafter
"""

from .config import ConfigManager
from .logging_setup import setup_logging
from .progress import CancellationToken, ProgressEvent, ProgressTracker
from .retry import RetryPolicy
from .text_processing import TextProcessor

__all__ = [
    "ConfigManager",
    "setup_logging",
    "CancellationToken",
    "ProgressEvent",
    "ProgressTracker",
    "RetryPolicy",
    "TextProcessor",
]
