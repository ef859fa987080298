"""
Utilities - logging setup.

OutputManager lives in smclearn.utils.output_manager and is imported from
there directly.
"""

from smclearn.utils.logger import setup_logger, get_logger

__all__ = [
    "setup_logger",
    "get_logger",
]
