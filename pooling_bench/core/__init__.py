"""Core modules for Pooling Bench.

Provides fundamental functionality: logging, fit artifacts, batch execution,
prediction, evaluation and cross-validation.
"""

from pooling_bench.core.logger import get_logger, set_log_level

__all__ = ['get_logger', 'set_log_level']
