"""
Utility modules for neighbor search.
"""

from .log import get_logger
from .profiling import Profiler, parse_flag
from .metrics import (
    recall_at_k,
    mean_recall,
    distance_error,
    summarize
)

__all__ = [
    'get_logger',
    'Profiler',
    'parse_flag',
    'recall_at_k',
    'mean_recall',
    'distance_error',
    'summarize'
]
