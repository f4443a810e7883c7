"""
Concurrency control for scheduled pipeline runs
"""

from .semaphore import (
    AsyncSemaphore,
    SemaphoreManager,
    SemaphoreStats,
    get_semaphore_manager,
)

__all__ = [
    "AsyncSemaphore",
    "SemaphoreManager",
    "SemaphoreStats",
    "get_semaphore_manager",
]
