"""
Lesson Scheduler.

Recurring lesson scheduling with sparse per-occurrence exceptions.
"""

__version__ = "0.1.0"
