"""
Distributed Job Queue

A priority-ordered job queue on Redis: workers block on a per-type signal
list, atomically claim the highest-priority pending job, and report
completion through lifecycle events.
"""

__version__ = "1.0.0"
