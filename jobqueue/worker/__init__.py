"""
Worker module.
Contains the worker engine, the handler registry, and the worker process.
"""

from jobqueue.worker.engine import ProcessingLogic, Worker

__all__ = ["ProcessingLogic", "Worker"]
