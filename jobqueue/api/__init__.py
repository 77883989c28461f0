"""
API module.
Contains the FastAPI application and routes for enqueueing and inspecting jobs.
"""

from jobqueue.api.main import create_app, run

__all__ = ["create_app", "run"]
