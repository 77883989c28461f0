"""
Shared FastAPI dependencies.
"""

from typing import Annotated

from fastapi import Depends, Request

from jobqueue.queue import Queue


def get_queue(request: Request) -> Queue:
    """Get the queue served by this application."""
    return request.app.state.queue


QueueDep = Annotated[Queue, Depends(get_queue)]
