"""
Notifications module.
Contains the in-process event bus and lifecycle event emission.
"""

from jobqueue.notifications.bus import EventBus, Subscription
from jobqueue.notifications.emitter import emit_job_event

__all__ = ["EventBus", "Subscription", "emit_job_event"]
