"""
Unit tests for the event bus and lifecycle event routing.
"""

import asyncio

import pytest

from jobqueue.notifications.bus import EventBus
from jobqueue.notifications.emitter import emit_job_event
from jobqueue.store.models import Job
from jobqueue.types.events import (
    EVENT_ROUTES,
    JobEventKind,
    done_address,
    fail_address,
    route_addresses,
)


class TestEventBus:
    """Tests for the in-process event bus."""

    def test_publish_delivers_to_subscribers(self, bus: EventBus):
        """Test every listener on an address receives the message."""
        first, second = [], []
        bus.subscribe("a", first.append)
        bus.subscribe("a", second.append)

        delivered = bus.publish("a", {"n": 1})

        assert delivered == 2
        assert first == [{"n": 1}]
        assert second == [{"n": 1}]

    def test_publish_other_address(self, bus: EventBus):
        """Test listeners only receive messages for their address."""
        received = []
        bus.subscribe("a", received.append)

        assert bus.publish("b", "message") == 0
        assert received == []

    def test_unsubscribe(self, bus: EventBus):
        """Test an unsubscribed listener receives nothing."""
        received = []
        subscription = bus.subscribe("a", received.append)

        subscription.unsubscribe()
        subscription.unsubscribe()
        bus.publish("a", "message")

        assert received == []
        assert bus.listener_count() == 0

    def test_listener_error_is_isolated(self, bus: EventBus):
        """Test a raising listener does not stop delivery."""
        received = []

        def broken(message):
            raise ValueError("boom")

        bus.subscribe("a", broken)
        bus.subscribe("a", received.append)

        assert bus.publish("a", "message") == 2
        assert received == ["message"]

    @pytest.mark.asyncio
    async def test_async_listener_is_scheduled(self, bus: EventBus):
        """Test coroutine listeners run as tasks."""
        received = asyncio.Event()

        async def listener(message):
            received.set()

        bus.subscribe("a", listener)
        bus.publish("a", "message")

        await asyncio.wait_for(received.wait(), timeout=1)


class TestEventRouting:
    """Tests for lifecycle event addresses and payloads."""

    @pytest.fixture
    def job(self) -> Job:
        return Job(id="7", type="email", seq=7)

    def test_completion_addresses(self):
        """Test the processing logic signal addresses."""
        assert done_address("7") == "done:7"
        assert fail_address("7") == "done_fail:7"

    def test_every_kind_has_a_route(self):
        """Test the routing table covers every event kind."""
        assert set(EVENT_ROUTES) == set(JobEventKind)

    def test_failed_goes_to_exactly_two_addresses(self, bus: EventBus, job: Job):
        """Test `failed` is published globally and to the job's address."""
        addresses = emit_job_event(bus, JobEventKind.FAILED, job, {"message": "x"})

        assert addresses == ["job_failed", "job:7:failed"]
        assert route_addresses(JobEventKind.FAILED, "7") == addresses

    def test_error_is_global_only(self, bus: EventBus, job: Job):
        """Test `error` never reaches a per-job address."""
        per_job = []
        bus.subscribe("job:7:error", per_job.append)

        addresses = emit_job_event(bus, JobEventKind.ERROR, job, {"message": "x"})

        assert addresses == ["job_error"]
        assert per_job == []

    def test_error_without_job(self, bus: EventBus):
        """Test `error` can be emitted when no job is known."""
        received = []
        bus.subscribe("job_error", received.append)

        emit_job_event(bus, JobEventKind.ERROR, None, {"message": "job_not_exist"})

        assert received == [{"job": None, "extra": {"message": "job_not_exist"}}]

    def test_start_sends_bare_job_to_job_address(self, bus: EventBus, job: Job):
        """Test `start` and `complete` deliver the job itself per job."""
        global_received, job_received = [], []
        bus.subscribe("job_start", global_received.append)
        bus.subscribe("job:7:start", job_received.append)

        emit_job_event(bus, JobEventKind.START, job)

        assert global_received == [{"job": job.to_json(), "extra": None}]
        assert job_received == [job.to_json()]

    def test_failed_attempt_sends_envelope_to_job_address(self, bus: EventBus, job: Job):
        """Test `failed_attempt` delivers the full envelope per job."""
        job_received = []
        bus.subscribe("job:7:failed_attempt", job_received.append)

        emit_job_event(bus, JobEventKind.FAILED_ATTEMPT, job, {"message": "retry"})

        assert job_received == [{"job": job.to_json(), "extra": {"message": "retry"}}]
