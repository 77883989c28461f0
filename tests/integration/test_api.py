"""
Integration tests for the API endpoints.
"""

import asyncio

import pytest
import pytest_asyncio
from httpx import AsyncClient

from jobqueue.constants import JobState
from jobqueue.queue import Queue
from jobqueue.types.events import JobEventKind
from jobqueue.types.job import JobContext


@pytest_asyncio.fixture
async def created_job(client: AsyncClient) -> dict:
    """Create a job for testing."""
    response = await client.post(
        "/v1/jobs",
        json={"type": "echo", "data": {"test": True}, "max_attempts": 3},
    )
    return response.json()


class TestJobAPI:
    """Integration tests for job API endpoints."""

    @pytest.mark.asyncio
    async def test_create_job_success(self, client: AsyncClient, sample_job_data: dict):
        """Test successful job creation."""
        response = await client.post(
            "/v1/jobs",
            json={"type": "echo", "data": sample_job_data, "priority": "critical"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["id"] == "1"
        assert data["type"] == "echo"
        assert data["state"] == JobState.INACTIVE
        assert data["priority"] == -15

    @pytest.mark.asyncio
    async def test_create_job_numeric_priority(self, client: AsyncClient):
        """Test a raw priority score is accepted."""
        response = await client.post("/v1/jobs", json={"type": "echo", "priority": 7})

        assert response.status_code == 201
        assert response.json()["priority"] == 7

    @pytest.mark.asyncio
    async def test_create_job_invalid_request(self, client: AsyncClient):
        """Test job creation rejects a missing type and bad priorities."""
        response = await client.post("/v1/jobs", json={"data": {}})
        assert response.status_code == 422

        response = await client.post("/v1/jobs", json={"type": "echo", "priority": "urgent"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_create_job_on_closed_queue(self, client: AsyncClient, queue: Queue):
        """Test submissions are refused once the queue is closed."""
        await queue.close()

        response = await client.post("/v1/jobs", json={"type": "echo"})

        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_get_job(self, client: AsyncClient, created_job: dict):
        """Test getting job details."""
        response = await client.get(f"/v1/jobs/{created_job['id']}")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == created_job["id"]
        assert data["data"] == {"test": True}
        assert data["max_attempts"] == 3
        assert data["attempts_made"] == 0
        assert data["state"] == JobState.INACTIVE

    @pytest.mark.asyncio
    async def test_get_job_with_list_result(self, client: AsyncClient, queue: Queue):
        """Test a completed job with a list result is served."""
        completed = asyncio.Event()
        queue.on(JobEventKind.COMPLETE, lambda message: completed.set())

        async def rows(ctx: JobContext) -> None:
            ctx.done([1, 2, 3])

        job = await queue.create_job("rows")
        queue.process("rows", rows)
        await asyncio.wait_for(completed.wait(), timeout=2)

        response = await client.get(f"/v1/jobs/{job.id}")

        assert response.status_code == 200
        assert response.json()["state"] == JobState.COMPLETE
        assert response.json()["result"] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_get_job_not_found(self, client: AsyncClient):
        """Test getting a non-existent job."""
        response = await client.get("/v1/jobs/404")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_remove_job(self, client: AsyncClient, created_job: dict):
        """Test removing a job."""
        response = await client.delete(f"/v1/jobs/{created_job['id']}")
        assert response.status_code == 204

        response = await client.get(f"/v1/jobs/{created_job['id']}")
        assert response.status_code == 404

        response = await client.delete(f"/v1/jobs/{created_job['id']}")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_job_stats(self, client: AsyncClient, created_job: dict):
        """Test job statistics by state."""
        await client.post("/v1/jobs", json={"type": "sleep"})

        response = await client.get("/v1/jobs/stats/summary")

        assert response.status_code == 200
        data = response.json()
        assert data["stats"]["inactive"] == 2
        assert data["job_types"] == ["echo", "sleep"]

        response = await client.get("/v1/jobs/stats/summary", params={"job_type": "sleep"})

        assert response.json()["job_type"] == "sleep"
        assert response.json()["stats"]["inactive"] == 1


class TestHealthAPI:
    """Integration tests for health endpoints."""

    @pytest.mark.asyncio
    async def test_health_check(self, client: AsyncClient):
        """Test health check endpoint."""
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["backend"] == "healthy"
        assert "version" in data

    @pytest.mark.asyncio
    async def test_health_check_degraded(self, client: AsyncClient, queue: Queue):
        """Test health reports a closed backend."""
        await queue.close()

        response = await client.get("/health")

        assert response.json()["status"] == "degraded"

    @pytest.mark.asyncio
    async def test_liveness_check(self, client: AsyncClient):
        """Test liveness endpoint."""
        response = await client.get("/live")

        assert response.status_code == 200
        assert response.json()["alive"] is True

    @pytest.mark.asyncio
    async def test_metrics_endpoint(self, client: AsyncClient, created_job: dict):
        """Test Prometheus metrics endpoint."""
        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "jobs_submitted_total" in response.text
