"""
Job model.

The in-memory representation of one unit of work. Jobs are persisted as a
flat string hash in the backend store; `to_hash` and `from_hash` convert
between the two representations.
"""

import json
import time
from typing import Any

from pydantic import BaseModel, Field

from jobqueue.constants import ALLOWED_TRANSITIONS, SEQUENCE_WIDTH, JobState

# Fields stored as JSON documents inside the hash
_JSON_FIELDS = frozenset({"data", "result"})


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def make_zid(seq: int, job_id: str) -> str:
    """
    Build the priority-set member for a job.

    Members with equal scores sort lexicographically, so the zero-padded
    insertion sequence keeps equal-priority jobs in FIFO order.
    """
    return f"{seq:0{SEQUENCE_WIDTH}d}:{job_id}"


def strip_sequence(member: str) -> str:
    """Extract the job id from a priority-set member."""
    _, sep, job_id = member.partition(":")
    return job_id if sep else member


def encode_fields(**fields: Any) -> dict[str, str]:
    """
    Encode job fields for storage in the backend hash.

    None values are skipped; `data` and `result` are JSON encoded.
    """
    raw: dict[str, str] = {}
    for name, value in fields.items():
        if value is None:
            continue
        if name in _JSON_FIELDS:
            raw[name] = json.dumps(value)
        elif isinstance(value, bool):
            raw[name] = "true" if value else "false"
        else:
            raw[name] = str(value)
    return raw


class Job(BaseModel):
    """
    A unit of work tagged with a type and a priority.

    State changes go through `JobRepository`, which validates each one
    against `ALLOWED_TRANSITIONS` via `can_transition` before persisting.
    """

    id: str
    type: str
    data: dict[str, Any] = Field(default_factory=dict)
    priority: int = 0
    seq: int = 0
    state: JobState = JobState.INACTIVE
    attempts_made: int = 0
    max_attempts: int = Field(default=1, ge=1)
    created_at: int = Field(default_factory=now_ms)
    updated_at: int | None = None
    started_at: int | None = None
    failed_at: int | None = None
    duration: int | None = None
    result: Any = None
    error: str | None = None
    progress: int = 0
    remove_on_complete: bool = False

    @property
    def zid(self) -> str:
        """Member used for this job in the priority and state sets."""
        return make_zid(self.seq, self.id)

    @property
    def has_attempts(self) -> bool:
        """Check if the job may still be retried."""
        return self.attempts_made < self.max_attempts

    def can_transition(self, to_state: JobState) -> bool:
        """Check whether moving to `to_state` is a legal transition."""
        return to_state in ALLOWED_TRANSITIONS[self.state]

    def to_json(self) -> dict[str, Any]:
        """Full persisted representation, JSON-compatible."""
        return self.model_dump(mode="json")

    def to_hash(self) -> dict[str, str]:
        """Encode the job as a flat string hash."""
        return encode_fields(**self.model_dump(mode="json"))

    @classmethod
    def from_hash(cls, raw: dict[str, str]) -> "Job":
        """Decode a job from its stored hash."""
        values: dict[str, Any] = {}
        for name, value in raw.items():
            if name not in cls.model_fields:
                continue
            if name in _JSON_FIELDS:
                values[name] = json.loads(value)
            elif name == "remove_on_complete":
                values[name] = value == "true"
            else:
                values[name] = value
        return cls.model_validate(values)
