"""
Job descriptors exchanged over the queues.

Messages are flat JSON objects: {"type": ..., "user_id": ..., <named fields>}.
"""
import json
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.core.errors import JobDecodeError, UnknownJobTypeError


class JobType(str, Enum):
    NEW_RECORD = "NEW_EXPENSE"
    UPDATE_RECORD = "UPDATE_EXPENSE"
    DELETE_RECORD = "DELETE_EXPENSE"
    COMPUTE_TRENDS = "CALCULATE_PATTERNS"
    SEND_REPORT = "EXPENSE_SUMMARY_EMAIL"


MUTATION_JOB_TYPES = (JobType.NEW_RECORD, JobType.UPDATE_RECORD, JobType.DELETE_RECORD)


class Job(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: JobType
    user_id: str
    expense_id: Optional[str] = None
    # SEND_REPORT
    period: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    email: Optional[str] = None
    name: Optional[str] = None
    # tracing
    job_id: str = Field(default_factory=lambda: uuid4().hex)
    enqueued_at: str = Field(default_factory=lambda: datetime.utcnow().isoformat())

    def to_message(self) -> str:
        return self.model_dump_json(exclude_none=True)

    @classmethod
    def from_message(cls, body: str) -> "Job":
        """Decode a queue message, checking the type before anything else."""
        try:
            data = json.loads(body)
        except (TypeError, ValueError) as e:
            raise JobDecodeError(f"Message body is not JSON: {e}") from e
        if not isinstance(data, dict):
            raise JobDecodeError("Message body is not a JSON object")

        job_type = data.get("type")
        if not isinstance(job_type, str) or job_type not in {t.value for t in JobType}:
            raise UnknownJobTypeError(job_type)

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise JobDecodeError(f"Invalid {job_type} job: {e}") from e
