"""Job envelope exchanged between the API and the execution worker."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class WorkflowJob(BaseModel):
    """
    Envelope placed on the queue for one workflow execution. The job id is
    the execution id so an execution is never queued twice under different ids.
    """

    message_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    execution_id: str
    workflow_id: str
    client_id: str
    user_id: Optional[str] = None
    workflow_type: str = "standard"
    input_data: Dict[str, Any] = Field(default_factory=dict)
    config: Dict[str, Any] = Field(default_factory=dict)
    attempt: int = 1
    max_attempts: int = 3
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def job_id(self) -> str:
        return self.execution_id

    @property
    def has_attempts_left(self) -> bool:
        return self.attempt < self.max_attempts

    def next_attempt(self) -> "WorkflowJob":
        """Return a copy scheduled for the following attempt."""
        return self.model_copy(
            update={
                "attempt": self.attempt + 1,
                "message_id": str(uuid.uuid4()),
                "timestamp": datetime.now(timezone.utc),
            }
        )

    def to_json(self) -> str:
        """Serialize job to JSON."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "WorkflowJob":
        """Deserialize job from JSON."""
        return cls.model_validate_json(data)
