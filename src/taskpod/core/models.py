"""Data models for tasks and their execution history."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

TASK_ID_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9._-]{0,63}$"


class ExecutionStatus(str, Enum):
    """Outcome of a single task execution."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class TaskExecution(BaseModel):
    """One immutable record of a single run of a task's command."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    start_time: datetime
    end_time: datetime
    output: str = ""
    status: ExecutionStatus = ExecutionStatus.SUCCEEDED
    exit_code: int | None = None
    executed_via_fallback: bool = Field(
        default=False,
        description="The command ran in a local child process instead of a cluster sandbox.",
    )

    @model_validator(mode="after")
    def _check_times(self) -> TaskExecution:
        if self.end_time < self.start_time:
            msg = "end_time must not be earlier than start_time"
            raise ValueError(msg)
        return self

    @property
    def failed(self) -> bool:
        return self.status != ExecutionStatus.SUCCEEDED

    @property
    def duration(self) -> float:
        """Wall-clock duration in seconds."""
        return (self.end_time - self.start_time).total_seconds()


class Task(BaseModel):
    """A stored command definition with its execution history."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(..., pattern=TASK_ID_PATTERN)
    name: str = Field(..., min_length=1)
    owner: str = Field(..., min_length=1)
    command: str = Field(..., min_length=1)
    executions: list[TaskExecution] = Field(default_factory=list)

    def dump(self) -> bytes:
        """Serialise the task to JSON bytes (camelCase keys)."""
        return self.model_dump_json(by_alias=True).encode()

    @classmethod
    def load(cls, data: bytes | str) -> Task:
        """Deserialise a task produced by :meth:`dump`."""
        return cls.model_validate_json(data)
