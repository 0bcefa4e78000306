"""Domain models for job submission."""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ExecutionMode(Enum):
    """How the job reaches Nomad: HTTP API from CI, or the local nomad CLI."""
    AUTOMATED = "automated"
    LOCAL = "local"


class JobState(Enum):
    RUNNING = "running"
    NOT_RUNNING = "not-running"
    TIMED_OUT = "timed-out"


@dataclass
class SubmissionResult:
    """Outcome of one job registration request."""
    status_code: int
    eval_id: Optional[str] = None

    @property
    def eval_id_display(self) -> str:
        return self.eval_id if self.eval_id else "unavailable"


@dataclass
class StatusObservation:
    """Last job status seen while waiting for the job to run."""
    state: JobState
    status: Optional[str]
    attempts: int


@dataclass
class DeploymentOutcome:
    mode: ExecutionMode
    submission: Optional[SubmissionResult] = None
    observation: Optional[StatusObservation] = None

    @property
    def running(self) -> bool:
        if self.mode is ExecutionMode.LOCAL:
            return True
        return self.observation is not None and self.observation.state is JobState.RUNNING


class SubmissionFailed(Exception):
    """Nomad rejected the job, or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class JobConversionError(SubmissionFailed):
    """The job file could not be converted to Nomad's JSON format."""
    pass
