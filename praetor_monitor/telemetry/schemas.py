"""
Telemetry Schemas.

Pydantic models for the automation platform entities mirrored by the
monitor, plus the request bodies sent back to it.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# Enums
# =============================================================================

class JobStatus(str, Enum):
    """Job statuses the monitor recognizes. The server may send others."""

    NEW = "new"
    PENDING = "pending"
    WAITING = "waiting"
    RUNNING = "running"
    SUCCESSFUL = "successful"
    FAILED = "failed"
    ERROR = "error"
    CANCELED = "canceled"


ACTIVE_STATUSES = frozenset({
    JobStatus.NEW.value,
    JobStatus.PENDING.value,
    JobStatus.WAITING.value,
    JobStatus.RUNNING.value,
})

TERMINAL_STATUSES = frozenset({
    JobStatus.SUCCESSFUL.value,
    JobStatus.FAILED.value,
    JobStatus.ERROR.value,
    JobStatus.CANCELED.value,
})


# =============================================================================
# Common Models
# =============================================================================

class PlatformModel(BaseModel):
    """Base for models parsed from platform responses."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# =============================================================================
# Jobs and Events
# =============================================================================

class Job(PlatformModel):
    """A job as listed by the platform."""

    id: int
    name: str = ""
    status: str = JobStatus.PENDING.value
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    unified_job_template_id: Optional[int] = None
    current_run_id: Optional[str] = None

    @field_validator("current_run_id", mode="before")
    @classmethod
    def blank_run_id(cls, v):
        # The API sends "" instead of null for jobs that never ran
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return str(v)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class JobEvent(PlatformModel):
    """One unit of output produced during a run, ordered by ``seq``."""

    seq: int
    event_type: str = ""
    stdout_snippet: Optional[str] = ""
    task_name: Optional[str] = None
    play_name: Optional[str] = None
    host: Optional[str] = None
    created_at: Optional[datetime] = None
    current_run_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("current_run_id", "execution_run_id"),
    )

    @field_validator("current_run_id", mode="before")
    @classmethod
    def stringify_run_id(cls, v):
        if v is None or v == "":
            return None
        return str(v)


# =============================================================================
# Catalog
# =============================================================================

class Project(PlatformModel):
    """SCM-backed project holding playbooks."""

    id: int
    name: str
    scm_url: str = ""
    scm_type: str = "git"
    modified_at: Optional[datetime] = None


class JobTemplate(PlatformModel):
    """Reusable job definition: project + inventory + playbook."""

    id: int
    name: str
    project_id: Optional[int] = None
    inventory_id: Optional[int] = None
    playbook: str = ""
    organization_id: Optional[int] = None


class Inventory(PlatformModel):
    """Named collection of hosts and groups."""

    id: int
    name: str
    organization_id: Optional[int] = None


class VariablesModel(PlatformModel):
    """Entity carrying a free-form ``variables`` document."""

    variables: Optional[Dict[str, Any]] = None

    @field_validator("variables", mode="before")
    @classmethod
    def parse_variables(cls, v):
        # Some endpoints return the stored document as a JSON string
        if isinstance(v, str):
            try:
                v = json.loads(v) if v.strip() else None
            except ValueError:
                return None
        return v if isinstance(v, dict) else None


class Host(VariablesModel):
    """Target host within an inventory."""

    id: int
    inventory_id: Optional[int] = None
    name: str
    enabled: bool = True


class Group(VariablesModel):
    """Host group within an inventory."""

    id: int
    inventory_id: Optional[int] = None
    name: str


class ProjectSyncResult(PlatformModel):
    """Outcome envelope returned by the project sync endpoint."""

    success: bool = False
    revision: Optional[str] = None
    commit_msg: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None

    @field_validator("revision", "commit_msg", mode="before")
    @classmethod
    def strip_git_output(cls, v):
        # Values come straight from git stdout with trailing newlines
        if isinstance(v, str):
            return v.strip() or None
        return v


# =============================================================================
# Request Bodies
# =============================================================================

class JobLaunchRequest(BaseModel):
    """Body for launching a job."""

    name: str
    unified_job_template_id: Optional[int] = None


class ProjectCreate(BaseModel):
    """Body for creating a project."""

    name: str = Field(..., min_length=1)
    scm_url: str = Field(..., min_length=1)
    scm_type: str = "git"
    organization_id: int = 1


class JobTemplateWrite(BaseModel):
    """Body for creating or updating a job template."""

    name: str = Field(..., min_length=1)
    project_id: int
    inventory_id: int
    playbook: str = Field(..., min_length=1)
    organization_id: int = 1


class InventoryCreate(BaseModel):
    """Body for creating an inventory."""

    name: str = Field(..., min_length=1)
    organization_id: int = 1


class HostCreate(BaseModel):
    """Body for creating a host."""

    name: str = Field(..., min_length=1)
    variables: Dict[str, Any] = Field(default_factory=dict)


class GroupCreate(BaseModel):
    """Body for creating a group."""

    name: str = Field(..., min_length=1)


class GroupMembershipRequest(BaseModel):
    """Body for adding a host to a group."""

    host_id: int


# =============================================================================
# Dashboard
# =============================================================================

class JobSummary(BaseModel):
    """Aggregate job counts shown on the dashboard."""

    total: int = 0
    successful: int = 0
    failed: int = 0
    running: int = 0
    success_rate: int = 0
    recent: List[Job] = Field(default_factory=list)


# =============================================================================
# Operator Outcomes
# =============================================================================

class OutcomeStatus(str, Enum):
    """How a one-shot operator action ended."""

    SUCCEEDED = "succeeded"
    # The request itself failed: transport error or non-success status
    REQUEST_FAILED = "request_failed"
    # The platform executed the operation and reported a failure
    REPORTED_FAILURE = "reported_failure"
    # Rejected locally before any request was made
    INVALID_INPUT = "invalid_input"


class ActionOutcome(BaseModel):
    """Result of a one-shot action, shown to the operator."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    status: OutcomeStatus
    message: str = ""
    data: Optional[Any] = None

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.SUCCEEDED

    @classmethod
    def succeeded(cls, message: str = "", data: Any = None) -> "ActionOutcome":
        return cls(status=OutcomeStatus.SUCCEEDED, message=message, data=data)

    @classmethod
    def request_failed(cls, message: str) -> "ActionOutcome":
        return cls(status=OutcomeStatus.REQUEST_FAILED, message=message)

    @classmethod
    def reported_failure(cls, message: str, data: Any = None) -> "ActionOutcome":
        return cls(status=OutcomeStatus.REPORTED_FAILURE, message=message, data=data)

    @classmethod
    def invalid_input(cls, message: str) -> "ActionOutcome":
        return cls(status=OutcomeStatus.INVALID_INPUT, message=message)
