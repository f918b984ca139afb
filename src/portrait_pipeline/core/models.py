"""Shared data models and configuration for the portrait pipeline."""

import os
import re
import uuid
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import ConfigurationError, ErrorKind, PortraitPipelineError


class Photo(BaseModel):
    """User-supplied photo; the payload may be missing when the file was not loaded."""

    model_config = ConfigDict(frozen=True)

    id: str
    data: Optional[bytes] = None

    @property
    def has_payload(self) -> bool:
        return bool(self.data)


class Template(BaseModel):
    """Style template; list order defines the output order."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    style_code: str


class TrainingResource(BaseModel):
    """Fine-tuned resource produced by one provisioning run."""

    resource_id: str


class ProgressCheckpoint(str, Enum):
    """Informational progress signals emitted while provisioning."""

    ARCHIVE_UPLOADED = "archive_uploaded"
    FINE_TUNE_JOB_CREATED = "fine_tune_job_created"
    TRAINING_RESOURCE_READY = "training_resource_ready"


class TaskState(str, Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    QUEUED = "queued"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class GenerationTask(BaseModel):
    """Per-template unit of work, mutated only by the worker that owns it."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    index: int
    template: Template
    state: TaskState = TaskState.PENDING
    task_id: Optional[str] = None
    urls: List[str] = Field(default_factory=list)
    error: Optional[PortraitPipelineError] = None

    def mark_submitted(self) -> None:
        self.state = TaskState.SUBMITTED

    def mark_queued(self, task_id: str) -> None:
        self.state = TaskState.QUEUED
        self.task_id = task_id

    def mark_succeeded(self, urls: List[str]) -> None:
        self.state = TaskState.SUCCEEDED
        self.urls = list(urls)

    def mark_failed(self, error: PortraitPipelineError) -> None:
        self.state = TaskState.FAILED
        self.error = error

    @property
    def is_terminal(self) -> bool:
        return self.state in (TaskState.SUCCEEDED, TaskState.FAILED)


class PipelineResult(BaseModel):
    """Outcome of a pipeline run: ordered URLs, or a classified error."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool = False
    urls: List[str] = Field(default_factory=list)
    error_kind: Optional[ErrorKind] = None
    error_message: str = ""
    succeeded_count: Optional[int] = None
    template_count: Optional[int] = None
    correlation_id: str = ""
    error: Optional[PortraitPipelineError] = Field(default=None, exclude=True)

    @classmethod
    def from_urls(cls, urls: List[str], correlation_id: str = "") -> "PipelineResult":
        return cls(success=True, urls=urls, correlation_id=correlation_id)

    @classmethod
    def from_error(
        cls, error: PortraitPipelineError, correlation_id: str = ""
    ) -> "PipelineResult":
        return cls(
            success=False,
            error_kind=error.kind,
            error_message=str(error),
            succeeded_count=getattr(error, "succeeded", None),
            template_count=getattr(error, "total", None),
            correlation_id=correlation_id,
            error=error,
        )

    def raise_for_error(self) -> List[str]:
        """Return the URLs, or re-raise the classified error of a failed run."""
        if self.error is not None:
            raise self.error
        return self.urls


class PollingConfig(BaseModel):
    """Interval and attempt budgets for the two polling loops."""

    model_config = ConfigDict(frozen=True)

    training_interval: float = Field(default=10.0, ge=0)
    training_max_attempts: int = Field(default=36, gt=0)
    generation_interval: float = Field(default=5.0, ge=0)
    generation_max_attempts: int = Field(default=18, gt=0)


class ServiceConfig(BaseModel):
    """Configuration for talking to the remote portrait service."""

    api_key: str = ""
    base_url: str = "https://dashscope.aliyuncs.com/api/v1"
    generation_path: str = "services/aigc/album/gen_potrait"
    finetune_model: str = "facechain-finetune"
    generation_model: str = "facechain-generation"
    resource_type: str = "facelora"
    image_size: str = "768*1024"
    images_per_template: int = Field(default=4, gt=0)
    request_timeout: float = Field(default=60.0, gt=0)
    polling: PollingConfig = Field(default_factory=PollingConfig)

    @property
    def files_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/files"

    @property
    def fine_tunes_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/fine-tunes"

    @property
    def generation_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/{self.generation_path.strip('/')}"

    @property
    def tasks_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/tasks"

    def auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    @classmethod
    def from_env(cls, **overrides: Any) -> "ServiceConfig":
        """
        Build a configuration from environment variables.

        Environment Variables:
            DASHSCOPE_API_KEY: Bearer credential for every request
            DASHSCOPE_BASE_URL: Service root (defaults to the public endpoint)
            PORTRAIT_TRAINING_INTERVAL / PORTRAIT_TRAINING_MAX_ATTEMPTS
            PORTRAIT_GENERATION_INTERVAL / PORTRAIT_GENERATION_MAX_ATTEMPTS

        Raises:
            ConfigurationError: If an environment value or override is invalid
        """
        polling_env = {
            "training_interval": os.getenv("PORTRAIT_TRAINING_INTERVAL"),
            "training_max_attempts": os.getenv("PORTRAIT_TRAINING_MAX_ATTEMPTS"),
            "generation_interval": os.getenv("PORTRAIT_GENERATION_INTERVAL"),
            "generation_max_attempts": os.getenv("PORTRAIT_GENERATION_MAX_ATTEMPTS"),
        }
        try:
            values: Dict[str, Any] = {
                "api_key": os.getenv("DASHSCOPE_API_KEY", ""),
                "polling": PollingConfig(
                    **{k: v for k, v in polling_env.items() if v is not None}
                ),
            }
            base_url = os.getenv("DASHSCOPE_BASE_URL")
            if base_url:
                values["base_url"] = base_url
            values.update(overrides)
            return cls(**values)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid service configuration: {exc}") from exc


_STYLE_CODE_SEPARATORS = re.compile(r"[^\w]+")


def style_code_from_name(name: str) -> str:
    """Derive a service style code from a template display name."""
    parts = _STYLE_CODE_SEPARATORS.split(name.lower().replace("-", "_"))
    code = "_".join(part for part in parts if part)
    return code or f"style_{uuid.uuid4().hex[:6]}"
