"""Core services and shared components for the portrait pipeline."""

from .archive import ArchiveBuilder, ArchiveEntry, crc32
from .dispatcher import GenerationDispatcher
from .exceptions import (
    APIError,
    ConfigurationError,
    ErrorKind,
    FileIOError,
    GenerationAggregateError,
    InvalidInputError,
    NetworkError,
    PortraitPipelineError,
    SizeError,
    UploadError,
)
from .http import HTTPResponse, HttpxHTTPClient
from .logging_config import get_logger, setup_logger
from .models import (
    GenerationTask,
    Photo,
    PipelineResult,
    PollingConfig,
    ProgressCheckpoint,
    ServiceConfig,
    TaskState,
    Template,
    TrainingResource,
    style_code_from_name,
)
from .orchestrator import PipelineOrchestrator
from .provisioner import TrainingResourceProvisioner
from .session import CreditsLedger, GenerationSession

__all__ = [
    "APIError",
    "ArchiveBuilder",
    "ArchiveEntry",
    "ConfigurationError",
    "CreditsLedger",
    "ErrorKind",
    "FileIOError",
    "GenerationAggregateError",
    "GenerationDispatcher",
    "GenerationSession",
    "GenerationTask",
    "HTTPResponse",
    "HttpxHTTPClient",
    "InvalidInputError",
    "NetworkError",
    "Photo",
    "PipelineOrchestrator",
    "PipelineResult",
    "PollingConfig",
    "PortraitPipelineError",
    "ProgressCheckpoint",
    "ServiceConfig",
    "SizeError",
    "TaskState",
    "Template",
    "TrainingResource",
    "TrainingResourceProvisioner",
    "UploadError",
    "crc32",
    "get_logger",
    "setup_logger",
    "style_code_from_name",
]
