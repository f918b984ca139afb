"""Classified exceptions for the portrait pipeline."""

from __future__ import annotations

from enum import Enum
from typing import List, Sequence


class ErrorKind(str, Enum):
    """Classification attached to every pipeline failure."""

    INVALID_INPUT = "invalid_input"
    NETWORK = "network"
    API = "api"
    UPLOAD = "upload"
    FILE_IO = "file_io"
    CONFIGURATION = "configuration"


class PortraitPipelineError(Exception):
    """Base exception for all portrait pipeline errors."""

    kind: ErrorKind = ErrorKind.API
    prefix: str = "Pipeline error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.prefix}: {self.message}"


class InvalidInputError(PortraitPipelineError):
    """Local precondition failure; no network call was attempted."""

    kind = ErrorKind.INVALID_INPUT
    prefix = "Invalid input"


class NetworkError(PortraitPipelineError):
    """Transport-level failure talking to the remote service."""

    kind = ErrorKind.NETWORK
    prefix = "Network error"


class APIError(PortraitPipelineError):
    """Remote error status, unexpected payload or exhausted polling budget."""

    kind = ErrorKind.API
    prefix = "API error"


class UploadError(PortraitPipelineError):
    """Training archive upload failed."""

    kind = ErrorKind.UPLOAD
    prefix = "Upload error"


class FileIOError(PortraitPipelineError):
    """Training archive could not be built."""

    kind = ErrorKind.FILE_IO
    prefix = "File I/O error"


class SizeError(FileIOError):
    """Archive entry count, name length or payload size exceeds the format limits."""


class ConfigurationError(PortraitPipelineError):
    """Error raised for invalid configuration options."""

    kind = ErrorKind.CONFIGURATION
    prefix = "Configuration error"


class GenerationAggregateError(APIError):
    """One or more templates failed; carries the partial-success counts."""

    def __init__(self, succeeded: int, total: int, messages: Sequence[str]) -> None:
        self.succeeded = succeeded
        self.total = total
        self.messages: List[str] = list(messages)
        joined = "; ".join(self.messages)
        if succeeded == 0:
            message = f"Generation failed for all templates: {joined}"
        else:
            message = (
                f"Generation partially failed ({succeeded} of {total} succeeded): "
                f"{joined}"
            )
        super().__init__(message)
