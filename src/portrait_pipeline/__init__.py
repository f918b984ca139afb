"""Portrait generation pipeline for the FaceChain-style remote service."""

from .core import (
    PipelineOrchestrator,
    PipelineResult,
    Photo,
    ProgressCheckpoint,
    ServiceConfig,
    Template,
)
from .core.factories import PortraitPipelineFactory

__version__ = "0.1.0"

__all__ = [
    "Photo",
    "PipelineOrchestrator",
    "PipelineResult",
    "PortraitPipelineFactory",
    "ProgressCheckpoint",
    "ServiceConfig",
    "Template",
]
