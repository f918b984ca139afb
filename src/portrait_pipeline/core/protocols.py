"""Protocol definitions for dependency injection and testability."""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, BinaryIO, Callable, List, Mapping, Optional, Protocol, Sequence, Tuple

from .http import HTTPResponse
from .exceptions import ConfigurationError
from .models import Photo, ProgressCheckpoint, ServiceConfig, Template

ProgressSink = Callable[[ProgressCheckpoint], None]
Sleeper = Callable[[float], Awaitable[None]]


class HTTPClientProtocol(Protocol):
    """Protocol for the asynchronous request/response seam."""

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        json: Any = None,
        files: Optional[Mapping[str, Tuple[str, BinaryIO, str]]] = None,
    ) -> HTTPResponse:
        """Issue one request and return its response."""
        ...


class LoggerProtocol(Protocol):
    """Protocol for logging operations."""

    def debug(self, message: str, context: Any = None, **kwargs: Any) -> None:
        ...

    def info(self, message: str, context: Any = None, **kwargs: Any) -> None:
        ...

    def warning(self, message: str, context: Any = None, **kwargs: Any) -> None:
        ...

    def error(self, message: str, context: Any = None, **kwargs: Any) -> None:
        ...


class ResourceProvisioner(ABC):
    """Abstract service producing a trained resource from photos."""

    @abstractmethod
    async def provision(
        self,
        photos: Sequence[Photo],
        on_progress: Optional[ProgressSink] = None,
        context: Any = None,
    ) -> str:
        """Return the resource identifier of a freshly trained resource."""
        ...

    def reconfigure(self, config: ServiceConfig) -> None:
        """Adopt a new service configuration for subsequent calls."""
        raise ConfigurationError(
            f"{type(self).__name__} does not support reconfiguration"
        )


class PortraitGenerator(ABC):
    """Abstract service generating images for templates."""

    @abstractmethod
    async def generate(
        self,
        resource_id: str,
        templates: Sequence[Template],
        context: Any = None,
    ) -> List[str]:
        """Return the generated URLs, grouped by template in template order."""
        ...

    def reconfigure(self, config: ServiceConfig) -> None:
        """Adopt a new service configuration for subsequent calls."""
        raise ConfigurationError(
            f"{type(self).__name__} does not support reconfiguration"
        )
