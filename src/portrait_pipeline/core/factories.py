"""Factory classes for creating configured pipeline instances."""

from typing import Any, Dict, Optional

from .http import HttpxHTTPClient
from .logging_config import DEFAULT_LOGGER_NAME
from .models import ServiceConfig
from .observability import MetricsCollector, StructuredLogger
from .orchestrator import PipelineOrchestrator
from .protocols import HTTPClientProtocol, LoggerProtocol, Sleeper


class LoggerFactory:
    """Factory for creating logger instances."""

    @staticmethod
    def create_logger(
        name: str = DEFAULT_LOGGER_NAME, level: Optional[str] = None
    ) -> LoggerProtocol:
        """Create a structured logger; level defaults to LOG_LEVEL or INFO."""
        return StructuredLogger(name, level=level)


class HTTPClientFactory:
    """Factory for creating HTTP clients."""

    @staticmethod
    def create_http_client(config: ServiceConfig) -> HttpxHTTPClient:
        return HttpxHTTPClient(timeout=config.request_timeout)


class PortraitPipelineFactory:
    """Factory for creating the complete pipeline."""

    @staticmethod
    def create_pipeline(
        http_client: Optional[HTTPClientProtocol] = None,
        logger: Optional[LoggerProtocol] = None,
        config: Optional[ServiceConfig] = None,
        config_overrides: Optional[Dict[str, Any]] = None,
        metrics_collector: Optional[MetricsCollector] = None,
        sleep: Optional[Sleeper] = None,
    ) -> PipelineOrchestrator:
        """Create a fully configured orchestrator, reading the environment for defaults."""
        if config is None:
            config = ServiceConfig.from_env(**(config_overrides or {}))
        elif config_overrides:
            config = config.model_copy(update=config_overrides)

        if http_client is None:
            http_client = HTTPClientFactory.create_http_client(config)

        if logger is None:
            logger = LoggerFactory.create_logger(f"{DEFAULT_LOGGER_NAME}.pipeline")

        return PipelineOrchestrator(
            http_client=http_client,
            config=config,
            logger=logger,
            metrics_collector=metrics_collector,
            sleep=sleep,
        )
