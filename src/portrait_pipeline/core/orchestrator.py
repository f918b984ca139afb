"""Pipeline entry point: validate, provision, generate."""

import asyncio
from typing import Any, Dict, Optional, Sequence

from pydantic import ValidationError

from .dispatcher import GenerationDispatcher
from .exceptions import ConfigurationError, InvalidInputError, PortraitPipelineError
from .models import Photo, PipelineResult, PollingConfig, ServiceConfig, Template
from .observability import LogContext, MetricsCollector, track_stage
from .protocols import (
    HTTPClientProtocol,
    LoggerProtocol,
    PortraitGenerator,
    ProgressSink,
    ResourceProvisioner,
    Sleeper,
)
from .provisioner import TrainingResourceProvisioner


def validate_inputs(photos: Sequence[Photo], templates: Sequence[Template]) -> None:
    """Raise InvalidInputError for any local precondition violation."""
    if not photos:
        raise InvalidInputError("At least one photo is required")
    if not templates:
        raise InvalidInputError("No templates available")
    if not all(photo.has_payload for photo in photos):
        raise InvalidInputError("Selected photos must include image data")


class PipelineOrchestrator:
    """
    Sequences provisioning and generation for one set of photos.

    ``run`` never raises classified errors; it returns a PipelineResult.
    Progress checkpoints come from the provisioner and are relayed unchanged.
    """

    def __init__(
        self,
        http_client: HTTPClientProtocol,
        config: ServiceConfig,
        logger: LoggerProtocol,
        metrics_collector: Optional[MetricsCollector] = None,
        sleep: Optional[Sleeper] = None,
        provisioner: Optional[ResourceProvisioner] = None,
        generator: Optional[PortraitGenerator] = None,
    ):
        self._http_client = http_client
        self._config = config
        self._logger = logger
        self._metrics_collector = metrics_collector
        self._sleep = sleep
        self._custom_provisioner = provisioner
        self._custom_generator = generator
        self._build_stages()

    @property
    def config(self) -> ServiceConfig:
        return self._config

    @property
    def provisioner(self) -> ResourceProvisioner:
        return self._provisioner

    @property
    def generator(self) -> PortraitGenerator:
        return self._generator

    def _build_stages(self) -> None:
        self._provisioner = self._custom_provisioner or TrainingResourceProvisioner(
            self._http_client, self._config, self._logger, sleep=self._sleep
        )
        self._generator = self._custom_generator or GenerationDispatcher(
            self._http_client, self._config, self._logger, sleep=self._sleep
        )

    def configure(
        self,
        training_interval: Optional[float] = None,
        training_max_attempts: Optional[int] = None,
        generation_interval: Optional[float] = None,
        generation_max_attempts: Optional[int] = None,
    ) -> PollingConfig:
        """
        Replace the polling budgets used by subsequent runs.

        Raises:
            ConfigurationError: If a value is out of range, or an injected stage
                cannot be reconfigured (nothing is changed in that case)
        """
        updates: Dict[str, Any] = {
            key: value
            for key, value in {
                "training_interval": training_interval,
                "training_max_attempts": training_max_attempts,
                "generation_interval": generation_interval,
                "generation_max_attempts": generation_max_attempts,
            }.items()
            if value is not None
        }
        try:
            polling = PollingConfig(**{**self._config.polling.model_dump(), **updates})
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid polling configuration: {exc}") from exc

        self._apply_config(self._config.model_copy(update={"polling": polling}))
        self._logger.info("Polling configuration updated", **polling.model_dump())
        return polling

    def _apply_config(self, config: ServiceConfig) -> None:
        """Hand ``config`` to injected stages, then rebuild the default ones.

        Injected stages that cannot be reconfigured abort the update; stages
        already switched are restored to the previous configuration.
        """
        switched = []
        try:
            for stage in (self._custom_provisioner, self._custom_generator):
                if stage is not None:
                    stage.reconfigure(config)
                    switched.append(stage)
        except ConfigurationError:
            for stage in switched:
                stage.reconfigure(self._config)
            raise

        self._config = config
        self._build_stages()

    async def run(
        self,
        photos: Sequence[Photo],
        templates: Sequence[Template],
        on_progress: Optional[ProgressSink] = None,
    ) -> PipelineResult:
        """Turn photos and templates into an ordered list of image URLs."""
        context = LogContext(component="orchestrator").with_operation("run")
        self._logger.info(
            "Starting portrait generation",
            context,
            photos=len(photos),
            templates=len(templates),
        )

        try:
            validate_inputs(photos, templates)

            async with track_stage("provision", self._metrics_collector):
                resource_id = await self._provisioner.provision(photos, on_progress, context)

            async with track_stage(
                "generate", self._metrics_collector, templates=len(templates)
            ):
                urls = await self._generator.generate(resource_id, templates, context)
        except PortraitPipelineError as exc:
            self._logger.error(
                "Portrait generation failed", context, kind=exc.kind.value, error=str(exc)
            )
            return PipelineResult.from_error(exc, context.correlation_id)

        self._logger.info("Portrait generation completed", context, images=len(urls))
        return PipelineResult.from_urls(urls, context.correlation_id)

    def run_sync(
        self,
        photos: Sequence[Photo],
        templates: Sequence[Template],
        on_progress: Optional[ProgressSink] = None,
    ) -> PipelineResult:
        """Blocking wrapper around ``run`` for callers without an event loop."""
        return asyncio.run(self.run(photos, templates, on_progress))

