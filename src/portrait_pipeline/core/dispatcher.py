"""Per-template generation with concurrent fan-out and ordered fan-in."""

import asyncio
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .error_handling import BatchOperationContextManager, with_error_handling
from .exceptions import APIError, GenerationAggregateError, PortraitPipelineError
from .extraction import (
    STATUS_FAILED,
    extract_error_message,
    extract_image_count,
    extract_image_urls,
    extract_status,
    extract_task_id,
    get_output,
)
from .models import GenerationTask, ServiceConfig, TaskState, Template
from .observability import LogContext
from .polling import StatusPoller
from .protocols import HTTPClientProtocol, LoggerProtocol, PortraitGenerator, Sleeper


class GenerationDispatcher(PortraitGenerator):
    """
    Submits one generation request per template and collects the URLs.

    All templates run concurrently. Each worker owns exactly one
    GenerationTask slot, indexed by template position, so the fan-in order
    is the template order regardless of completion order.
    """

    def __init__(
        self,
        http_client: HTTPClientProtocol,
        config: ServiceConfig,
        logger: LoggerProtocol,
        sleep: Optional[Sleeper] = None,
    ):
        self._http_client = http_client
        self._config = config
        self._logger = logger
        self._sleep = sleep
        self._poller = self._build_poller(config)

    def _build_poller(self, config: ServiceConfig) -> StatusPoller:
        return StatusPoller(
            self._http_client,
            headers=config.auth_headers(),
            interval=config.polling.generation_interval,
            max_attempts=config.polling.generation_max_attempts,
            logger=self._logger,
            label="Generation task",
            sleep=self._sleep,
        )

    def reconfigure(self, config: ServiceConfig) -> None:
        self._poller = self._build_poller(config)
        self._config = config

    @with_error_handling(default=APIError)
    async def generate(
        self,
        resource_id: str,
        templates: Sequence[Template],
        context: Optional[LogContext] = None,
    ) -> List[str]:
        """
        Generate images for every template and flatten them in template order.

        Raises:
            GenerationAggregateError: One or more templates failed. No partial
                URL list is returned; the error carries the success ratio.
            APIError: Every template finished without producing an image
        """
        context = (context or LogContext(component="dispatcher")).with_operation(
            "generate"
        )
        tasks = await self.dispatch(resource_id, templates, context)
        return self.aggregate(tasks, context)

    async def dispatch(
        self,
        resource_id: str,
        templates: Sequence[Template],
        context: Optional[LogContext] = None,
    ) -> List[GenerationTask]:
        """Run all templates concurrently; return their terminal tasks in template order."""
        tasks = [
            GenerationTask(index=index, template=template)
            for index, template in enumerate(templates)
        ]
        await asyncio.gather(*(self._run_task(resource_id, task, context) for task in tasks))
        return tasks

    def aggregate(
        self, tasks: Sequence[GenerationTask], context: Optional[LogContext] = None
    ) -> List[str]:
        """Apply the all-or-nothing result policy to terminal tasks."""
        with BatchOperationContextManager("Portrait generation") as batch:
            for task in tasks:
                if task.state == TaskState.FAILED:
                    batch.add_error(str(task.error), item_identifier=task.template.name)

        succeeded = sum(1 for task in tasks if task.urls)
        if batch.has_errors:
            error = GenerationAggregateError(succeeded, len(tasks), batch.messages)
            self._logger.error(
                "Generation failed", context, succeeded=succeeded, total=len(tasks)
            )
            raise error

        urls = [url for task in tasks for url in task.urls if url]
        if not urls:
            raise APIError("Generation completed but returned no images")

        self._logger.info("Generation completed", context, images=len(urls))
        return urls

    async def _run_task(
        self, resource_id: str, task: GenerationTask, context: Optional[LogContext]
    ) -> None:
        task_context = (context or LogContext()).with_metadata(
            template=task.template.name, index=task.index
        )
        try:
            urls = await self.generate_for_template(resource_id, task, task_context)
        except PortraitPipelineError as exc:
            task.mark_failed(exc)
        except Exception as exc:
            self._logger.error("Unexpected generation failure", task_context, error=repr(exc))
            task.mark_failed(APIError(f"Unexpected generation failure: {exc}"))
        else:
            task.mark_succeeded(urls)

    def build_payload(self, resource_id: str, template: Template) -> Dict[str, Any]:
        return {
            "model": self._config.generation_model,
            "parameters": {
                "style": template.style_code,
                "size": self._config.image_size,
                "n": self._config.images_per_template,
            },
            "resources": [
                {
                    "resource_id": resource_id,
                    "resource_type": self._config.resource_type,
                }
            ],
        }

    async def generate_for_template(
        self,
        resource_id: str,
        task: GenerationTask,
        context: Optional[LogContext] = None,
    ) -> List[str]:
        """Submit one template and, when the service queues it, poll until done."""
        headers = {**self._config.auth_headers(), "X-DashScope-Async": "enable"}
        task.mark_submitted()
        self._logger.info(
            "Invoking generation API", context, style=task.template.style_code
        )
        response = await self._http_client.request(
            "POST",
            self._config.generation_url,
            headers=headers,
            json=self.build_payload(resource_id, task.template),
        )
        if not response.ok:
            raise APIError(f"Generation request failed with status {response.status_code}")

        try:
            body = response.json()
        except ValueError as exc:
            raise APIError(f"Failed to parse generation response: {exc}") from exc
        if not isinstance(body, dict):
            raise APIError("Invalid JSON response")

        output = get_output(body)
        urls = extract_image_urls(output if output is not None else body)
        if urls:
            self._logger.info(
                "Generation returned image URLs",
                context,
                images=len(urls),
                reported=extract_image_count(body, len(urls)),
            )
            return urls

        if output is None:
            raise APIError("Unable to parse generation response")

        task_id = extract_task_id(output)
        if task_id:
            task.mark_queued(task_id)
            self._logger.info("Generation queued", context, task_id=task_id)
            return await self._poller.poll(
                f"{self._config.tasks_url}/{task_id}",
                on_succeeded=self._urls_from_output,
                context=context.with_metadata(task_id=task_id) if context else None,
            )

        if extract_status(output) == STATUS_FAILED:
            raise APIError(extract_error_message(output, "Generation failed"))
        raise APIError("Unexpected generation response format")

    def _urls_from_output(self, output: Mapping[str, Any]) -> List[str]:
        urls = extract_image_urls(output)
        if not urls:
            raise APIError("Task succeeded but no image URL returned")
        self._logger.debug(
            "Generation task succeeded",
            images=len(urls),
            reported=extract_image_count(output, len(urls)),
        )
        return urls
