"""Attempt-budget polling loop shared by fine-tune jobs and generation tasks."""

import asyncio
from typing import Any, Callable, Mapping, Optional, TypeVar

from .exceptions import APIError
from .extraction import (
    STATUS_FAILED,
    STATUS_SUCCEEDED,
    extract_error_message,
    extract_status,
    get_output,
)
from .observability import LogContext
from .protocols import HTTPClientProtocol, LoggerProtocol, Sleeper

T = TypeVar("T")


class StatusPoller:
    """
    Polls a status endpoint until SUCCEEDED, FAILED or the attempt budget runs out.

    Each attempt issues one GET. Non-terminal statuses suspend for ``interval``
    seconds through ``sleep`` before the next attempt, so a job that never
    finishes costs exactly ``max_attempts`` requests and ``max_attempts`` waits.
    """

    def __init__(
        self,
        http_client: HTTPClientProtocol,
        headers: Mapping[str, str],
        interval: float,
        max_attempts: int,
        logger: LoggerProtocol,
        label: str,
        sleep: Optional[Sleeper] = None,
    ):
        self._http_client = http_client
        self._headers = dict(headers)
        self.interval = interval
        self.max_attempts = max_attempts
        self._logger = logger
        self.label = label
        self._sleep = sleep or asyncio.sleep

    async def fetch_output(self, url: str) -> Mapping[str, Any]:
        """Issue one status request and return its ``output`` object."""
        response = await self._http_client.request("GET", url, headers=self._headers)
        if not response.ok:
            raise APIError(
                f"Failed to poll {self.label} (status {response.status_code})"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise APIError(f"Failed to parse {self.label} response: {exc}") from exc

        output = get_output(payload)
        if output is None:
            raise APIError(f"Invalid {self.label} response")
        return output

    async def poll(
        self,
        url: str,
        on_succeeded: Callable[[Mapping[str, Any]], T],
        context: Optional[LogContext] = None,
    ) -> T:
        """
        Poll ``url`` until a terminal status.

        Args:
            url: Status endpoint
            on_succeeded: Maps the SUCCEEDED output to the result; may raise APIError
            context: Log context of the calling stage

        Raises:
            APIError: On FAILED (with the service message), malformed responses
                or when ``max_attempts`` polls did not reach a terminal status
            NetworkError: On transport failure
        """
        for attempt in range(1, self.max_attempts + 1):
            output = await self.fetch_output(url)
            status = extract_status(output)

            if status == STATUS_SUCCEEDED:
                return on_succeeded(output)

            if status == STATUS_FAILED:
                message = extract_error_message(output, f"{self.label} failed")
                self._logger.error(f"{self.label} failed", context, error_msg=message)
                raise APIError(message)

            self._logger.debug(
                f"{self.label} pending",
                context,
                status=status or "UNKNOWN",
                attempt=attempt,
                max_attempts=self.max_attempts,
            )
            await self._sleep(self.interval)

        self._logger.error(
            f"{self.label} polling timed out", context, attempts=self.max_attempts
        )
        raise APIError(
            f"{self.label} timeout after {self.max_attempts} attempts"
        )
