"""HTTP seam implemented with httpx."""

import json as jsonlib
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Dict, Mapping, Optional, Tuple

import httpx

from .exceptions import NetworkError
from .logging_config import get_logger

FileField = Tuple[str, BinaryIO, str]


@dataclass
class HTTPResponse:
    """Status and raw body of one request/response exchange."""

    status_code: int
    content: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        """Decode the body; raises ValueError on malformed JSON."""
        return jsonlib.loads(self.content.decode("utf-8"))

    @classmethod
    def from_json(cls, status_code: int, payload: Any) -> "HTTPResponse":
        return cls(
            status_code=status_code,
            content=jsonlib.dumps(payload).encode("utf-8"),
            headers={"content-type": "application/json"},
        )


class HttpxHTTPClient:
    """Async HTTP client backed by ``httpx.AsyncClient``.

    Transport failures (timeouts, refused connections, protocol errors) are
    raised as NetworkError; HTTP error statuses are returned to the caller.
    """

    def __init__(
        self,
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self._logger = get_logger("http")

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        json: Any = None,
        files: Optional[Mapping[str, FileField]] = None,
    ) -> HTTPResponse:
        self._logger.debug(f"{method} {url}")
        try:
            response = await self._client.request(
                method,
                url,
                headers=dict(headers or {}),
                json=json,
                files=dict(files) if files else None,
            )
        except httpx.HTTPError as exc:
            self._logger.warning(f"{method} {url} failed: {exc!r}")
            raise NetworkError(f"{method} {url} failed: {exc}") from exc

        self._logger.debug(f"{method} {url} -> {response.status_code}")
        return HTTPResponse(
            status_code=response.status_code,
            content=response.content,
            headers=dict(response.headers),
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpxHTTPClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
