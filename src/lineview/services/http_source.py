"""HTTP line source backed by ``httpx`` with retrying range fetches."""

from __future__ import annotations

import logging
from typing import Any, Sequence

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..editor.patches import PatchOperation
from ..errors import ErrorCode, SourceError
from .line_source import PatchOutcome, RangeResult
from .settings import ContentSettings

__all__ = ["HttpLineSource"]

LOGGER = logging.getLogger(__name__)


class _RetryableStatusError(Exception):
    """A 5xx response worth another attempt."""

    def __init__(self, response: httpx.Response) -> None:
        super().__init__(f"HTTP {response.status_code}")
        self.response = response


class HttpLineSource:
    """Talks to a file backend exposing range and patch endpoints.

    ``GET {base_url}/files/range?path=&startLine=&endLine=`` returns a range
    payload; ``PATCH {base_url}/files/patch`` with ``{"path", "patches"}``
    applies a batch. Range fetches are idempotent and retried on transport
    errors, timeouts and 5xx responses. Patch submissions go out exactly once.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float | None = 30.0,
        max_retries: int = 3,
        retry_min_seconds: float = 0.5,
        retry_max_seconds: float = 6.0,
        headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._max_retries = max(1, max_retries)
        self._retry_min_seconds = retry_min_seconds
        self._retry_max_seconds = retry_max_seconds
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout, headers=headers)

    @classmethod
    def from_settings(cls, settings: ContentSettings, *, client: httpx.AsyncClient | None = None) -> HttpLineSource:
        return cls(
            settings.base_url,
            timeout=settings.request_timeout,
            max_retries=settings.max_retries,
            retry_min_seconds=settings.retry_min_seconds,
            retry_max_seconds=settings.retry_max_seconds,
            client=client,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def fetch_range(self, path: str, start_line: int, end_line: int) -> RangeResult:
        params = {"path": path, "startLine": start_line, "endLine": end_line}
        url = f"{self._base_url}/files/range"
        try:
            async for attempt in self._retrying():
                with attempt:
                    response = await self._client.get(url, params=params)
                    if response.status_code >= 500:
                        raise _RetryableStatusError(response)
        except _RetryableStatusError as exc:
            raise _status_error(exc.response, "Range request failed") from exc
        except httpx.HTTPError as exc:
            raise SourceError(message=f"Range request failed: {exc}") from exc

        if response.is_error:
            raise _status_error(response, "Range request rejected")
        LOGGER.debug("Fetched %s [%d, %d) via %s", path, start_line, end_line, self._base_url)
        return RangeResult.from_payload(_json_body(response))

    async def apply_patches(self, path: str, patches: Sequence[PatchOperation]) -> PatchOutcome:
        body = {"path": path, "patches": [patch.to_payload() for patch in patches]}
        try:
            response = await self._client.patch(f"{self._base_url}/files/patch", json=body)
        except httpx.HTTPError as exc:
            raise SourceError(message=f"Patch request failed: {exc}") from exc
        if response.is_error:
            raise _status_error(response, "Patch request rejected")
        LOGGER.debug("Submitted %d patch(es) for %s", len(patches), path)
        return PatchOutcome.from_payload(_json_body(response))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> HttpLineSource:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential(multiplier=self._retry_min_seconds, max=self._retry_max_seconds),
            retry=retry_if_exception_type((httpx.TransportError, _RetryableStatusError)),
        )


def _status_error(response: httpx.Response, prefix: str) -> SourceError:
    detail = response.text[:200] if response.text else response.reason_phrase
    return SourceError(
        code=ErrorCode.SOURCE_HTTP_ERROR,
        message=f"{prefix}: HTTP {response.status_code} {detail}".rstrip(),
        status_code=response.status_code,
    )


def _json_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise SourceError(code=ErrorCode.INVALID_PAYLOAD, message="Response body is not valid JSON") from exc
