import asyncio
import importlib.metadata
import json
import logging
import platform
import sys
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from functools import cached_property
from io import BytesIO
from types import MappingProxyType
from typing import Any, Generic, Protocol, TypeVar

import httpx
from httpx import Headers
from pydantic import BaseModel
from typing_extensions import Self

from .backend_types import ImageResult, ResolveNamesResponse, SystemContext

ModelT = TypeVar("ModelT", bound=BaseModel)

log = logging.getLogger(__name__)


class StoreError(Exception):
    def __init__(self, message: str, status_code: int | None = None, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


class ImageUnknownError(StoreError):
    """The store has no image matching the given name."""


class CannotParseImageIDError(StoreError):
    """The store could not parse the name as any image identifier form."""


ERROR_CODES: Mapping[str, type[StoreError]] = MappingProxyType(
    {
        "image_unknown": ImageUnknownError,
        "cannot_parse_image_id": CannotParseImageIDError,
    }
)


def store_error(message: str, status_code: int | None = None, code: str | None = None) -> StoreError:
    cls = ERROR_CODES.get(code, StoreError) if isinstance(code, str) else StoreError
    return cls(message, status_code=status_code, code=code)


class ImageServer(Protocol):
    async def resolve_names(self, system_context: SystemContext, name: str) -> list[str]: ...

    async def image_status(self, system_context: SystemContext, name: str) -> ImageResult: ...


class StreamResponse:
    __slots__ = ("status", "headers", "body_iter")

    status: int
    headers: Headers
    body_iter: AsyncIterator[bytes]

    def __init__(self, status: int, headers: Headers, body_iter: AsyncIterator[bytes]):
        self.status = status
        self.headers = headers
        self.body_iter = body_iter

    async def __aiter__(self) -> AsyncIterator[bytes]:
        async for chunk in self.body_iter:
            yield chunk


class StructuredResponse(Generic[ModelT]):
    __slots__ = ("status", "headers", "body")

    headers: Headers
    status: int
    body: ModelT

    def __init__(self, status: int, headers: Headers, body: ModelT):
        self.status = status
        self.headers = headers
        self.body = body

    @classmethod
    async def from_stream(
        cls,
        stream_response: StreamResponse,
        model: type[ModelT],
        payload_limit: int = 1024 * 1024,
    ) -> "StructuredResponse[ModelT]":
        content_length = stream_response.headers.get("Content-Length", "")
        if content_length.isdigit() and int(content_length) > payload_limit:
            raise StoreError(f"Response too large ({content_length} bytes)")
        with BytesIO() as stream:
            async for chunk in stream_response:
                # Content-Length is absent for chunked responses
                if stream.tell() + len(chunk) > payload_limit:
                    raise StoreError(f"Response too large (more than {payload_limit} bytes)")
                stream.write(chunk)
            data = stream.getvalue()
        try:
            body = model.model_validate(json.loads(data.decode("utf-8").strip()))
        except ValueError as e:
            raise StoreError(f"Invalid response from image store: {e}") from e
        return cls(stream_response.status, stream_response.headers, body)


class StoreClient:
    """HTTP client for the image store API."""

    PYTHON_VERSION = f"{'.'.join(map(str, sys.version_info))}"
    try:
        LIBRARY_VERSION = importlib.metadata.version("imagestatus-mcp")
    except importlib.metadata.PackageNotFoundError:
        LIBRARY_VERSION = "unknown"

    OS_NAME = platform.system()
    OS_VERSION = platform.release()

    HEADERS = (
        ("Accept", "application/json"),
        (
            "User-Agent",
            " ".join(
                (
                    f"imagestatus-mcp/{LIBRARY_VERSION}",
                    f"python/{PYTHON_VERSION}",
                    f"{OS_NAME}/{OS_VERSION}",
                )
            ),
        ),
    )

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 30.0,
        retry_count: int = 5,
        retry_delay: float = 2.0,
        payload_limit: int = 1024 * 1024,
    ):
        self.base_url = base_url.rstrip("/") + "/v1"
        self.token = token
        self.timeout = httpx.Timeout(timeout)
        self.retry_count = max(retry_count, 1)
        self.retry_delay = retry_delay
        self.payload_limit = payload_limit

    @cached_property
    def headers(self) -> Mapping[str, str]:
        hdrs = dict(self.HEADERS)
        if self.token:
            hdrs["Authorization"] = f"Bearer {self.token}"
        return MappingProxyType(hdrs)

    @cached_property
    def session(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(headers=self.headers, timeout=self.timeout)

    async def close(self) -> None:
        if "session" in self.__dict__:
            await asyncio.gather(self.session.aclose(), return_exceptions=True)
            del self.__dict__["session"]

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        model: type[ModelT],
        params: dict[str, Any] | None = None,
    ) -> "StructuredResponse[ModelT]":
        async with self._stream_request(method, path, params=params) as stream_response:
            return await StructuredResponse.from_stream(
                stream_response, model=model, payload_limit=self.payload_limit
            )

    @asynccontextmanager
    async def _stream_request(
        self,
        method: str,
        path: str,
        chunk_size: int = 64 * 1024,
        **kwargs: Any,
    ) -> AsyncIterator[StreamResponse]:
        """
        Perform an HTTP request and yield a streaming response.
        Retries on server errors (5xx) until attempts are exhausted.
        Raises StoreError (or a subclass chosen by the error code) otherwise.
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        log.debug("%s %s", method, path)
        for attempt in range(1, self.retry_count + 1):
            try:
                async with self.session.stream(method, url, **kwargs) as response:
                    if response.status_code >= 500 and attempt < self.retry_count:
                        log.debug("%s %s -> %d: server error, retrying...", method, path, response.status_code)
                        await asyncio.sleep(self.retry_delay)
                        continue

                    if response.status_code >= 400:
                        raise self._error_from_body(response.status_code, await response.aread())

                    log.debug("%s %s -> %d", method, path, response.status_code)

                    async def chunk_iterator() -> AsyncIterator[bytes]:
                        async for chunk in response.aiter_bytes(chunk_size):
                            yield chunk

                    yield StreamResponse(
                        status=response.status_code, headers=response.headers, body_iter=chunk_iterator()
                    )
                    return
            except httpx.HTTPError as e:
                raise StoreError(f"{method} {path} failed: {e}") from e

    @staticmethod
    def _error_from_body(status_code: int, body: bytes) -> StoreError:
        code = None
        try:
            payload = json.loads(body)
        except ValueError:
            payload = None

        if isinstance(payload, dict):
            message = str(payload.get("error") or body.decode(errors="replace"))
            code = payload.get("code")
            if not isinstance(code, str):
                code = None
        else:
            message = body.decode(errors="replace") or f"HTTP {status_code}"

        log.debug("image store -> %d (%s): %s", status_code, code, message)
        return store_error(message, status_code=status_code, code=code)

    def _params(self, system_context: SystemContext, name: str) -> dict[str, str]:
        return {"name": name, **system_context.as_params()}

    async def resolve_names(self, system_context: SystemContext, name: str) -> list[str]:
        """Expand a possibly ambiguous name into candidate names, most preferred first."""
        response = await self._request(
            "GET", "/images/resolve", model=ResolveNamesResponse, params=self._params(system_context, name)
        )
        return response.body.names

    async def image_status(self, system_context: SystemContext, name: str) -> ImageResult:
        response = await self._request(
            "GET", "/images/status", model=ImageResult, params=self._params(system_context, name)
        )
        return response.body
