"""Test fixtures for imagestatus-mcp."""

import asyncio
import json
import re
import socket
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any

import pytest
import uvicorn
from pydantic import BaseModel
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Route

from imagestatus_mcp.backend_types import ImageResult, OCIImage, OCIImageConfig, SystemContext
from imagestatus_mcp.client import ImageUnknownError, StoreClient, StoreError
from imagestatus_mcp.context import IMAGE_SERVER, SYSTEM_CONTEXT

# =============================================================================
# Default test data factories
# =============================================================================

ALPINE_ID = "3fd9065eaf02feaf94d68376da52541925650b81698c53c6824d92ff63f98353"


def make_oci_config(user: str | None = "1000:1000", labels: dict[str, str] | None = None) -> OCIImage:
    """Create a test OCI image config."""
    return OCIImage(
        created="2024-01-01T00:00:00Z",
        architecture="amd64",
        os="linux",
        config=OCIImageConfig(user=user, env=["PATH=/usr/bin"], cmd=["/bin/sh"], labels=labels),
    )


def make_image_result(
    id: str = ALPINE_ID,
    repo_tags: list[str] | None = None,
    repo_digests: list[str] | None = None,
    size: int | None = 7_800_000,
    user: str = "",
    labels: dict[str, str] | None = None,
    oci_config: OCIImage | None = None,
) -> ImageResult:
    """Create a test ImageResult."""
    return ImageResult(
        id=id,
        name="docker.io/library/alpine:latest",
        repo_tags=["docker.io/library/alpine:latest"] if repo_tags is None else repo_tags,
        repo_digests=["docker.io/library/alpine@sha256:" + "a" * 64] if repo_digests is None else repo_digests,
        size=size,
        user=user,
        labels=labels,
        oci_config=oci_config,
    )


# =============================================================================
# FakeImageServer - in-memory collaborator for core tests
# =============================================================================


class FakeImageServer:
    """In-memory image store.

    ``names`` maps a reference to its candidates or to an exception raised by
    resolve_names. ``images`` maps a candidate to its record or to an exception
    raised by image_status. Unknown candidates raise ImageUnknownError.
    """

    def __init__(
        self,
        names: dict[str, list[str] | Exception] | None = None,
        images: dict[str, ImageResult | Exception] | None = None,
    ):
        self.names = names or {}
        self.images = images or {}
        self.resolved: list[tuple[SystemContext, str]] = []
        self.looked_up: list[tuple[SystemContext, str]] = []

    async def resolve_names(self, system_context: SystemContext, name: str) -> list[str]:
        self.resolved.append((system_context, name))
        result = self.names.get(name, [name])
        if isinstance(result, Exception):
            raise result
        return result

    async def image_status(self, system_context: SystemContext, name: str) -> ImageResult:
        self.looked_up.append((system_context, name))
        result = self.images.get(name)
        if result is None:
            raise ImageUnknownError("image not known", status_code=404, code="image_unknown")
        if isinstance(result, Exception):
            raise result
        return result


def operational_error(message: str = "layer corrupted") -> StoreError:
    return StoreError(message, status_code=500)


# =============================================================================
# FakeResponse - HTTP-like response configuration
# =============================================================================


@dataclass
class FakeResponse:
    """HTTP-like response for fake server.

    Attributes:
        http_status: HTTP status code
        body: Response body (BaseModel, list, dict, str, raw bytes, or None)
        headers: Response headers as tuple of (name, value) pairs
    """

    http_status: HTTPStatus = HTTPStatus.OK
    body: BaseModel | list | dict | str | bytes | None = None
    headers: tuple[tuple[str, str], ...] = ()


@dataclass
class RecordedRequest:
    method: str
    path: str
    params: dict[str, str] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)


# Type alias for fake responses dictionary
FakeResponses = dict[str, FakeResponse]


def error_body(message: str, code: str | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"error": message}
    if code is not None:
        body["code"] = code
    return body


# =============================================================================
# RouteMatcher - Match requests against fake response keys
# =============================================================================


class RouteMatcher:
    """Match requests against fake_responses keys.

    Keys are "METHOD /path" and may pin the ``name`` query parameter as
    "GET /images/status?name=alpine:latest". Pinned keys win over plain ones.
    Paths may contain {param} placeholders.
    """

    _PARAM_PATTERN = re.compile(r"\{([^}]+)\}")

    def __init__(self, responses: FakeResponses):
        self._responses = responses
        self._compiled: list[tuple[re.Pattern[str], str]] = []
        for pattern in self._responses:
            method, path = pattern.split(" ", 1)
            regex = re.compile(f"^{re.escape(method)} {self._path_to_regex(path)}$")
            self._compiled.append((regex, pattern))

    def _path_to_regex(self, path: str) -> str:
        result = ""
        last_end = 0
        for match in self._PARAM_PATTERN.finditer(path):
            result += re.escape(path[last_end : match.start()])
            result += "([^/]+)"
            last_end = match.end()
        result += re.escape(path[last_end:])
        return result

    def match(self, method: str, path: str, name: str | None = None) -> FakeResponse | None:
        if name is not None:
            pinned = f"{method} {path}?name={name}"
            if pinned in self._responses:
                return self._responses[pinned]

        uri = f"{method} {path}"
        if uri in self._responses:
            return self._responses[uri]

        for regex, pattern in self._compiled:
            if regex.match(uri):
                return self._responses[pattern]

        return None


# =============================================================================
# Fixtures - Real HTTP fake server
# =============================================================================


@pytest.fixture
def fake_server_socket() -> socket.socket:
    """Create a bound socket for the fake server."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.bind(("127.0.0.1", 0))
    return sock


@pytest.fixture
def fake_server_url(fake_server_socket: socket.socket) -> str:
    """URL for the fake server."""
    _, port = fake_server_socket.getsockname()
    return f"http://127.0.0.1:{port}"


def _serialize_body(body: Any) -> str | bytes:
    if body is None:
        return ""
    if isinstance(body, bytes):
        return body
    if isinstance(body, BaseModel):
        return body.model_dump_json()
    if isinstance(body, list):
        return json.dumps([item.model_dump(mode="json") if isinstance(item, BaseModel) else item for item in body])
    if isinstance(body, dict):
        return json.dumps(body)
    return str(body)


@pytest.fixture
def fake_requests() -> list[RecordedRequest]:
    """Requests received by the fake server, in arrival order."""
    return []


@pytest.fixture
async def http_fake_server(
    fake_responses: FakeResponses,
    fake_requests: list[RecordedRequest],
    fake_server_socket: socket.socket,
) -> AsyncIterator[None]:
    """Real HTTP server returning configured fake responses.

    Uses pre-bound socket so server is ready immediately after task starts.
    """
    matcher = RouteMatcher(fake_responses)

    async def handle_request(request: Request) -> Response:
        method = request.method
        # Strip /v1 prefix since StoreClient adds it
        path = request.url.path
        if path.startswith("/v1"):
            path = path[3:]

        params = dict(request.query_params)
        fake_requests.append(RecordedRequest(method, path, params, dict(request.headers)))
        fake_response = matcher.match(method, path, params.get("name"))

        if fake_response is None:
            return Response(
                content=json.dumps(error_body(f"No fake response for {method} {path}")),
                status_code=HTTPStatus.NOT_IMPLEMENTED.value,
                media_type="application/json",
            )

        headers = dict(fake_response.headers)
        if "content-type" not in {k.lower() for k in headers}:
            if isinstance(fake_response.body, str) and not fake_response.body.startswith("{"):
                headers["Content-Type"] = "text/plain"
            else:
                headers["Content-Type"] = "application/json"

        return Response(
            content=_serialize_body(fake_response.body),
            status_code=fake_response.http_status.value,
            headers=headers,
        )

    app = Starlette(
        routes=[
            Route("/{path:path}", endpoint=handle_request, methods=["GET", "POST", "PUT", "PATCH", "DELETE"]),
        ],
    )

    config = uvicorn.Config(app, log_level="error")
    server = uvicorn.Server(config)
    server_task = asyncio.create_task(server.serve(sockets=[fake_server_socket]))

    yield

    server.should_exit = True
    await server_task


@pytest.fixture
def system_context() -> SystemContext:
    return SystemContext(os_choice="linux", architecture_choice="amd64")


@pytest.fixture
async def store_client(
    http_fake_server: None,
    fake_server_url: str,
    system_context: SystemContext,
) -> AsyncIterator[StoreClient]:
    """Real StoreClient pointing to the fake HTTP server."""
    async with StoreClient(base_url=fake_server_url, token="test-token", retry_count=2, retry_delay=0) as client:
        # Set context variables
        IMAGE_SERVER.set(client)
        SYSTEM_CONTEXT.set(system_context)

        yield client


@pytest.fixture
def fake_responses() -> FakeResponses:
    """Default empty fake responses; test classes override this fixture."""
    return {}
