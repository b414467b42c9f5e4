"""
Report the status of container images present in local storage.

## Image references

`image_status` accepts any of:

| Form | Example |
|------|---------|
| Tag | `alpine:latest`, `docker.io/library/alpine:latest` |
| Digest | `alpine@sha256:...` |
| Image ID | full 64-character ID or a unique prefix such as `3fd9065eaf02` |

Short or ambiguous references are expanded by the image store into an ordered
list of candidates. Use `resolve_image` to see that list. The first candidate
that is present is reported.

## Results

- Image present: `image` holds id, repo_tags, repo_digests, size and either
  uid (numeric image user) or username.
- Image absent: `image` is null. This is not an error.
- Store failure: reported as an error when no candidate could be looked up.

Pass `verbose=true` to also receive labels and the OCI image config, serialized
as JSON under `info["info"]`.

The status of an image is also available as the resource
`imagestatus://status/{reference}`.
"""

import re
from collections.abc import Awaitable, Callable
from textwrap import dedent
from typing import Any, ClassVar

from mcp.server import FastMCP
from mcp.server.fastmcp.resources import ResourceTemplate

from . import resources, tools


class ReferenceResourceTemplate(ResourceTemplate):
    """Resource template whose last {reference} parameter may contain slashes.

    FastMCP's default ResourceTemplate uses [^/]+ for parameters, which doesn't
    match image references such as 'docker.io/library/alpine:latest'.
    """

    GREEDY_PARAMETER: ClassVar[str] = "reference"

    def matches(self, uri: str) -> dict[str, Any] | None:
        pattern = self.uri_template
        param_names = re.findall(r"\{(\w+)\}", pattern)

        for i, param in enumerate(param_names):
            if i == len(param_names) - 1 and param == self.GREEDY_PARAMETER:
                pattern = pattern.replace(f"{{{param}}}", f"(?P<{param}>.+)")
            else:
                pattern = pattern.replace(f"{{{param}}}", f"(?P<{param}>[^/]+)")

        match = re.match(f"^{pattern}$", uri)
        if match:
            return match.groupdict()
        return None


def register_resource_template(mcp: FastMCP, url: str, resource_template_func: Callable[..., Awaitable[Any]]) -> None:
    description = dedent(resource_template_func.__doc__ or "") or ""

    if f"{{{ReferenceResourceTemplate.GREEDY_PARAMETER}}}" in url:
        template = ReferenceResourceTemplate.from_function(
            resource_template_func,
            uri_template=url,
            description=description,
            mime_type="application/json",
        )
        # Directly add to resource manager's templates dict
        mcp._resource_manager._templates[url] = template
    else:
        decorator = mcp.resource(url, description=description)
        decorator(resource_template_func)


def register_tool(mcp: FastMCP, tool_func: Callable[..., Awaitable[Any]], **kwargs: Any) -> None:
    mcp.add_tool(tool_func, description=dedent(tool_func.__doc__ or "") or "", **kwargs)


def create_mcp_app(**kwargs: Any) -> FastMCP:
    mcp = FastMCP(
        name="imagestatus-mcp",
        instructions=dedent(__doc__).strip(),
        streamable_http_path="/mcp",
        json_response=True,
        **kwargs,
    )

    register_tool(mcp, tools.image_status)
    register_tool(mcp, tools.resolve_image)

    register_resource_template(mcp, "imagestatus://status/{reference}", resources.image_status)

    return mcp
