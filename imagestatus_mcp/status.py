"""Image reference resolution and status aggregation.

A reference given by the caller may be a tag, a digest or a (short) image ID.
The store expands it into an ordered list of candidate names; each candidate
is looked up in turn and the first one found wins. Lookups that fail because
the image does not exist are soft failures; any other failure is remembered
and reported only if no candidate succeeds.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from pydantic_core import PydanticSerializationError

from .backend_types import Image, ImageResult, ImageStatusRequest, ImageStatusResponse, SystemContext
from .client import CannotParseImageIDError, ImageServer, ImageUnknownError, StoreError

log = logging.getLogger(__name__)

INFO_KEY = "info"

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1
DECIMAL_PATTERN = re.compile(r"[+-]?[0-9]+")


class ImageStatusError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NoImageSpecifiedError(ImageStatusError):
    def __init__(self) -> None:
        super().__init__("no image specified")


class ImageInfoError(ImageStatusError):
    pass


def caused_by(err: BaseException, cls: type[BaseException]) -> bool:
    seen: set[int] = set()
    current: BaseException | None = err
    while current is not None and id(current) not in seen:
        if isinstance(current, cls):
            return True
        seen.add(id(current))
        current = current.__cause__
    return False


@dataclass
class StatusAccumulator:
    """Failures seen while looking up candidates."""

    last_error: StoreError | None = None
    not_found: bool = False

    def record(self, name: str, err: StoreError) -> None:
        if caused_by(err, ImageUnknownError):
            log.debug("can't find %s", name)
            self.not_found = True
            return
        log.warning("error getting status from %s: %s", name, err)
        self.last_error = err

    def outcome(self) -> ImageStatusResponse:
        """Result of a lookup in which no candidate succeeded."""
        if self.last_error is not None:
            raise self.last_error
        return ImageStatusResponse()


def get_user_from_image(user: str) -> tuple[int | None, str | None]:
    """
    Get uid or user name of the image user.

    A numeric user (before any ``:group`` suffix) is a uid, anything else is a user name.
    """
    if not user:
        return None, None

    user = user.split(":", 1)[0]
    if DECIMAL_PATTERN.fullmatch(user):
        uid = int(user, 10)
        if INT64_MIN <= uid <= INT64_MAX:
            return uid, None

    return None, user or None


def create_image_info(result: ImageResult) -> dict[str, str]:
    info: dict[str, Any] = {}
    if result.labels:
        info["labels"] = result.labels
    try:
        # imageSpec is always present, null when the store has no config for the image
        info["imageSpec"] = (
            result.oci_config.model_dump(mode="json", by_alias=True, exclude_none=True)
            if result.oci_config is not None
            else None
        )
        data = json.dumps(info, allow_nan=False)
    except (PydanticSerializationError, TypeError, ValueError) as e:
        raise ImageInfoError(f"creating image info: {e}") from e
    return {INFO_KEY: data}


def build_response(result: ImageResult, verbose: bool) -> ImageStatusResponse:
    uid, username = get_user_from_image(result.image_user)
    response = ImageStatusResponse(
        image=Image(
            id=result.id,
            repo_tags=result.repo_tags,
            repo_digests=result.repo_digests,
            size=result.size or 0,
            uid=uid,
            username=username,
        ),
    )
    if verbose:
        response.info = create_image_info(result)
    return response


async def resolve_candidates(server: ImageServer, system_context: SystemContext, image: str) -> list[str]:
    try:
        candidates = await server.resolve_names(system_context, image)
    except CannotParseImageIDError:
        return [image]
    return list(candidates) or [image]


async def aggregate_status(
    server: ImageServer,
    system_context: SystemContext,
    candidates: list[str],
    verbose: bool = False,
) -> ImageStatusResponse:
    accumulator = StatusAccumulator()
    for name in candidates:
        try:
            result = await server.image_status(system_context, name)
        except StoreError as err:
            accumulator.record(name, err)
            continue
        return build_response(result, verbose)
    return accumulator.outcome()


async def image_status(
    server: ImageServer,
    system_context: SystemContext,
    request: ImageStatusRequest,
) -> ImageStatusResponse:
    image = request.image.image if request.image is not None else ""
    if not image:
        raise NoImageSpecifiedError()

    log.info("Checking image status: %s", image)
    candidates = await resolve_candidates(server, system_context, image)
    response = await aggregate_status(server, system_context, candidates, verbose=request.verbose)
    if response.image is None:
        log.info("Image %s not found", image)
    else:
        log.info("Image status: %r", response)
    return response
