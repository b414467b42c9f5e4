from urllib.parse import unquote

from imagestatus_mcp.backend_types import ImageSpec, ImageStatusRequest
from imagestatus_mcp.context import IMAGE_SERVER, SYSTEM_CONTEXT
from imagestatus_mcp.status import image_status as get_image_status


async def image_status(reference: str) -> str:
    """Status of an image in local storage as JSON.

    URI: imagestatus://status/{reference}

    Where:
    - reference: Tag, digest or image ID; may contain slashes and may be URL-encoded

    Examples:
    - imagestatus://status/alpine:latest
    - imagestatus://status/docker.io/library/alpine:latest
    - imagestatus://status/3fd9065eaf02
    """
    request = ImageStatusRequest(image=ImageSpec(image=unquote(reference)))
    response = await get_image_status(IMAGE_SERVER.get(), SYSTEM_CONTEXT.get(), request)
    return response.model_dump_json()
