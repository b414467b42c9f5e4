from imagestatus_mcp.backend_types import ImageSpec, ImageStatusRequest, ImageStatusResponse
from imagestatus_mcp.context import IMAGE_SERVER, SYSTEM_CONTEXT
from imagestatus_mcp.status import image_status as get_image_status


async def image_status(image: str, verbose: bool = False) -> ImageStatusResponse:
    """
    Report whether an image is present in local storage and describe it. Read-only.

    TL;DR:
    - PURPOSE: Check that an image exists and get its ID, tags, digests, size and user
    - FORMAT: Tag ("alpine:latest"), digest ("alpine@sha256:..."), full or short image ID
    - MISSING: An image that is not present returns an empty result, not an error

    USAGE:
    - Ambiguous references are expanded by the store and the first match wins
    - Set verbose=true to include labels and the OCI image config as JSON under info["info"]
    - uid is set when the image user is numeric, username otherwise

    RETURNS: image (id, repo_tags, repo_digests, size, uid, username) or null, info
    """
    request = ImageStatusRequest(image=ImageSpec(image=image), verbose=verbose)
    return await get_image_status(IMAGE_SERVER.get(), SYSTEM_CONTEXT.get(), request)
