from pydantic import BaseModel, Field

from imagestatus_mcp.context import IMAGE_SERVER, SYSTEM_CONTEXT
from imagestatus_mcp.status import NoImageSpecifiedError, resolve_candidates


class ResolveImageOutput(BaseModel):
    candidates: list[str] = Field(description="Candidate names in lookup order")


async def resolve_image(image: str) -> ResolveImageOutput:
    """
    Expand an image reference into the candidate names the store would try. Read-only.

    TL;DR:
    - PURPOSE: Debug ambiguous or short references before calling image_status
    - ORDER: Candidates are listed in the order image_status looks them up

    RETURNS: candidates[]
    """
    if not image:
        raise NoImageSpecifiedError()
    candidates = await resolve_candidates(IMAGE_SERVER.get(), SYSTEM_CONTEXT.get(), image)
    return ResolveImageOutput(candidates=candidates)
