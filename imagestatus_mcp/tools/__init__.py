"""Image status MCP tools."""

from .image_status import image_status
from .resolve_image import resolve_image

__all__ = [
    "image_status",
    "resolve_image",
]
