from .image_status import image_status

__all__ = [
    "image_status",
]
