from .images import IMAGE_FIELDS, extract_images

__all__ = ["IMAGE_FIELDS", "extract_images"]
