from __future__ import annotations

import html
import re
from typing import Any, Dict, Iterable, List, Tuple

# <img ... src="..."> in rich-text fields (steps are stored as HTML)
IMG_SRC_RE = re.compile(r"""<img\b[^>]*?\bsrc\s*=\s*["']([^"']+)["']""", re.IGNORECASE)
# Bare links pasted into text
IMAGE_URL_RE = re.compile(
    r"""https?://[^\s"'<>()]+?\.(?:png|jpe?g|gif|webp|bmp|svg)(?:\?[^\s"'<>()]*)?""",
    re.IGNORECASE,
)

IMAGE_FIELDS: Tuple[str, ...] = ("steps", "desc", "description", "comment", "resolution")


def _texts(record: Dict[str, Any], fields: Iterable[str]) -> Iterable[str]:
    for field in fields:
        value = record.get(field)
        if isinstance(value, str) and value:
            yield value


def extract_images(
    record: Any, fields: Tuple[str, ...] = IMAGE_FIELDS
) -> List[str]:
    """
    Collect image references from a bug's free-text fields.

    Rules:
    - <img src> attributes and bare image URLs are matched independently.
    - Order of first appearance is kept; duplicates are dropped.
    - Sources are returned as written (relative ZenTao file links stay relative).
    """
    if not isinstance(record, dict):
        return []

    seen: Dict[str, None] = {}
    for text in _texts(record, fields):
        for match in IMG_SRC_RE.finditer(text):
            seen.setdefault(html.unescape(match.group(1).strip()), None)
        for match in IMAGE_URL_RE.finditer(text):
            seen.setdefault(html.unescape(match.group(0)), None)
    return [src for src in seen if src]
