"""Normalize the three accepted image references into one image part."""

from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from typing import Literal

from ..errors import AdapterCallFailed, NoImageProvided
from ..queue.models import FoodValidationTask

logger = logging.getLogger(__name__)

DEFAULT_MEDIA_TYPE = "image/jpeg"
DATA_URL_PATTERN = re.compile(r"^data:([^;]+);base64,(.+)$", re.DOTALL)


@dataclass(frozen=True)
class ImageInput:
    source: Literal["file", "url", "base64"]
    # Raw bytes for file/base64 sources, the URL string for url sources.
    data: bytes | str
    media_type: str


def split_data_url(value: str, *, default_media_type: str = DEFAULT_MEDIA_TYPE) -> tuple[str, str]:
    """Return (media_type, base64_body), stripping a `data:<type>;base64,` prefix."""
    if value.startswith("data:"):
        match = DATA_URL_PATTERN.match(value)
        if match:
            return match.group(1), match.group(2)
    return default_media_type, value


def decode_base64_image(value: str, *, default_media_type: str = DEFAULT_MEDIA_TYPE) -> ImageInput:
    media_type, body = split_data_url(value, default_media_type=default_media_type)
    # Clients often drop the trailing "=" padding.
    padded = body + "=" * (-len(body) % 4)
    try:
        data = base64.b64decode(padded)
    except (binascii.Error, ValueError) as exc:
        raise AdapterCallFailed(f"Invalid base64 image data: {exc}") from exc
    return ImageInput(source="base64", data=data, media_type=media_type)


def normalize_image(task: FoodValidationTask) -> ImageInput:
    """Pick one image reference with precedence file > URL > base64."""
    if task.image_file:
        return ImageInput(
            source="file",
            data=task.image_file,
            media_type=task.media_type or DEFAULT_MEDIA_TYPE,
        )
    if task.image_url:
        # URLs are passed through; the media type is not sniffed.
        return ImageInput(source="url", data=task.image_url, media_type=DEFAULT_MEDIA_TYPE)
    if task.image_base64:
        image = decode_base64_image(
            task.image_base64,
            default_media_type=task.media_type or DEFAULT_MEDIA_TYPE,
        )
        logger.debug(
            "image_normalize source=base64 media_type=%s size=%s",
            image.media_type,
            len(image.data),
        )
        return image
    raise NoImageProvided()
