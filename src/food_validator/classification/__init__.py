"""Classification adapter around the external multimodal model."""

from .adapter import ClassificationAdapter, parse_model_reply, strip_code_fences
from .client import OpenAIVisionClient, VisionClient, build_vision_client
from .image import ImageInput, normalize_image, split_data_url
from .models import ClassificationResult

__all__ = [
    "ClassificationAdapter",
    "ClassificationResult",
    "ImageInput",
    "OpenAIVisionClient",
    "VisionClient",
    "build_vision_client",
    "normalize_image",
    "parse_model_reply",
    "split_data_url",
    "strip_code_fences",
]
