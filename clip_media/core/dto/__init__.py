from clip_media.core.dto.request import (
    DEFAULT_QUALITY,
    ImageRequest,
    MediaRequest,
    VideoRequest,
)
from clip_media.core.dto.response import (
    InlineBytes,
    Payload,
    RangeWindow,
    ResponsePlan,
)

__all__ = [
    # Requests
    "DEFAULT_QUALITY",
    "ImageRequest",
    "MediaRequest",
    "VideoRequest",

    # Responses
    "InlineBytes",
    "Payload",
    "RangeWindow",
    "ResponsePlan",
]
