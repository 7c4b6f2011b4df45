from dataclasses import dataclass
from typing import Literal, Optional, Union


DEFAULT_QUALITY = 80


@dataclass(frozen=True, slots=True)
class VideoRequest:
    file_path: str
    range_header: Optional[str] = None
    # None means the worker stats the file itself
    file_size: Optional[int] = None

    type: Literal["video"] = "video"

    def to_wire(self) -> dict:
        return {
            "file_path": self.file_path,
            "range_header": self.range_header,
            "file_size": self.file_size,
        }

    @classmethod
    def from_wire(cls, data: dict) -> "VideoRequest":
        size = data.get("file_size")
        return cls(
            file_path=str(data["file_path"]),
            range_header=data.get("range_header"),
            file_size=int(size) if size is not None else None,
        )


@dataclass(frozen=True, slots=True)
class ImageRequest:
    file_path: str
    width: int = 0               # 0 = derive from height / keep original
    height: int = 0
    quality: int = DEFAULT_QUALITY

    type: Literal["image"] = "image"

    def to_wire(self) -> dict:
        return {
            "file_path": self.file_path,
            "width": self.width,
            "height": self.height,
            "quality": self.quality,
        }

    @classmethod
    def from_wire(cls, data: dict) -> "ImageRequest":
        return cls(
            file_path=str(data["file_path"]),
            width=int(data.get("width") or 0),
            height=int(data.get("height") or 0),
            quality=int(data.get("quality") or DEFAULT_QUALITY),
        )


MediaRequest = Union[VideoRequest, ImageRequest]
