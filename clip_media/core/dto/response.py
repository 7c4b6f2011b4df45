import base64
from dataclasses import dataclass, field
from typing import Dict, Optional, Union


@dataclass(frozen=True, slots=True)
class RangeWindow:
    """Inclusive byte window the front-end reads from disk."""
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1


@dataclass(frozen=True, slots=True)
class InlineBytes:
    data: bytes


Payload = Union[RangeWindow, InlineBytes]


@dataclass(frozen=True, slots=True)
class ResponsePlan:
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    payload: Optional[Payload] = None

    @property
    def window(self) -> Optional[RangeWindow]:
        return self.payload if isinstance(self.payload, RangeWindow) else None

    @property
    def body(self) -> Optional[bytes]:
        return self.payload.data if isinstance(self.payload, InlineBytes) else None

    def to_wire(self) -> dict:
        data: dict = {"status": self.status, "headers": dict(self.headers)}
        if isinstance(self.payload, RangeWindow):
            data["range"] = {"start": self.payload.start, "end": self.payload.end}
        elif isinstance(self.payload, InlineBytes):
            data["body"] = base64.b64encode(self.payload.data).decode("ascii")
        return data

    @classmethod
    def from_wire(cls, data: dict) -> "ResponsePlan":
        payload: Optional[Payload] = None
        window = data.get("range")
        if window is not None:
            payload = RangeWindow(int(window["start"]), int(window["end"]))
        elif data.get("body") is not None:
            payload = InlineBytes(base64.b64decode(data["body"]))
        return cls(
            status=int(data["status"]),
            headers={str(k): str(v) for k, v in (data.get("headers") or {}).items()},
            payload=payload,
        )
