"""
Worker wire protocol.

Outbound (dispatcher -> worker):
    {"id": str, "type": "video" | "image", "data": {...}}

Inbound (worker -> dispatcher):
    {"id": str, "type": "result", "success": True, "data": {...}}
    {"id": str, "type": "result", "success": False, "error": str, "error_type": str}

Envelopes hold only JSON-serializable values; `id` is an opaque token to
both sides.
"""
from __future__ import annotations

from typing import Any, Dict, Tuple

from clip_media.core.dto.request import ImageRequest, MediaRequest, VideoRequest
from clip_media.core.dto.response import ResponsePlan
from clip_media.core.errors import MediaError, ProtocolError, error_from_code

Envelope = Dict[str, Any]

RESULT_TYPE = "result"

_REQUEST_TYPES = {
    "video": VideoRequest,
    "image": ImageRequest,
}


def make_request_envelope(request_id: str, request: MediaRequest) -> Envelope:
    return {"id": request_id, "type": request.type, "data": request.to_wire()}


def parse_request_envelope(envelope: Envelope) -> Tuple[str, MediaRequest]:
    if not isinstance(envelope, dict):
        raise ProtocolError(f"Envelope must be a dict, got {type(envelope).__name__}")
    request_id = envelope.get("id")
    if not isinstance(request_id, str) or not request_id:
        raise ProtocolError("Envelope is missing its id")
    kind = envelope.get("type")
    cls = _REQUEST_TYPES.get(kind)
    if cls is None:
        raise ProtocolError(f"Unknown type: {kind}")
    data = envelope.get("data")
    if not isinstance(data, dict):
        raise ProtocolError(f"Envelope {request_id} has no data")
    try:
        return request_id, cls.from_wire(data)
    except (KeyError, TypeError, ValueError) as e:
        raise ProtocolError(f"Malformed {kind} request: {e}") from e


def make_result_envelope(request_id: str, plan: ResponsePlan) -> Envelope:
    return {
        "id": request_id,
        "type": RESULT_TYPE,
        "success": True,
        "data": plan.to_wire(),
    }


def make_error_envelope(request_id: str | None, error: BaseException) -> Envelope:
    code = error.code if isinstance(error, MediaError) else MediaError.code
    return {
        "id": request_id,
        "type": RESULT_TYPE,
        "success": False,
        "error": str(error) or type(error).__name__,
        "error_type": code,
    }


def plan_from_envelope(envelope: Envelope) -> ResponsePlan:
    """Return the plan carried by a result envelope, or raise its typed error."""
    if envelope.get("success"):
        data = envelope.get("data")
        if not isinstance(data, dict):
            raise ProtocolError(f"Result {envelope.get('id')} has no data")
        return ResponsePlan.from_wire(data)
    raise error_from_code(envelope.get("error_type"), str(envelope.get("error") or "Unknown error"))
