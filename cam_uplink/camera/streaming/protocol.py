"""
Ingestion Wire Protocol

JSON text messages exchanged with the ingestion endpoint:

    join      {"join": id, "capabilities": {...}}
    frame     {"camera_id", "data" (base64 JPEG), "timestamp" (ms), "stats"}
    feedback  {"network_feedback": {"congested", "suggested_quality",
               "suggested_resolution"}}

Feedback is decoded leniently: unknown fields are ignored, and a
suggestion that does not make sense is dropped on its own instead of
rejecting the whole message.
"""

import base64
import json
import logging
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator

from .shared_frame_queue import Frame
from .shared_state import DEGRADED_SIZE, NOMINAL_SIZE, SharedTelemetry

logger = logging.getLogger(__name__)

CANONICAL_RESOLUTIONS = {
    f"{DEGRADED_SIZE[0]}x{DEGRADED_SIZE[1]}": DEGRADED_SIZE,
    f"{NOMINAL_SIZE[0]}x{NOMINAL_SIZE[1]}": NOMINAL_SIZE,
}


def resolution_to_size(resolution: str) -> Optional[Tuple[int, int]]:
    """Map a canonical resolution string to (width, height)"""
    return CANONICAL_RESOLUTIONS.get(resolution)


class NetworkFeedback(BaseModel):
    """
    Server-pushed network feedback; every field is optional

    A congested key that is present but not a boolean decodes to None and
    is told apart from a missing key through model_fields_set.
    """
    model_config = ConfigDict(extra="ignore")

    congested: Optional[bool] = None
    suggested_quality: Optional[int] = None
    suggested_resolution: Optional[str] = None

    @property
    def has_congested_key(self) -> bool:
        return "congested" in self.model_fields_set

    @field_validator("congested", mode="before")
    @classmethod
    def _drop_non_boolean_flag(cls, value: Any) -> Optional[bool]:
        return value if isinstance(value, bool) else None

    @field_validator("suggested_quality", mode="before")
    @classmethod
    def _drop_bad_quality(cls, value: Any) -> Optional[int]:
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            return None
        return value

    @field_validator("suggested_resolution", mode="before")
    @classmethod
    def _drop_unknown_resolution(cls, value: Any) -> Optional[str]:
        if isinstance(value, str) and value in CANONICAL_RESOLUTIONS:
            return value
        return None


class ServerMessage(BaseModel):
    """Any text message received from the ingestion endpoint"""
    model_config = ConfigDict(extra="ignore")

    network_feedback: Optional[NetworkFeedback] = None

    @field_validator("network_feedback", mode="before")
    @classmethod
    def _drop_non_object_feedback(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None


def parse_server_message(text: str) -> Optional[ServerMessage]:
    """
    Decode a text message from the server

    Any valid JSON decodes; a payload that is not an object simply carries
    no feedback.

    Returns:
        ServerMessage, or None when the text is not valid JSON
    """
    try:
        payload = json.loads(text)
    except (TypeError, ValueError):
        return None

    if not isinstance(payload, dict):
        logger.debug(f"Server message is a JSON {type(payload).__name__}, treating it as no feedback")
        payload = {}

    return ServerMessage.model_validate(payload)


def apply_feedback(message: ServerMessage, telemetry: SharedTelemetry) -> bool:
    """
    Apply server feedback directly to shared telemetry

    A missing feedback object or a missing congested key counts as "not
    congested". A congested value that is not a boolean changes nothing,
    and suggestions are only honoured alongside an explicit flag.

    Returns:
        bool: The congestion flag after applying the message
    """
    feedback = message.network_feedback
    if feedback is None or not feedback.has_congested_key:
        telemetry.network_congested = False
        return False

    if feedback.congested is None:
        return telemetry.network_congested

    telemetry.network_congested = feedback.congested

    if feedback.suggested_quality is not None:
        telemetry.quality = feedback.suggested_quality

    if feedback.suggested_resolution is not None:
        telemetry.width, telemetry.height = CANONICAL_RESOLUTIONS[feedback.suggested_resolution]

    return feedback.congested


def build_join_message(camera_id: str, min_quality: int = 20, max_quality: int = 90) -> str:
    """Join message sent right after every (re)connect"""
    return json.dumps({
        "join": camera_id,
        "capabilities": {
            "adaptive_quality": True,
            "min_quality": min_quality,
            "max_quality": max_quality,
            "resolutions": list(CANONICAL_RESOLUTIONS),
        },
    })


def build_frame_message(camera_id: str, frame: Frame, resolution: str, quality: int) -> str:
    """Frame message carrying the base64 JPEG and the current stream stats"""
    return json.dumps({
        "camera_id": camera_id,
        "data": base64.b64encode(frame.data).decode("ascii"),
        "timestamp": frame.captured_at,
        "stats": {
            "resolution": resolution,
            "quality": quality,
        },
    })


def decode_frame_payload(message: str) -> bytes:
    """Recover the JPEG bytes from a frame message"""
    payload: Dict[str, Any] = json.loads(message)
    return base64.b64decode(payload["data"])
