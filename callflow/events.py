from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, Optional

from loguru import logger


class EventKind(Enum):
    CALL_STARTED = "call-started"
    CALL_ENDED = "call-ended"
    TOOL_CALL = "tool-call"
    TRANSCRIPT = "transcript"
    CONVERSATION_UPDATE = "conversation-update"
    STATUS_UPDATE = "status-update"
    SPEECH_UPDATE = "speech-update"
    UNKNOWN = "unknown"


# Wire spellings accepted for each kind. Extend only when the platform
# documents a new name.
EVENT_ALIASES = {
    "call-started": EventKind.CALL_STARTED,
    "call-ended": EventKind.CALL_ENDED,
    "end-of-call-report": EventKind.CALL_ENDED,
    "function-call": EventKind.TOOL_CALL,
    "tool-calls": EventKind.TOOL_CALL,
    "transcript": EventKind.TRANSCRIPT,
    'transcript[transcriptType="final"]': EventKind.TRANSCRIPT,
    "conversation-update": EventKind.CONVERSATION_UPDATE,
    "status-update": EventKind.STATUS_UPDATE,
    "speech-update": EventKind.SPEECH_UPDATE,
}


@dataclass
class WebhookEvent:
    """One webhook message, tagged with its kind."""
    kind: EventKind
    type: Optional[str] = None
    message: Dict[str, Any] = field(default_factory=dict)

    @property
    def call(self) -> Dict[str, Any]:
        call = self.message.get("call")
        return call if isinstance(call, dict) else {}

    @property
    def call_id(self) -> Optional[str]:
        return self.call.get("id") or self.message.get("callId")

    @property
    def phone_number(self) -> Optional[str]:
        customer = self.call.get("customer") or self.message.get("customer") or {}
        return customer.get("number") if isinstance(customer, dict) else None


def parse_event(payload: Any) -> WebhookEvent:
    """Turn a decoded webhook body into a WebhookEvent. Never raises."""
    message = payload.get("message") if isinstance(payload, dict) else None
    if not isinstance(message, dict):
        logger.warning("Webhook body has no message object")
        return WebhookEvent(kind=EventKind.UNKNOWN)

    event_type = message.get("type")
    kind = EVENT_ALIASES.get(event_type, EventKind.UNKNOWN) if isinstance(event_type, str) else EventKind.UNKNOWN
    return WebhookEvent(kind=kind, type=event_type, message=message)
