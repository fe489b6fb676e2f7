from dataclasses import dataclass, field
from functools import partial
from typing import Callable, Dict, Any, List, Optional

from loguru import logger

from callflow.events import EventKind, WebhookEvent
from callflow.functions import FUNCTION_HANDLERS, UnknownFunctionError, handle_function_call
from callflow.workflow import build_workflow
from integrations.call_store import CallStore
from integrations.notifier import LeadNotifier


@dataclass
class DispatchResult:
    """HTTP status and JSON body to answer the webhook with."""
    status_code: int = 200
    body: Dict[str, Any] = field(default_factory=lambda: {"received": True})


def _first(*values):
    for value in values:
        if value is not None:
            return value
    return None


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _analysis(event: WebhookEvent) -> Dict[str, Any]:
    return _as_dict(event.message.get("analysis") or event.call.get("analysis"))


def _extracted(analysis: Dict[str, Any]) -> Dict[str, Any]:
    """Post-call structured data, ignored unless it is an object."""
    for key in ("structuredData", "extractedInfo"):
        value = analysis.get(key)
        if isinstance(value, dict) and value:
            return value
    return {}


class Dispatcher:
    """Routes webhook events to their handlers."""

    def __init__(self, store: CallStore, notifier: LeadNotifier, workflow=None):
        self.store = store
        self.notifier = notifier
        self.workflow = workflow or build_workflow()
        self._handlers: Dict[EventKind, Callable[[WebhookEvent, Optional[Callable]], DispatchResult]] = {
            EventKind.CALL_STARTED: self._on_call_started,
            EventKind.CALL_ENDED: self._on_call_ended,
            EventKind.TOOL_CALL: self._on_tool_call,
            EventKind.TRANSCRIPT: self._on_transcript,
            EventKind.CONVERSATION_UPDATE: self._on_conversation_update,
            EventKind.STATUS_UPDATE: self._on_status_update,
            EventKind.SPEECH_UPDATE: self._on_speech_update,
            EventKind.UNKNOWN: self._on_unknown,
        }
        missing = set(EventKind) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for event kinds: {sorted(k.value for k in missing)}")

    def handle_event(self, event: WebhookEvent, defer: Optional[Callable] = None) -> DispatchResult:
        """
        Handle one webhook event.

        Args:
            event: Parsed webhook event
            defer: Optional scheduler with the signature of
                BackgroundTasks.add_task; notifications are handed to it
                instead of being sent inline

        Returns:
            DispatchResult for the HTTP response
        """
        return self._handlers[event.kind](event, defer)

    def _on_call_started(self, event: WebhookEvent, defer=None) -> DispatchResult:
        call_id = event.call_id
        if not call_id:
            logger.warning("call-started event without call id")
            return DispatchResult()

        self.store.upsert(call_id, {"phone_number": event.phone_number})
        logger.info(f"Call started: {call_id} from {event.phone_number}")
        return DispatchResult()

    def _on_call_ended(self, event: WebhookEvent, defer=None) -> DispatchResult:
        call_id = event.call_id
        if not call_id:
            logger.warning(f"{event.type} event without call id")
            return DispatchResult()

        # Evict first so the entry never outlives the call, notified or not.
        session = self.store.remove(call_id)
        if not session:
            logger.info(f"No stored session for call {call_id} (never populated or already ended)")
            return DispatchResult()

        analysis = _analysis(event)
        initial_state = {
            "call_id": call_id,
            "session": session,
            "ended": {
                "phone_number": event.phone_number,
                "duration": _first(event.call.get("duration"), event.message.get("durationSeconds")),
                "summary": analysis.get("summary") or event.message.get("summary"),
                "extracted": _extracted(analysis),
            },
            "errors": []
        }

        deliver = partial(defer, self.notifier.notify) if defer else self.notifier.notify
        result = self.workflow.invoke(initial_state, config={"configurable": {"deliver": deliver}})

        for error in result.get("errors", []):
            logger.warning(f"Call {call_id}: {error}")
        logger.info(
            f"Call ended: {call_id} (priority {result.get('priority')}, "
            f"notified={result.get('notified', False)})"
        )
        return DispatchResult()

    def _on_tool_call(self, event: WebhookEvent, defer=None) -> DispatchResult:
        call_id = event.call_id
        if event.type == "tool-calls":
            return self._on_tool_call_list(event, call_id)

        function_call = _as_dict(event.message.get("functionCall"))
        name = function_call.get("name")
        logger.info(f"Function call {name} for call {call_id}")
        try:
            payload = handle_function_call(self.store, call_id, name, function_call.get("parameters"))
        except UnknownFunctionError as e:
            logger.warning(f"Call {call_id}: {e}")
            return DispatchResult(400, {"error": str(e)})
        return DispatchResult(200, payload)

    def _on_tool_call_list(self, event: WebhookEvent, call_id: Optional[str]) -> DispatchResult:
        tool_calls = self._tool_call_list(event)

        # Reject the batch before running anything if a name is unknown.
        for tool_call in tool_calls:
            name = _as_dict(tool_call.get("function")).get("name")
            if not isinstance(name, str) or name not in FUNCTION_HANDLERS:
                error = UnknownFunctionError(name)
                logger.warning(f"Call {call_id}: {error}")
                return DispatchResult(400, {"error": str(error)})

        results = []
        for tool_call in tool_calls:
            function = _as_dict(tool_call.get("function"))
            logger.info(f"Tool call {function.get('name')} for call {call_id}")
            payload = handle_function_call(self.store, call_id, function.get("name"), function.get("arguments"))
            results.append({"toolCallId": tool_call.get("id"), "result": payload["result"]})
        return DispatchResult(200, {"results": results})

    @staticmethod
    def _tool_call_list(event: WebhookEvent) -> List[Dict[str, Any]]:
        tool_calls = event.message.get("toolCallList")
        if tool_calls is None:
            tool_calls = [
                _as_dict(item.get("toolCall")) if isinstance(item, dict) else {}
                for item in event.message.get("toolWithToolCallList") or []
            ]
        if not isinstance(tool_calls, list):
            return []
        return [tc for tc in tool_calls if isinstance(tc, dict)]

    def _on_transcript(self, event: WebhookEvent, defer=None) -> DispatchResult:
        logger.info(f"{event.message.get('role')}: {event.message.get('transcript')}")
        return DispatchResult()

    def _on_conversation_update(self, event: WebhookEvent, defer=None) -> DispatchResult:
        if event.message.get("transcript"):
            logger.info(f"Conversation Update: {event.message.get('role')}: {event.message.get('transcript')}")
        return DispatchResult()

    def _on_status_update(self, event: WebhookEvent, defer=None) -> DispatchResult:
        logger.info(f"Status update for call {event.call_id}: {event.message.get('status')}")
        return DispatchResult()

    def _on_speech_update(self, event: WebhookEvent, defer=None) -> DispatchResult:
        logger.debug(f"Speech update for call {event.call_id}: {event.message.get('role')} {event.message.get('status')}")
        return DispatchResult()

    def _on_unknown(self, event: WebhookEvent, defer=None) -> DispatchResult:
        logger.info(f"Unhandled message type: {event.type}")
        return DispatchResult()
