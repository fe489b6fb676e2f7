import json
import re
from typing import Callable, Dict, Any, Optional

from loguru import logger

from callflow.state import to_session_fields
from integrations.call_store import CallStore

DEMO_SCHEDULED = "Demo scheduled"
MISSING_NAME = "<missing>"

CONTACT_FIELDS = [
    "first_name", "last_name", "email", "company", "phone_number",
    "industry", "employee_count", "notes"
]
DEMO_FIELDS = ["first_name", "last_name", "email", "company", "specific_needs"]


class UnknownFunctionError(Exception):
    """Raised when the platform asks for a function we do not implement."""

    def __init__(self, name: Optional[str]):
        self.name = name
        super().__init__(f"Unknown function: {name if isinstance(name, str) and name else MISSING_NAME}")


def parse_arguments(raw: Any) -> Dict[str, Any]:
    """Function arguments arrive as a dict or a JSON string."""
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str) and raw.strip():
        try:
            parsed = json.loads(raw)
            return parsed if isinstance(parsed, dict) else {}
        except json.JSONDecodeError:
            logger.warning(f"Unparseable function arguments: {raw[:100]}")
    return {}


def reference_code(call_id: Optional[str]) -> str:
    """Short contact reference derived from the call id."""
    chars = re.sub(r"[^A-Za-z0-9]", "", call_id or "")
    return f"LEAD-{(chars[-8:] or 'UNKNOWN').upper()}"


def _store(store: CallStore, call_id: Optional[str], fields: Dict[str, Any]) -> None:
    if not call_id:
        logger.warning(f"Function call without call id, not storing fields: {sorted(fields)}")
        return
    store.upsert(call_id, fields)


def capture_lead_info(store: CallStore, call_id: Optional[str], params: Dict[str, Any]) -> Dict[str, Any]:
    """Merge every lead field the assistant captured."""
    fields = to_session_fields(params)
    _store(store, call_id, fields)
    logger.info(f"Captured lead info for call {call_id}: {sorted(fields)}")

    first_name = fields.get("first_name") or "there"
    company = fields.get("company") or "your team"
    return {
        "result": f"Thank you {first_name}! I've captured your information and noted that "
                  f"you're interested in AI solutions for {company}."
    }


def create_contact_record(store: CallStore, call_id: Optional[str], params: Dict[str, Any]) -> Dict[str, Any]:
    fields = to_session_fields(params, CONTACT_FIELDS)
    _store(store, call_id, fields)

    code = reference_code(call_id)
    logger.info(f"Contact record {code} created for call {call_id}")
    return {
        "result": f"I've created a contact record for you. Your reference code is {code}.",
        "referenceCode": code
    }


def schedule_demo(store: CallStore, call_id: Optional[str], params: Dict[str, Any]) -> Dict[str, Any]:
    """Record a demo request; next steps carry the requested time and timezone."""
    requested_time = params.get("requestedTime") or "at the earliest available time"
    timezone = params.get("timezone") or "timezone not specified"

    fields = to_session_fields(params, DEMO_FIELDS)
    fields["next_steps"] = f"Demo requested for {requested_time} ({timezone})"
    fields["call_outcome"] = DEMO_SCHEDULED
    _store(store, call_id, fields)
    logger.info(f"Demo scheduling request for call {call_id}: {requested_time} ({timezone})")

    return {
        "result": f"Excellent! I've noted your request for a demo {requested_time}. "
                  f"Our specialist will send you a calendar invite shortly."
    }


FUNCTION_HANDLERS: Dict[str, Callable[[CallStore, Optional[str], Dict[str, Any]], Dict[str, Any]]] = {
    "capture_lead_info": capture_lead_info,
    "create_contact_record": create_contact_record,
    "schedule_demo": schedule_demo,
}


def handle_function_call(store: CallStore, call_id: Optional[str], name: Optional[str], arguments: Any) -> Dict[str, Any]:
    """
    Run one in-call function and return the payload spoken back to the caller.

    Raises:
        UnknownFunctionError: if name is not a known function
    """
    handler = FUNCTION_HANDLERS.get(name) if isinstance(name, str) else None
    if handler is None:
        if not name:
            logger.warning("Function call without a function name")
        raise UnknownFunctionError(name)
    return handler(store, call_id, parse_arguments(arguments))
