from callflow.state import CallEndState, to_session_fields
from loguru import logger

DEFAULT_NOTES = "Inbound sales call via Riley AI assistant"

def finalize(state: CallEndState) -> CallEndState:
    """Merge end-of-call details (duration, summary, analysis) into the session snapshot."""
    call_id = state.get("call_id")
    logger.info(f"Finalizing session for call: {call_id}")

    session = dict(state.get("session") or {})
    ended = state.get("ended") or {}

    # Fields the platform's post-call analysis extracted only fill gaps;
    # anything a tool call wrote during the call wins.
    for key, value in to_session_fields(ended.get("extracted")).items():
        session.setdefault(key, value)

    if ended.get("phone_number"):
        session.setdefault("phone_number", ended["phone_number"])

    if ended.get("duration") is not None:
        try:
            session["duration"] = float(ended["duration"])
        except (TypeError, ValueError):
            state.setdefault("errors", []).append(f"Invalid call duration: {ended['duration']!r}")

    if ended.get("summary"):
        session["notes"] = ended["summary"]
    elif not session.get("notes"):
        session["notes"] = DEFAULT_NOTES

    if call_id:
        session["call_id"] = call_id

    state["session"] = session
    return state
