import os
from typing import Any

from callflow.state import CallEndState
from loguru import logger

def threshold_from_env(name: str, default: float) -> float:
    """Read a numeric threshold, keeping the default when the value is malformed."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw!r}, using default {default}")
        return default

PRIORITY_THRESHOLDS = {
    "HIGH": threshold_from_env("PRIORITY_HIGH_THRESHOLD", 8.0),
    "MEDIUM": threshold_from_env("PRIORITY_MEDIUM_THRESHOLD", 6.0),
}

def derive_priority(score: Any) -> str:
    """Bucket a 0-10 qualification score. Missing or non-numeric scores are LOW."""
    try:
        value = float(score)
    except (TypeError, ValueError):
        return "LOW"

    if value >= PRIORITY_THRESHOLDS["HIGH"]:
        return "HIGH"
    if value >= PRIORITY_THRESHOLDS["MEDIUM"]:
        return "MEDIUM"
    return "LOW"

def has_lead_data(session: dict) -> bool:
    """A session is worth notifying about once it has a name or a score."""
    return bool(session.get("first_name")) or session.get("qualification_score") not in (None, "")

def prioritize(state: CallEndState) -> CallEndState:
    """Derive the priority bucket and decide whether the lead gets an email."""
    session = state.get("session") or {}

    state["priority"] = derive_priority(session.get("qualification_score"))
    state["should_notify"] = has_lead_data(session)

    logger.info(
        f"Call {state.get('call_id')}: priority {state['priority']}, "
        f"notify={state['should_notify']}"
    )
    return state
