from langchain_core.runnables import RunnableConfig
from loguru import logger

from callflow.state import CallEndState

def notify(state: CallEndState, config: RunnableConfig) -> CallEndState:
    """Hand the finished session to the notification sender supplied in config."""
    deliver = (config.get("configurable") or {}).get("deliver")
    if deliver is None:
        error_msg = "No notification sender configured"
        logger.error(f"{error_msg} for call {state.get('call_id')}")
        state.setdefault("errors", []).append(error_msg)
        state["notified"] = False
        return state

    deliver(state["session"], state.get("priority"))
    state["notified"] = True
    return state
