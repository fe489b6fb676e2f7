from langgraph.graph import StateGraph, START, END
from loguru import logger

from callflow.state import CallEndState
from callflow.nodes.finalize import finalize
from callflow.nodes.prioritize import prioritize
from callflow.nodes.notify import notify

def branch_decision(state: CallEndState) -> str:
    """Empty sessions (caller hung up before any data was captured) are not emailed."""
    if state.get("should_notify"):
        return "notify"
    logger.info(f"No lead data captured for call {state.get('call_id')}, skipping notification")
    return "skip"

def build_workflow():
    """Build the end-of-call workflow."""
    workflow = StateGraph(CallEndState)

    # Add nodes
    workflow.add_node("finalize", finalize)
    workflow.add_node("prioritize", prioritize)
    workflow.add_node("notify", notify)

    # Add edges
    workflow.add_edge(START, "finalize")
    workflow.add_edge("finalize", "prioritize")
    workflow.add_conditional_edges(
        "prioritize",
        branch_decision,
        {
            "notify": "notify",
            "skip": END
        }
    )
    workflow.add_edge("notify", END)

    return workflow.compile()
