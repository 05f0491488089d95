from typing import Dict, Callable
from langgraph.graph import StateGraph, START, END
from loguru import logger

from graph.state import ConversationState, Stage, PERSISTENT_FIELDS
from graph.nodes.greeting import greeting
from graph.nodes.email import email_request, email_collected
from graph.nodes.discovery import discovery
from graph.nodes.solution import solution_positioning, summary_offer
from graph.nodes.booking import booking_offer
from tools.suggestions import quick_replies

StageNode = Callable[[ConversationState], ConversationState]

# One node per stage; every Stage member must be handled.
STAGE_NODES: Dict[Stage, StageNode] = {
    Stage.GREETING: greeting,
    Stage.EMAIL_REQUEST: email_request,
    Stage.EMAIL_COLLECTED: email_collected,
    Stage.DISCOVERY: discovery,
    Stage.SOLUTION_POSITIONING: solution_positioning,
    Stage.SUMMARY_OFFER: summary_offer,
    Stage.BOOKING_OFFER: booking_offer,
}

_unhandled = set(Stage) - set(STAGE_NODES)
if _unhandled:
    raise RuntimeError(f"No conversation node for stages: {sorted(s.value for s in _unhandled)}")

def suggest(state: ConversationState) -> ConversationState:
    """Attach quick replies for the stage the turn ended in."""
    state["suggestions"] = quick_replies(state["stage"])
    return state

def route_by_stage(state: ConversationState) -> str:
    stage = Stage(state.get("stage") or Stage.GREETING.value)
    logger.info(f"Dispatching turn at stage: {stage.value}")
    return stage.value

def build_conversation_graph():
    """Build the per-turn conversation workflow."""
    workflow = StateGraph(ConversationState)

    # Add nodes
    for stage, node in STAGE_NODES.items():
        workflow.add_node(stage.value, node)
    workflow.add_node("suggest", suggest)

    # Dispatch on the current stage
    workflow.add_conditional_edges(
        START,
        route_by_stage,
        {stage.value: stage.value for stage in STAGE_NODES},
    )

    for stage in STAGE_NODES:
        workflow.add_edge(stage.value, "suggest")
    workflow.add_edge("suggest", END)

    return workflow.compile()

conversation_graph = build_conversation_graph()

def reduce(state: ConversationState, user_input: str) -> ConversationState:
    """
    Run one turn of the conversation.

    Args:
        state: Current conversation state
        user_input: Free-text reply from the visitor

    Returns:
        Next state, carrying the assistant response, quick replies and requested effects
    """
    turn: ConversationState = {k: state[k] for k in PERSISTENT_FIELDS if k in state}
    turn.setdefault("stage", Stage.GREETING.value)
    turn["errors"] = list(turn.get("errors", []))
    turn.update({
        "user_input": user_input,
        "response": "",
        "response_type": "text",
        "suggestions": [],
        "effects": [],
    })
    return conversation_graph.invoke(turn)
