from graph.state import ConversationState, Stage
from loguru import logger

RESEARCH_EFFECT = "research_company"

def email_request(state: ConversationState) -> ConversationState:
    """Collect a work email, or re-prompt when the reply has no '@'."""
    user_input = state.get("user_input", "")
    logger.info(f"Email request stage for session: {state.get('session_id', 'unknown')}")

    if "@" not in user_input:
        logger.warning(f"Reply is not an email, re-prompting: {user_input!r}")
        state["stage"] = Stage.EMAIL_REQUEST.value
        state["response"] = (
            "I need your work email to send you the personalized summary. "
            "Could you please provide your business email address?"
        )
        state["response_type"] = "text"
        return state

    state["email"] = user_input.strip()
    state["stage"] = Stage.EMAIL_COLLECTED.value
    state.setdefault("effects", []).append(RESEARCH_EFFECT)
    state["response"] = f"Perfect, {state.get('name') or 'there'}! I'm analyzing your company background now..."
    state["response_type"] = "text"

    logger.info(f"Email collected: {state['email']}, company research requested")
    return state

def email_collected(state: ConversationState) -> ConversationState:
    """Company research is still running; keep the visitor waiting."""
    logger.info(f"Reply received while research pending for session: {state.get('session_id', 'unknown')}")

    state["stage"] = Stage.EMAIL_COLLECTED.value
    state["response"] = "Just a moment, I'm still looking into your company background..."
    state["response_type"] = "text"
    return state
