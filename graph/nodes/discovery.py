from graph.state import ConversationState, Stage
from graph.nodes.score import score
from loguru import logger

def discovery(state: ConversationState) -> ConversationState:
    """Record the visitor's main challenge and present the two offers."""
    logger.info(f"Discovery stage for session: {state.get('session_id', 'unknown')}")

    # Stored verbatim, blank replies included.
    state["discovered_challenges"] = [state.get("user_input", "")]
    state["stage"] = Stage.SOLUTION_POSITIONING.value
    state = score(state)

    company = (state.get("company_info") or {}).get("name") or "your company"
    state["response"] = (
        f"Based on what you've shared, {state.get('name') or 'there'}, I see two ways we could help:\n\n"
        "**1. AI Training for Your Team**\n"
        "Get your employees up to speed with hands-on AI training programs\n\n"
        "**2. Done-for-You AI Consulting**\n"
        "We implement AI solutions directly for your business\n\n"
        f"Which approach feels more aligned with where {company} is right now?"
    )
    state["response_type"] = "text"

    logger.info(f"Discovery completed, lead score {state.get('lead_score')}")
    return state
