from graph.state import ConversationState, Stage
from graph.nodes.score import score
from loguru import logger

SOLUTION_KEYWORDS = {
    "training": ("training",),
    "consulting": ("consulting", "done-for-you"),
}

SOLUTION_LABELS = {
    "training": "AI training",
    "consulting": "consulting services",
    "both": "a combined approach",
}

def match_solution(user_input: str) -> str:
    text = user_input.lower()
    for solution, keywords in SOLUTION_KEYWORDS.items():
        if any(keyword in text for keyword in keywords):
            return solution
    return "both"

def solution_positioning(state: ConversationState) -> ConversationState:
    """Record which offer the visitor prefers and move to the booking offer."""
    logger.info(f"Solution positioning for session: {state.get('session_id', 'unknown')}")

    state["preferred_solution"] = match_solution(state.get("user_input", ""))
    state["stage"] = Stage.BOOKING_OFFER.value
    state = score(state)

    company = (state.get("company_info") or {}).get("name") or "your business"
    state["response"] = (
        f"Excellent choice! I can see why {SOLUTION_LABELS[state['preferred_solution']]} "
        f"would work well for {company}.\n\n"
        "I'd love to dive deeper with a free 15-minute AI Strategy Session. "
        "Would you like to schedule a call?"
    )
    state["response_type"] = "cta"

    logger.info(f"Preferred solution: {state['preferred_solution']}, lead score {state.get('lead_score')}")
    return state

def summary_offer(state: ConversationState) -> ConversationState:
    """Announce the summary and move on to the booking offer."""
    logger.info(f"Summary offer for session: {state.get('session_id', 'unknown')}")

    company_info = state.get("company_info") or {}
    state["stage"] = Stage.BOOKING_OFFER.value
    state["response"] = (
        "Perfect! I'm preparing your personalized AI strategy summary now. This will include:\n\n"
        "- Your business context and challenges\n"
        f"- Recommended AI solutions for {company_info.get('name') or 'your company'}\n"
        "- Implementation roadmap\n"
        "- Next steps and resources\n\n"
        "I'd love to dive deeper with a free 15-minute AI Strategy Session about your "
        f"{company_info.get('industry') or 'business'} challenges. Would you like to grab a spot on my calendar?"
    )
    state["response_type"] = "cta"
    return state
