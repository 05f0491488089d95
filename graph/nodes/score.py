from graph.state import ConversationState, Stage
from loguru import logger

GENERIC_EMAIL_DOMAINS = ("gmail.com", "outlook.com", "yahoo.com", "hotmail.com")

SCORE_RULES = {
    "business_email": 20,
    "has_challenges": 15,
    "engaged_stage": 10,
    "solution_chosen": 25,
    "max_score": 100,
}

ENGAGED_STAGES = (Stage.DISCOVERY.value, Stage.SOLUTION_POSITIONING.value)

def email_domain(email: str) -> str:
    return email.split("@", 1)[1].strip().lower() if email and "@" in email else ""

def is_generic_domain(domain: str) -> bool:
    return domain in GENERIC_EMAIL_DOMAINS

def calculate_lead_score(state: ConversationState) -> int:
    """Score the lead from what the conversation has collected so far."""
    score = 0

    # Business email
    domain = email_domain(state.get("email") or "")
    if domain and not is_generic_domain(domain):
        score += SCORE_RULES["business_email"]

    # Discovered challenges
    if state.get("discovered_challenges"):
        score += SCORE_RULES["has_challenges"]

    # Stage reached
    if state.get("stage") in ENGAGED_STAGES:
        score += SCORE_RULES["engaged_stage"]

    # Solution preference
    if state.get("preferred_solution"):
        score += SCORE_RULES["solution_chosen"]

    return max(0, min(SCORE_RULES["max_score"], score))

def score(state: ConversationState) -> ConversationState:
    """Attach the current lead score to the state."""
    try:
        state["lead_score"] = calculate_lead_score(state)
        logger.info(f"Lead score {state['lead_score']} for session {state.get('session_id', 'unknown')}")
    except Exception as e:
        error_msg = f"Lead scoring failed: {str(e)}"
        logger.error(error_msg)
        state.setdefault("errors", []).append(error_msg)
        state["lead_score"] = state.get("lead_score", 0)
    return state
