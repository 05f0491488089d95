from graph.state import ConversationState, Stage
from loguru import logger

BOOKING_KEYWORDS = ("schedule", "calendar", "call")
BOOKING_EFFECT = "show_booking"

def wants_booking(user_input: str) -> bool:
    text = user_input.lower()
    return any(keyword in text for keyword in BOOKING_KEYWORDS)

def booking_offer(state: ConversationState) -> ConversationState:
    """Open the booking overlay on request, otherwise offer the PDF report."""
    logger.info(f"Booking offer for session: {state.get('session_id', 'unknown')}")

    state["stage"] = Stage.BOOKING_OFFER.value

    if wants_booking(state.get("user_input", "")):
        state.setdefault("effects", []).append(BOOKING_EFFECT)
        state["response"] = (
            f"Fantastic! Pick a time that works for you, {state.get('name') or 'there'}. "
            "I'm opening the calendar now."
        )
        state["response_type"] = "cta"
        logger.info("Booking overlay requested")
    else:
        state["response"] = (
            "No problem! I can put together a personalized PDF report of our conversation "
            f"and send it to {state.get('email') or 'your inbox'}. "
            "You can still book a call whenever you're ready."
        )
        state["response_type"] = "summary"
        logger.info("Booking declined, offering PDF report")

    return state
