import re
from graph.state import ConversationState, Stage
from loguru import logger

NAME_PREFIXES = re.compile(r"^\s*(?:(?:hello|hi|hey)\b[\s,!]*)?(my name is|i am|i'm|call me)\b[\s,]*", re.IGNORECASE)
GREETING_WORD = re.compile(r"(hello|hi|hey)[,!]*", re.IGNORECASE)

def extract_name(user_input: str) -> str:
    """Pull a name out of a greeting reply; plain replies are kept verbatim."""
    name = NAME_PREFIXES.sub("", user_input)
    if name == user_input:
        # "Hello there Jane Doe": the name follows the first two words
        words = user_input.split()
        if len(words) > 2 and GREETING_WORD.fullmatch(words[0]):
            name = " ".join(words[2:])
    return re.sub(r"[,!.?]+$", "", name).strip()

def greeting(state: ConversationState) -> ConversationState:
    """Capture the visitor's name and ask for a work email."""
    user_input = state.get("user_input", "")
    logger.info(f"Greeting stage for session: {state.get('session_id', 'unknown')}")

    name = extract_name(user_input) or user_input.strip()

    state["name"] = name
    state["stage"] = Stage.EMAIL_REQUEST.value
    state["response"] = (
        f"Nice to meet you, {name}! To send you a personalized summary of our "
        f"conversation, what's your work email?"
    )
    state["response_type"] = "text"

    logger.info(f"Captured name '{name}', moving to {state['stage']}")
    return state
