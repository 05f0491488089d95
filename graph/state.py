import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import TypedDict, Optional, List, Dict, Any

class Stage(str, Enum):
    """Conversation funnel stages, in the order the reducer walks them."""
    GREETING = "greeting"
    EMAIL_REQUEST = "email_request"
    EMAIL_COLLECTED = "email_collected"
    DISCOVERY = "discovery"
    SOLUTION_POSITIONING = "solution_positioning"
    SUMMARY_OFFER = "summary_offer"
    BOOKING_OFFER = "booking_offer"

STAGE_ORDER = list(Stage)

def stage_ordinal(stage: str) -> int:
    return STAGE_ORDER.index(Stage(stage))

class CompanyInfo(TypedDict, total=False):
    name: str
    domain: str
    industry: str
    insights: List[str]
    challenges: List[str]
    source: str                      # "clearbit" | "heuristic" | "generic"

class ConversationState(TypedDict, total=False):
    """State shape for one turn of the conversation flow."""
    session_id: str
    stage: str                       # Stage value
    user_input: str
    name: Optional[str]
    email: Optional[str]
    company_info: CompanyInfo
    discovered_challenges: List[str]
    preferred_solution: Optional[str]  # "training" | "consulting" | "both"
    lead_score: int
    response: str                    # assistant reply for this turn
    response_type: str               # "text" | "insight" | "summary" | "cta"
    suggestions: List[str]           # quick replies
    effects: List[str]               # "research_company" | "show_booking"
    errors: List[str]

# Fields that survive between turns; the rest are rebuilt on every invoke.
PERSISTENT_FIELDS = (
    "session_id", "stage", "name", "email", "company_info",
    "discovered_challenges", "preferred_solution", "lead_score", "errors",
)

def initial_state(session_id: str) -> ConversationState:
    return {"session_id": session_id, "stage": Stage.GREETING.value, "errors": []}

@dataclass
class Message:
    """A single chat transcript entry."""
    content: str
    role: str = "assistant"          # "user" | "assistant" | "system"
    type: Optional[str] = "text"
    suggestions: List[str] = field(default_factory=list)
    sources: List[Dict[str, str]] = field(default_factory=list)
    tasks: List[Dict[str, Any]] = field(default_factory=list)
    tools: List[Dict[str, Any]] = field(default_factory=list)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        data = dict(data)
        if isinstance(data.get("timestamp"), str):
            data["timestamp"] = datetime.fromisoformat(data["timestamp"])
        return cls(**data)
