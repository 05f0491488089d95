import os
from typing import Dict, Any, List, Optional, Iterable

import httpx
from loguru import logger

from graph.state import Stage

# Quick replies shown under the assistant message, keyed by conversation stage.
QUICK_REPLIES: Dict[Stage, List[str]] = {
    Stage.GREETING: [
        "My name is John Smith",
        "I'm Sarah from TechCorp",
        "Call me Mike",
    ],
    Stage.EMAIL_REQUEST: [
        "john@company.com",
        "Why do you need my email?",
    ],
    Stage.EMAIL_COLLECTED: [],
    Stage.DISCOVERY: [
        "Too much manual data entry",
        "We don't know where to start with AI",
        "Customer support is overloaded",
    ],
    Stage.SOLUTION_POSITIONING: [
        "Training for my team",
        "Done-for-you consulting",
        "A bit of both",
    ],
    Stage.SUMMARY_OFFER: [
        "Email me the summary",
        "I'll download it now",
    ],
    Stage.BOOKING_OFFER: [
        "Schedule a call",
        "Send me the PDF report instead",
    ],
}

# Suggested actions keyed by funnel stage id.
STAGE_ACTIONS: Dict[str, List[Dict[str, str]]] = {
    "GREETING": [
        {"id": "search", "capability": "search", "label": "Research my company"},
    ],
    "NAME_COLLECTION": [
        {"id": "search", "capability": "search", "label": "Research my company"},
    ],
    "EMAIL_CAPTURE": [
        {"id": "search", "capability": "search", "label": "Research my company"},
    ],
    "BACKGROUND_RESEARCH": [
        {"id": "roi", "capability": "roi", "label": "Estimate AI ROI"},
        {"id": "doc", "capability": "doc", "label": "Analyze a document"},
    ],
    "PROBLEM_DISCOVERY": [
        {"id": "screen", "capability": "screenShare", "label": "Share my screen"},
        {"id": "roi", "capability": "roi", "label": "Estimate AI ROI"},
        {"id": "summary", "capability": "exportPdf", "label": "Create summary"},
    ],
    "SOLUTION_PRESENTATION": [
        {"id": "summary", "capability": "exportPdf", "label": "Create summary"},
        {"id": "meeting", "capability": "meeting", "label": "Book a Call"},
    ],
    "CALL_TO_ACTION": [
        {"id": "finish", "capability": "exportPdf", "label": "Finish & Email Summary"},
        {"id": "meeting", "capability": "meeting", "label": "Book a Call"},
    ],
}

MEETING_ACTION = {"id": "meeting-static", "capability": "meeting", "label": "Book a Call"}
VISIBLE_CAPABILITIES = ("exportPdf", "meeting")

def quick_replies(stage: str) -> List[str]:
    return list(QUICK_REPLIES[Stage(stage)])

def suggestions_for_stage(stage_id: str, used_capabilities: Iterable[str] = ()) -> List[Dict[str, str]]:
    """Suggested actions for a funnel stage, minus capabilities already used."""
    used = set(used_capabilities)
    actions = STAGE_ACTIONS.get(stage_id, STAGE_ACTIONS["BACKGROUND_RESEARCH"])
    return [dict(a) for a in actions if a["capability"] not in used or a["capability"] in VISIBLE_CAPABILITIES]

def visible_actions(suggestions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Keep PDF and meeting actions only, making sure a booking action is present."""
    items = [s for s in suggestions if s]
    if not any(s.get("capability") == "meeting" for s in items):
        items.append(dict(MEETING_ACTION))
    return [s for s in items if s.get("capability") in VISIBLE_CAPABILITIES]

class SuggestionsClient:
    """Fetches suggested actions from the intelligence API."""

    def __init__(self, base_url: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url or os.getenv("INTELLIGENCE_API_URL", "http://localhost:8000")
        self.transport = transport

    async def fetch(self, session_id: str, stage: str = "BACKGROUND_RESEARCH") -> List[Dict[str, Any]]:
        if not session_id:
            return []

        try:
            async with httpx.AsyncClient(base_url=self.base_url, timeout=20, transport=self.transport) as client:
                response = await client.post(
                    "/api/intelligence/suggestions",
                    json={"sessionId": session_id, "stage": stage},
                )
                response.raise_for_status()
                data = response.json() or {}
                return (data.get("output") or {}).get("suggestions") or data.get("suggestions") or []
        except Exception as e:
            logger.error(f"Suggestions fetch failed for {session_id}: {e}")
            return []
