import os
import time
from collections import OrderedDict
from typing import Dict, Optional
from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel
from dotenv import load_dotenv

# Import our modules
from tools.intelligence import build_intelligence_context
from tools.session import ConversationSession
from tools.session_store import SessionStore
from tools.stage_tracker import funnel_stage_for
from tools.suggestions import suggestions_for_stage

# Load environment variables
load_dotenv()

# Configure logging
logger.add("logs/app.log", rotation="1 day", retention="7 days", level="INFO")

# Initialize FastAPI app
app = FastAPI(
    title="Consulting Chat Funnel",
    description="Conversation funnel and lead intelligence for the AI consulting assistant",
    version="1.0.0"
)

class ChatMessage(BaseModel):
    message: str

class CapabilityUse(BaseModel):
    capability: str

class SuggestionsRequest(BaseModel):
    sessionId: str
    stage: Optional[str] = None

# Live sessions and persistence
store = SessionStore()
sessions: "OrderedDict[str, ConversationSession]" = OrderedDict()
last_seen: Dict[str, float] = {}

# Live sessions are bounded; evicted ones are restored from the store on demand
MAX_LIVE_SESSIONS = int(os.getenv("MAX_LIVE_SESSIONS", "1000"))
SESSION_IDLE_SECONDS = float(os.getenv("SESSION_IDLE_SECONDS", os.getenv("SESSION_TTL_SECONDS", "86400")))

def persist(session: ConversationSession) -> None:
    store.save_session(session.session_id, session.snapshot())

def drop_session(session_id: str) -> None:
    """Persist a live session, cancel its pending work and forget it."""
    session = sessions.pop(session_id, None)
    last_seen.pop(session_id, None)
    if session is None:
        return

    persist(session)
    session.close()
    logger.info(f"Evicted session {session_id}")

def evict_sessions(now: Optional[float] = None) -> None:
    """Drop idle sessions, then the least recently used ones above the bound."""
    now = now if now is not None else time.monotonic()
    for session_id in [sid for sid, seen in last_seen.items() if now - seen > SESSION_IDLE_SECONDS]:
        drop_session(session_id)

    while len(sessions) > MAX_LIVE_SESSIONS:
        drop_session(next(iter(sessions)))

def remember(session: ConversationSession) -> ConversationSession:
    """Mark a session as most recently used."""
    sessions[session.session_id] = session
    sessions.move_to_end(session.session_id)
    last_seen[session.session_id] = time.monotonic()
    evict_sessions()
    return session

def get_session(session_id: str) -> ConversationSession:
    """Return a live session, restoring it from the store when needed."""
    session = sessions.get(session_id)
    if session is not None:
        return remember(session)

    snapshot = store.load_session(session_id)
    if not snapshot:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")

    session = ConversationSession.from_snapshot(snapshot, on_change=persist)
    session.resume()
    remember(session)
    logger.info(f"Restored session {session_id} at stage {session.stage}")
    return session

def session_payload(session: ConversationSession) -> dict:
    return {
        "session_id": session.session_id,
        "stage": session.stage,
        "state": dict(session.state),
        "messages": session.transcript.to_list(),
        "progress": session.tracker.to_dict(),
        "show_booking": session.show_booking,
    }

@app.post("/api/sessions")
async def create_session():
    """Start a new conversation and return its opening message."""
    session_id = store.new_session_id()
    session = ConversationSession(session_id, on_change=persist)
    persist(session)
    remember(session)

    logger.info(f"Created session {session_id}")
    return session_payload(session)

@app.post("/api/chat/{session_id}")
async def chat(session_id: str, body: ChatMessage):
    """
    Submit a visitor reply.

    Expected payload:
    {
        "message": "My name is John Smith"
    }
    """
    start_time = time.time()
    session = get_session(session_id)

    logger.info(f"Chat message for {session_id} at stage {session.stage}")
    reply = await session.submit(body.message)

    payload = session_payload(session)
    payload["reply"] = reply.to_dict() if reply else None
    payload["superseded"] = reply is None
    payload["processing_time"] = time.time() - start_time
    return payload

@app.get("/api/chat/{session_id}")
async def get_chat(session_id: str):
    return session_payload(get_session(session_id))

@app.post("/api/chat/{session_id}/capabilities")
async def use_capability(session_id: str, body: CapabilityUse):
    """Record that a multimodal capability was used in the chat."""
    session = get_session(session_id)
    capabilities = session.use_capability(body.capability)
    logger.info(f"Capability used in {session_id}: {body.capability}")
    return {"capabilities": capabilities, "progress": session.tracker.to_dict()}

@app.get("/api/intelligence/context")
async def intelligence_context(sessionId: str):
    session = get_session(sessionId)
    return {"output": build_intelligence_context(session.state, session.capabilities)}

@app.post("/api/intelligence/suggestions")
async def intelligence_suggestions(body: SuggestionsRequest):
    session = get_session(body.sessionId)
    stage = body.stage or funnel_stage_for(session.stage)
    return {"suggestions": suggestions_for_stage(stage, session.capabilities)}

@app.get("/health")
def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "version": "1.0.0",
        "services": {
            "redis": "connected" if store.r else "disconnected",
            "sessions": len(sessions)
        }
    }

# Error handlers
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"status": "error", "message": "Internal server error"}
    )

if __name__ == "__main__":
    import uvicorn

    # Create logs directory if it doesn't exist
    os.makedirs("logs", exist_ok=True)

    logger.info("Starting Consulting Chat Funnel")

    uvicorn.run(
        "app:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
