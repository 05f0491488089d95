import asyncio
import os
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from graph.flow import reduce
from graph.state import ConversationState, Message, Stage, initial_state
from graph.nodes.booking import BOOKING_EFFECT
from graph.nodes.email import RESEARCH_EFFECT
from graph.nodes.score import email_domain
from tools.company import CompanyAnalyzer, analyzer as default_analyzer, generic_profile
from tools.context_cache import IntelligenceContextCache
from tools.stage_tracker import StageTracker, funnel_stage_for, progress_percentage
from tools.suggestions import quick_replies
from tools.transcript import Transcript

OPENING_MESSAGE = "Hi! I'm here to help you discover how AI can transform your business. What's your name?"

class ConversationSession:
    """
    Runs the conversation flow for one visitor.

    Replies wait a short "thinking" delay in a cancellable task; a new
    submission cancels a reply that has not been produced yet, so messages
    always land in submission order.
    """

    def __init__(
        self,
        session_id: str,
        state: Optional[ConversationState] = None,
        transcript: Optional[Transcript] = None,
        analyzer: Optional[CompanyAnalyzer] = None,
        context_cache: Optional[IntelligenceContextCache] = None,
        think_delay: Optional[float] = None,
        research_delay: Optional[float] = None,
        on_change: Optional[Callable[["ConversationSession"], None]] = None,
    ):
        self.session_id = session_id
        self.state: ConversationState = state or initial_state(session_id)
        self.transcript = transcript or Transcript()
        self.analyzer = analyzer or default_analyzer
        self.context_cache = context_cache
        self.think_delay = think_delay if think_delay is not None else float(os.getenv("THINK_DELAY_SECONDS", "1.5"))
        self.research_delay = research_delay if research_delay is not None else float(os.getenv("RESEARCH_DELAY_SECONDS", "1.0"))
        self.on_change = on_change
        self.capabilities: List[str] = []
        self.show_booking = False
        self.tracker = StageTracker()
        self._pending: Optional[asyncio.Task] = None
        self._research: Optional[asyncio.Task] = None

        if not len(self.transcript):
            self.transcript.append(Message(
                content=OPENING_MESSAGE,
                suggestions=quick_replies(Stage.GREETING.value),
            ))
        self._sync_tracker()

    @property
    def stage(self) -> str:
        return self.state["stage"]

    @property
    def is_thinking(self) -> bool:
        return self._pending is not None and not self._pending.done()

    @property
    def is_researching(self) -> bool:
        return self._research is not None and not self._research.done()

    async def submit(self, user_input: str) -> Optional[Message]:
        """
        Handle a visitor reply.

        Returns:
            The assistant message, or None when a newer submission superseded this one
        """
        if self.is_thinking:
            logger.warning(f"Superseding pending reply for session {self.session_id}")
            self._pending.cancel()

        self.transcript.append(Message(content=user_input, role="user"))

        task = asyncio.ensure_future(self._respond(user_input))
        self._pending = task
        await asyncio.wait({task})

        if task.cancelled():
            logger.info(f"Reply superseded for session {self.session_id}")
            return None
        return task.result()

    async def _respond(self, user_input: str) -> Message:
        if self.think_delay > 0:
            await asyncio.sleep(self.think_delay)

        previous_stage = self.stage
        next_state = reduce(self.state, user_input)

        self.state = {k: v for k, v in next_state.items() if k not in ("user_input", "response", "response_type", "suggestions", "effects")}
        message = self.transcript.append(Message(
            content=next_state.get("response", ""),
            type=next_state.get("response_type", "text"),
            suggestions=next_state.get("suggestions", []),
        ))
        logger.info(f"Session {self.session_id}: {previous_stage} -> {self.stage}")

        for effect in next_state.get("effects", []):
            self._apply_effect(effect)

        self._sync_tracker()
        self._changed()
        return message

    def _apply_effect(self, effect: str) -> None:
        if effect == RESEARCH_EFFECT:
            self._research = asyncio.ensure_future(self._research_company(self.state.get("email") or ""))
        elif effect == BOOKING_EFFECT:
            self.show_booking = True
        else:
            logger.warning(f"Unknown conversation effect: {effect}")

    async def _research_company(self, email: str) -> None:
        """Look up the company behind the email, then move on to discovery."""
        if self.research_delay > 0:
            await asyncio.sleep(self.research_delay)

        try:
            company_info = await self.analyzer.analyze(email)
        except Exception as e:
            error_msg = f"Company research failed: {str(e)}"
            logger.error(error_msg)
            self.state.setdefault("errors", []).append(error_msg)
            company_info = generic_profile(email_domain(email))

        self.state["company_info"] = company_info
        if self.stage == Stage.EMAIL_COLLECTED.value:
            self.state["stage"] = Stage.DISCOVERY.value

        insights = company_info.get("insights") or [""]
        challenges = company_info.get("challenges") or ["AI adoption"]
        self.transcript.append(Message(
            content=(
                f"I see you're with {company_info.get('name')}. That's interesting - {insights[0]}. "
                f"Many businesses in {company_info.get('industry')} are facing challenges with {challenges[0]}.\n\n"
                "What's the biggest challenge you're currently facing with AI implementation or business automation?"
            ),
            type="insight",
            suggestions=quick_replies(self.stage),
        ))
        logger.info(f"Company research completed for {company_info.get('domain')}")

        if self.context_cache is not None:
            self.context_cache.clear(self.session_id)
        self._sync_tracker()
        self._changed()

    async def wait_for_research(self) -> None:
        if self._research is not None:
            await self._research

    def resume(self) -> None:
        """Restart company research for a restored session that was waiting on it."""
        if self.stage == Stage.EMAIL_COLLECTED.value and not self.is_researching:
            logger.info(f"Resuming company research for session {self.session_id}")
            self._apply_effect(RESEARCH_EFFECT)

    def use_capability(self, capability: str) -> List[str]:
        """Record a multimodal capability the visitor used."""
        if capability not in self.capabilities:
            self.capabilities.append(capability)
        if self.context_cache is not None:
            self.context_cache.on_capability_used(self.session_id)
        self._sync_tracker()
        self._changed()
        return list(self.capabilities)

    def _sync_tracker(self) -> None:
        self.tracker.sync_from_intelligence(
            stage_id=funnel_stage_for(self.stage),
            explored_count=len(self.capabilities),
        )

    def _changed(self) -> None:
        if self.on_change is None:
            return
        try:
            self.on_change(self)
        except Exception as e:
            logger.error(f"Session change hook failed for {self.session_id}: {e}")

    def progress(self) -> int:
        return progress_percentage(self.tracker)

    def close(self) -> None:
        for task in (self._pending, self._research):
            if task is not None and not task.done():
                task.cancel()

    def snapshot(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "state": dict(self.state),
            "messages": self.transcript.to_list(),
            "capabilities": list(self.capabilities),
            "show_booking": self.show_booking,
        }

    @classmethod
    def from_snapshot(cls, snapshot: Dict[str, Any], **kwargs) -> "ConversationSession":
        session = cls(
            snapshot["session_id"],
            state=snapshot.get("state"),
            transcript=Transcript.from_list(snapshot.get("messages", [])),
            **kwargs,
        )
        session.capabilities = list(snapshot.get("capabilities", []))
        session.show_booking = bool(snapshot.get("show_booking"))
        session._sync_tracker()
        return session
