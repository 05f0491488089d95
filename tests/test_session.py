import asyncio
import pytest
import os
import sys
from unittest.mock import MagicMock

import httpx

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from graph.state import Stage, Message
from tools.company import CompanyAnalyzer, company_name_from_domain, pick_industry, INDUSTRIES
from tools.session import ConversationSession, OPENING_MESSAGE
from tools.transcript import Transcript

class TestConversationSession:
    """Test the async session runner."""

    def setup_method(self):
        """Set up test fixtures."""
        self.analyzer = CompanyAnalyzer()
        self.analyzer.api_key = None  # heuristic profiles only

    def make_session(self, **kwargs):
        kwargs.setdefault("analyzer", self.analyzer)
        kwargs.setdefault("think_delay", 0)
        kwargs.setdefault("research_delay", 0)
        return ConversationSession("session-test", **kwargs)

    def test_opening_message(self):
        session = self.make_session()

        assert session.stage == Stage.GREETING.value
        assert session.transcript.last.content == OPENING_MESSAGE
        assert session.transcript.last.suggestions

    def test_name_then_email_reaches_discovery(self):
        """Test the email step researches the company and moves to discovery."""
        session = self.make_session(research_delay=0.01)

        async def scenario():
            await session.submit("John Smith")
            assert session.state["name"] == "John Smith"
            assert session.stage == Stage.EMAIL_REQUEST.value

            reply = await session.submit("sarah@acme.com")
            assert session.stage == Stage.EMAIL_COLLECTED.value
            assert session.is_researching
            assert "analyzing" in reply.content

            await session.wait_for_research()

        asyncio.run(scenario())
        assert session.stage == Stage.DISCOVERY.value
        types = [m.type for m in session.transcript if m.role == "assistant"]
        assert types.index("insight") == len(types) - 1
        assert "analyzing" in session.transcript.messages[-2].content
        assert session.state["company_info"]["domain"] == "acme.com"
        assert session.state["company_info"]["source"] == "heuristic"
        assert session.transcript.last.type == "insight"
        assert "acme" in session.transcript.last.content

    def test_invalid_email_reprompts(self):
        session = self.make_session()

        async def scenario():
            await session.submit("John")
            return await session.submit("not-an-email")

        reply = asyncio.run(scenario())
        assert session.stage == Stage.EMAIL_REQUEST.value
        assert "business email" in reply.content

    def test_superseded_reply_is_dropped(self):
        """Test a newer submission cancels the pending reply."""
        session = self.make_session(think_delay=0.05)

        async def scenario():
            first = asyncio.ensure_future(session.submit("Ignored Name"))
            await asyncio.sleep(0)
            second = await session.submit("John Smith")
            return await first, second

        first, second = asyncio.run(scenario())
        assert first is None
        assert second is not None
        assert session.state["name"] == "John Smith"
        roles = [m.role for m in session.transcript]
        assert roles == ["assistant", "user", "user", "assistant"]

    def test_booking_effect(self):
        session = self.make_session(state={
            "session_id": "session-test",
            "stage": Stage.BOOKING_OFFER.value,
            "errors": [],
        })

        asyncio.run(session.submit("Can we schedule a call?"))
        assert session.show_booking is True

    def test_research_failure_falls_back(self):
        """Test a failing lookup still moves on with a generic profile."""
        analyzer = MagicMock()

        async def boom(email):
            raise RuntimeError("lookup down")

        analyzer.analyze = boom
        session = self.make_session(analyzer=analyzer)

        async def scenario():
            await session.submit("Sarah")
            await session.submit("sarah@acme.com")
            await session.wait_for_research()

        asyncio.run(scenario())
        assert session.stage == Stage.DISCOVERY.value
        assert session.state["company_info"]["source"] == "generic"
        assert "Company research failed" in session.state["errors"][0]

    def test_capability_use_updates_progress_and_cache(self):
        cache = MagicMock()
        session = self.make_session(context_cache=cache)

        capabilities = session.use_capability("voice")
        session.use_capability("voice")

        assert capabilities == ["voice"]
        assert session.tracker.exploration.explored_count == 1
        cache.on_capability_used.assert_called_with("session-test")

    def test_research_invalidates_context(self):
        cache = MagicMock()
        session = self.make_session(context_cache=cache)

        async def scenario():
            await session.submit("Sarah")
            await session.submit("sarah@acme.com")
            await session.wait_for_research()

        asyncio.run(scenario())
        cache.clear.assert_called_with("session-test")

    def test_tracker_follows_stage(self):
        session = self.make_session()

        async def scenario():
            await session.submit("Sarah")
            await session.submit("sarah@acme.com")
            await session.wait_for_research()

        asyncio.run(scenario())
        assert session.tracker.current_stage.id == "PROBLEM_DISCOVERY"
        assert session.progress() > 0

    def test_on_change_hook(self):
        snapshots = []
        session = self.make_session(on_change=lambda s: snapshots.append(s.snapshot()))

        asyncio.run(session.submit("Sarah"))
        assert snapshots[-1]["state"]["stage"] == Stage.EMAIL_REQUEST.value

    def test_snapshot_round_trip(self):
        session = self.make_session()
        asyncio.run(session.submit("Sarah"))
        session.use_capability("webcam")

        restored = ConversationSession.from_snapshot(
            session.snapshot(), analyzer=self.analyzer, think_delay=0, research_delay=0)

        assert restored.stage == Stage.EMAIL_REQUEST.value
        assert restored.state["name"] == "Sarah"
        assert len(restored.transcript) == len(session.transcript)
        assert restored.capabilities == ["webcam"]

    def test_resume_restarts_research(self):
        session = self.make_session(state={
            "session_id": "session-test",
            "stage": Stage.EMAIL_COLLECTED.value,
            "email": "sarah@acme.com",
            "errors": [],
        })

        async def scenario():
            session.resume()
            await session.wait_for_research()

        asyncio.run(scenario())
        assert session.stage == Stage.DISCOVERY.value

class TestCompanyAnalyzer:
    """Test the company lookup."""

    def test_generic_domain(self):
        info = asyncio.run(CompanyAnalyzer(api_key="key").analyze("jane@gmail.com"))

        assert info["source"] == "generic"
        assert info["name"] == "your company"

    def test_heuristic_profile(self):
        analyzer = CompanyAnalyzer()
        analyzer.api_key = None
        info = asyncio.run(analyzer.analyze("sarah@acme.com"))

        assert info["domain"] == "acme.com"
        assert info["name"] == "acme"
        assert info["industry"] in INDUSTRIES
        assert info["industry"] == pick_industry("acme.com")

    def test_clearbit_profile(self):
        def handler(request):
            assert request.headers["Authorization"] == "Bearer key"
            assert request.url.params["domain"] == "acme.com"
            return httpx.Response(200, json={
                "name": "Acme Corp",
                "category": {"industry": "Software"},
                "metrics": {"employees": 250},
            })

        analyzer = CompanyAnalyzer(api_key="key", transport=httpx.MockTransport(handler))
        info = asyncio.run(analyzer.analyze("sarah@acme.com"))

        assert info["source"] == "clearbit"
        assert info["name"] == "Acme Corp"
        assert info["industry"] == "software"

    def test_clearbit_failure_falls_back(self):
        analyzer = CompanyAnalyzer(api_key="key", transport=httpx.MockTransport(lambda r: httpx.Response(503)))
        info = asyncio.run(analyzer.analyze("sarah@acme.com"))

        assert info["source"] == "heuristic"

    def test_company_name_from_domain(self):
        assert company_name_from_domain("acme.com") == "acme"
        assert company_name_from_domain("big-corp.co.uk") == "big corp"

class TestTranscript:
    """Test the append-only transcript."""

    def test_stream_update_last_assistant(self):
        transcript = Transcript()
        transcript.append(Message(content="Hel"))
        transcript.stream_update("Hello")

        assert transcript.last.content == "Hello"

    def test_stream_update_rejects_user_message(self):
        transcript = Transcript([Message(content="hi", role="user")])

        with pytest.raises(ValueError):
            transcript.stream_update("changed")

    def test_round_trip(self):
        transcript = Transcript([Message(content="hi", role="user"), Message(content="hello", suggestions=["a"])])
        restored = Transcript.from_list(transcript.to_list())

        assert [m.content for m in restored] == ["hi", "hello"]
        assert restored.last.timestamp == transcript.last.timestamp

if __name__ == "__main__":
    pytest.main([__file__, "-v"])
