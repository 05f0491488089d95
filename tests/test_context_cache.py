import asyncio
import pytest
import os
import sys

import httpx

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tools.context_cache import IntelligenceContextCache, content_hash
from tools.intelligence import build_intelligence_context, generate_personalized_greeting, DEFAULT_GREETING

class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

class TestIntelligenceContextCache:
    """Test TTL caching and request de-duplication."""

    def setup_method(self):
        """Set up test fixtures."""
        self.requests = []
        self.payload = {"output": {"lead": {"email": "sarah@acme.com", "name": "Sarah"}, "capabilities": []}}
        self.status = 200
        self.clock = FakeClock()

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, json=self.payload)

    def make_cache(self, handler=None, ttl_ms=30_000):
        return IntelligenceContextCache(
            base_url="http://testserver",
            ttl_ms=ttl_ms,
            transport=httpx.MockTransport(handler or self.handler),
            clock=self.clock,
        )

    def test_fetch_unwraps_output(self):
        """Test the context is read from the output envelope."""
        cache = self.make_cache()
        context = asyncio.run(cache.fetch_context("s1"))

        assert context["lead"]["name"] == "Sarah"
        assert self.requests[0].url.params["sessionId"] == "s1"
        assert cache.entry("s1").error is None

    def test_fetch_accepts_raw_context(self):
        """Test a bare context payload is accepted too."""
        self.payload = {"lead": {"email": "", "name": "Raw"}, "capabilities": ["voice"]}
        cache = self.make_cache()
        context = asyncio.run(cache.fetch_context("s1"))

        assert context["lead"]["name"] == "Raw"

    def test_empty_session_is_noop(self):
        cache = self.make_cache()
        assert asyncio.run(cache.fetch_context("")) is None
        assert self.requests == []

    def test_ttl_gate(self):
        """Test one request per session within the TTL window."""
        cache = self.make_cache()

        async def scenario():
            await cache.fetch_context("s1")
            self.clock.now += 10
            await cache.fetch_context("s1")
            self.clock.now += 25
            await cache.fetch_context("s1")

        asyncio.run(scenario())
        assert len(self.requests) == 2

    def test_ttl_override_and_force(self):
        """Test per-call TTL override and force bypass the gate."""
        cache = self.make_cache()

        async def scenario():
            await cache.fetch_context("s1")
            self.clock.now += 5
            await cache.fetch_context("s1", ttl_ms=1000)
            await cache.fetch_context("s1", force=True)

        asyncio.run(scenario())
        assert len(self.requests) == 3

    def test_concurrent_fetches_share_request(self):
        """Test concurrent callers reuse the in-flight request."""
        async def slow_handler(request):
            self.requests.append(request)
            await asyncio.sleep(0.01)
            return httpx.Response(200, json=self.payload)

        cache = self.make_cache(handler=slow_handler)

        async def scenario():
            return await asyncio.gather(*(cache.fetch_context("s1") for _ in range(5)))

        results = asyncio.run(scenario())
        assert len(self.requests) == 1
        assert all(r is results[0] for r in results)

    def test_sessions_are_independent(self):
        cache = self.make_cache()

        async def scenario():
            await cache.fetch_context("s1")
            await cache.fetch_context("s2")

        asyncio.run(scenario())
        assert len(self.requests) == 2

    def test_identical_payload_keeps_reference(self):
        """Test an unchanged payload does not replace the context object."""
        cache = self.make_cache()

        async def scenario():
            first = await cache.fetch_context("s1")
            second = await cache.fetch_context("s1", force=True)
            return first, second

        first, second = asyncio.run(scenario())
        assert len(self.requests) == 2
        assert first is second

    def test_changed_payload_replaces_context(self):
        cache = self.make_cache()

        async def scenario():
            first = await cache.fetch_context("s1")
            self.payload = {"output": {"lead": {"email": "", "name": "Other"}, "capabilities": []}}
            second = await cache.fetch_context("s1", force=True)
            return first, second

        first, second = asyncio.run(scenario())
        assert first is not second
        assert second["lead"]["name"] == "Other"

    def test_failure_sets_error(self):
        """Test a failed fetch sets the error flag and is not cached."""
        self.status = 500
        cache = self.make_cache()

        async def scenario():
            result = await cache.fetch_context("s1")
            await cache.fetch_context("s1")
            return result

        result = asyncio.run(scenario())
        entry = cache.entry("s1")
        assert result is None
        assert entry.error == "Failed to fetch context"
        assert entry.is_loading is False
        # No TTL entry recorded, so the second call went out again
        assert len(self.requests) == 2

    def test_clear_allows_immediate_refetch(self):
        cache = self.make_cache()

        async def scenario():
            await cache.fetch_context("s1")
            cache.clear("s1")
            await cache.fetch_context("s1")
            cache.clear()  # last fetched session
            await cache.fetch_context("s1")

        asyncio.run(scenario())
        assert len(self.requests) == 3

    def test_capability_used_invalidates(self):
        cache = self.make_cache()

        async def scenario():
            await cache.fetch_context("s1")
            cache.on_capability_used("s1")
            await cache.fetch_context("s1")

        asyncio.run(scenario())
        assert len(self.requests) == 2

    def test_content_hash_ignores_key_order(self):
        assert content_hash({"a": 1, "b": 2}) == content_hash({"b": 2, "a": 1})
        assert content_hash({"a": 1}) != content_hash({"a": 2})

class TestIntelligenceContext:
    """Test the server-side context builder and greeting."""

    def test_build_context_from_state(self):
        state = {
            "name": "Sarah",
            "email": "sarah@acme.com",
            "company_info": {
                "name": "acme",
                "domain": "acme.com",
                "industry": "finance",
                "insights": ["acme appears to be in the finance sector"],
                "source": "heuristic",
            },
        }
        ctx = build_intelligence_context(state, ["voice", "webcam", "voice"])

        assert ctx["lead"] == {"email": "sarah@acme.com", "name": "Sarah"}
        assert ctx["company"]["website"] == "https://acme.com"
        assert ctx["person"]["fullName"] == "Sarah"
        assert ctx["capabilities"] == ["voice", "webcam"]

    def test_generic_company_is_omitted(self):
        state = {"email": "jane@gmail.com", "company_info": {"name": "your company", "source": "generic"}}
        ctx = build_intelligence_context(state)

        assert "company" not in ctx
        assert "person" not in ctx

    def test_greetings(self):
        company = {"name": "Acme", "industry": "Finance"}
        person = {"fullName": "Sarah"}

        assert generate_personalized_greeting(None) == DEFAULT_GREETING
        assert "As CTO" in generate_personalized_greeting(
            {"company": company, "person": person, "role": "CTO", "roleConfidence": 0.9})
        assert generate_personalized_greeting({"company": company, "person": person}).startswith("Hi Sarah at Acme!")
        assert "your finance" in generate_personalized_greeting({"company": company, "person": person})
        assert generate_personalized_greeting({"person": person}).startswith("Hi Sarah!")
        assert generate_personalized_greeting({"capabilities": []}) == DEFAULT_GREETING

if __name__ == "__main__":
    pytest.main([__file__, "-v"])
