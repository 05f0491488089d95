import asyncio
import hashlib
import json
import os
import time
from dataclasses import dataclass
from typing import Dict, Any, Optional, Callable

import httpx
from loguru import logger

TTL_MS_DEFAULT = 30_000

@dataclass
class ContextEntry:
    context: Optional[Dict[str, Any]] = None
    content_hash: Optional[str] = None
    is_loading: bool = False
    error: Optional[str] = None

def content_hash(data: Any) -> str:
    try:
        payload = json.dumps(data, sort_keys=True, separators=(",", ":"))
    except (TypeError, ValueError):
        return ""
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()

class IntelligenceContextCache:
    """
    Per-session intelligence context with a TTL gate and in-flight de-duplication.

    Each instance owns its own bookkeeping, so separate caches never share
    entries.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        ttl_ms: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base_url = base_url or os.getenv("INTELLIGENCE_API_URL", "http://localhost:8000")
        self.ttl_ms = ttl_ms if ttl_ms is not None else int(os.getenv("CONTEXT_TTL_MS", TTL_MS_DEFAULT))
        self.transport = transport
        self._clock = clock
        self._entries: Dict[str, ContextEntry] = {}
        self._inflight: Dict[str, asyncio.Task] = {}
        self._last_fetch_at: Dict[str, float] = {}
        self.last_session_id: Optional[str] = None

    def entry(self, session_id: str) -> ContextEntry:
        return self._entries.setdefault(session_id, ContextEntry())

    def get_context(self, session_id: str) -> Optional[Dict[str, Any]]:
        return self.entry(session_id).context

    def is_fresh(self, session_id: str, ttl_ms: Optional[int] = None) -> bool:
        last_at = self._last_fetch_at.get(session_id)
        if last_at is None:
            return False
        ttl = self.ttl_ms if ttl_ms is None else ttl_ms
        return (self._clock() - last_at) * 1000 < ttl

    async def fetch_context(self, session_id: str, force: bool = False, ttl_ms: Optional[int] = None) -> Optional[Dict[str, Any]]:
        """
        Load the context for a session once per TTL window.

        Args:
            session_id: Session to load
            force: Ignore the TTL gate
            ttl_ms: Override the cache TTL for this call

        Returns:
            The current context for the session (None if never loaded)
        """
        if not session_id:
            return None

        if not force and self.is_fresh(session_id, ttl_ms):
            return self.entry(session_id).context

        inflight = self._inflight.get(session_id)
        if inflight is not None:
            return await asyncio.shield(inflight)

        task = asyncio.ensure_future(self._load(session_id))
        self._inflight[session_id] = task
        return await asyncio.shield(task)

    async def _load(self, session_id: str) -> Optional[Dict[str, Any]]:
        entry = self.entry(session_id)
        entry.is_loading = True
        entry.error = None

        try:
            async with httpx.AsyncClient(base_url=self.base_url, timeout=20, transport=self.transport) as client:
                response = await client.get(
                    "/api/intelligence/context",
                    params={"sessionId": session_id},
                    headers={"Cache-Control": "no-store"},
                )
                response.raise_for_status()
                raw = response.json()

            data = (raw.get("output") or raw) if isinstance(raw, dict) else raw

            # Keep the same object when nothing changed
            h = content_hash(data)
            if entry.content_hash != h:
                entry.context = data
                entry.content_hash = h
            else:
                logger.debug(f"Context unchanged for {session_id}")

            self._last_fetch_at[session_id] = self._clock()
            self.last_session_id = session_id
            logger.info(f"Context fetched for session {session_id}")

        except Exception as e:
            entry.error = "Failed to fetch context"
            logger.error(f"Context fetch failed for {session_id}: {e}")

        finally:
            entry.is_loading = False
            if self._inflight.get(session_id) is asyncio.current_task():
                del self._inflight[session_id]

        return entry.context

    def clear(self, session_id: Optional[str] = None) -> None:
        """Expire the TTL entry so the next fetch goes to the server."""
        target = session_id or self.last_session_id
        if not target:
            return
        self._last_fetch_at.pop(target, None)
        self._inflight.pop(target, None)
        logger.info(f"Context cache cleared for {target}")

    def on_capability_used(self, session_id: Optional[str] = None) -> None:
        self.clear(session_id)
