import json
import os
import time
import uuid
from typing import Any, Dict, Optional

import redis
from loguru import logger

SESSION_ID_KEY = "intelligence-session-id"

class SessionStore:
    """Redis-backed session storage with an in-memory fallback."""

    def __init__(self, redis_url: Optional[str] = None, ttl: Optional[int] = None):
        """Initialize Redis connection."""
        self.ttl = ttl if ttl is not None else int(os.getenv("SESSION_TTL_SECONDS", "86400"))
        self._memory: Dict[str, Any] = {}
        try:
            url = redis_url or os.getenv("REDIS_URL", "redis://localhost:6379")
            self.r = redis.from_url(url)
            # Test connection
            self.r.ping()
            logger.info("Redis connection established successfully")
        except Exception as e:
            logger.error(f"Redis connection failed: {e}")
            # Fallback to in-memory storage (not recommended for production)
            self.r = None

    def _key(self, key: str) -> str:
        return f"chat:{key}"

    def set(self, key: str, value: Any) -> bool:
        """Store a JSON-serializable value under a namespaced key."""
        if not key:
            logger.warning("Empty key provided to session store")
            return False

        try:
            if self.r:
                self.r.set(name=self._key(key), value=json.dumps(value), ex=self.ttl)
            else:
                self._memory[key] = json.loads(json.dumps(value))
            return True
        except Exception as e:
            logger.error(f"Session store write failed for {key}: {e}")
            return False

    def get(self, key: str, default: Any = None) -> Any:
        try:
            if self.r:
                raw = self.r.get(self._key(key))
                return json.loads(raw) if raw else default
            return self._memory.get(key, default)
        except Exception as e:
            logger.error(f"Session store read failed for {key}: {e}")
            return default

    def delete(self, key: str) -> bool:
        try:
            if self.r:
                return bool(self.r.delete(self._key(key)))
            return self._memory.pop(key, None) is not None
        except Exception as e:
            logger.error(f"Failed to delete key {key}: {e}")
            return False

    def new_session_id(self) -> str:
        """Create a session id and remember it as the current one."""
        session_id = f"session-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"
        self.set(SESSION_ID_KEY, session_id)
        return session_id

    def current_session_id(self) -> Optional[str]:
        return self.get(SESSION_ID_KEY)

    def save_session(self, session_id: str, snapshot: Dict[str, Any]) -> bool:
        return self.set(f"session:{session_id}", snapshot)

    def load_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        return self.get(f"session:{session_id}")
