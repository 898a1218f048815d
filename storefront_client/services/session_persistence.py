"""Durable storage for the bearer token and cached user profile

Two entries: `token` holds the opaque bearer string and `user` holds the
serialized profile. Only the Session Manager reads or writes them.
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from ..config import SessionConfig
from ..models.session import Session, UserProfile
from ..redis_service import RedisKeyValueStore
from ..utils.logger import get_logger

logger = get_logger(__name__)

TOKEN_KEY = "token"
USER_KEY = "user"


class SessionStore(ABC):
    """save / load / clear contract for the persisted session"""

    @abstractmethod
    def _read(self) -> Dict[str, Any]:
        """Return the raw `{token, user}` entries present in the store"""

    @abstractmethod
    def _write(self, token: str, user: Dict[str, Any]) -> None:
        """Persist both entries"""

    @abstractmethod
    def clear(self) -> None:
        """Remove both entries"""

    def save(self, session: Session) -> None:
        """Persist token and profile (overwrites any previous session)"""
        self._write(session.token, session.user.to_dict())
        logger.debug(f"[SessionStore] Saved session for user {session.user.id}")

    def load(self) -> Optional[Session]:
        """
        Load the persisted session

        Returns:
            Session when both token and a parseable profile are stored,
            otherwise None
        """
        data = self._read()
        token = data.get(TOKEN_KEY)
        user = data.get(USER_KEY)
        if not token or not user:
            return None
        try:
            return Session(token=token, user=UserProfile.from_dict(user))
        except ValueError as e:
            logger.warning(f"[SessionStore] Ignoring unreadable cached profile: {e}")
            return None

    def load_token(self) -> Optional[str]:
        """Return the stored token even when the profile half is missing"""
        return self._read().get(TOKEN_KEY) or None


class MemorySessionStore(SessionStore):
    """Process-lifetime store (tests, ephemeral clients)"""

    def __init__(self):
        self._data: Dict[str, Any] = {}

    def _read(self) -> Dict[str, Any]:
        return dict(self._data)

    def _write(self, token: str, user: Dict[str, Any]) -> None:
        # Round-trip through JSON so callers never share the dict
        self._data = {TOKEN_KEY: token, USER_KEY: json.loads(json.dumps(user))}

    def clear(self) -> None:
        self._data = {}


class FileSessionStore(SessionStore):
    """JSON document on disk, replaced atomically on every write"""

    FILENAME = "session.json"

    def __init__(self, store_path: str):
        self.store_path = os.path.expanduser(store_path)
        self.file_path = os.path.join(self.store_path, self.FILENAME)
        os.makedirs(self.store_path, exist_ok=True)
        logger.info(f"FileSessionStore initialized at: {self.file_path}")

    def _read(self) -> Dict[str, Any]:
        if not os.path.exists(self.file_path):
            return {}
        try:
            with open(self.file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"[SessionStore] Failed to read {self.file_path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, token: str, user: Dict[str, Any]) -> None:
        fd, tmp_path = tempfile.mkstemp(dir=self.store_path, prefix=".session-", suffix=".json")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump({TOKEN_KEY: token, USER_KEY: user}, f)
            os.replace(tmp_path, self.file_path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def clear(self) -> None:
        if os.path.exists(self.file_path):
            os.unlink(self.file_path)


class RedisSessionStore(SessionStore):
    """Redis-backed store: `<prefix>:token` and `<prefix>:user` keys"""

    def __init__(self, kv: RedisKeyValueStore, key_prefix: str = "storefront"):
        self.kv = kv
        self.token_key = f"{key_prefix}:{TOKEN_KEY}"
        self.user_key = f"{key_prefix}:{USER_KEY}"

    def _read(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        token = self.kv.get(self.token_key)
        if token:
            data[TOKEN_KEY] = token
        try:
            user = self.kv.get_json(self.user_key)
        except json.JSONDecodeError as e:
            logger.warning(f"[SessionStore] Corrupt user entry in Redis: {e}")
            user = None
        if user:
            data[USER_KEY] = user
        return data

    def _write(self, token: str, user: Dict[str, Any]) -> None:
        self.kv.set(self.token_key, token)
        self.kv.set_json(self.user_key, user)

    def clear(self) -> None:
        self.kv.delete(self.token_key, self.user_key)


def create_session_store(session_config: SessionConfig) -> SessionStore:
    """Build the store selected by SessionConfig.store_type"""
    store_type = session_config.store_type
    if store_type == "memory":
        return MemorySessionStore()
    if store_type == "file":
        return FileSessionStore(session_config.store_path)
    if store_type == "redis":
        kv = RedisKeyValueStore(
            host=session_config.redis_host,
            port=session_config.redis_port,
            db=session_config.redis_db
        )
        return RedisSessionStore(kv, session_config.redis_key_prefix)
    raise ValueError(f"Unknown session store type: {store_type}")
