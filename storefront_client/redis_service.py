import json
import logging
from typing import Any, Dict, Optional

import redis


logger = logging.getLogger(__name__)


class RedisKeyValueStore:
    """Thin key/value wrapper over redis.Redis used by the session store.

    When Redis is unreachable the wrapper logs once and behaves as an empty
    store, so the client runs anonymous instead of failing.
    """

    def __init__(self, host: str = 'localhost', port: int = 6379, db: int = 0,
                 client: Optional[redis.Redis] = None):
        if client is not None:
            self.client = client
            return
        try:
            self.client = redis.Redis(host=host, port=port, db=db, decode_responses=True)
            self.client.ping()
            logger.info(f"Connected to Redis for session persistence at {host}:{port}/{db}")
        except redis.exceptions.ConnectionError as e:
            logger.error(f"Could not connect to Redis: {e}. Sessions will not be persisted.")
            self.client = None

    def get(self, key: str) -> Optional[str]:
        if not self.client:
            return None
        value = self.client.get(key)
        if isinstance(value, bytes):
            value = value.decode('utf-8')
        return value

    def set(self, key: str, value: str, ex: Optional[int] = None) -> None:
        if not self.client:
            return
        self.client.set(key, value, ex=ex)

    def get_json(self, key: str) -> Optional[Dict[str, Any]]:
        raw = self.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def set_json(self, key: str, value: Dict[str, Any], ex: Optional[int] = None) -> None:
        self.set(key, json.dumps(value), ex=ex)

    def delete(self, *keys: str) -> None:
        if not self.client or not keys:
            return
        self.client.delete(*keys)

    def exists(self, key: str) -> bool:
        if not self.client:
            return False
        return self.client.exists(key) > 0
