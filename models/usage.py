import os
import json
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import redis

logger = logging.getLogger(__name__)

DEFAULT_USAGE_KEY = "github-models-usage"

# Persisted blob: model name -> serialized UsageRecord
UsageTable = Dict[str, Dict]
TableMutator = Callable[[UsageTable], UsageTable]

@dataclass
class UsageRecord:
    model_name: str
    request_count: int
    last_reset_date: str
    is_blocked: bool = False
    last_error: Optional[str] = None

    @classmethod
    def fresh(cls, model_name: str, today: str) -> "UsageRecord":
        return cls(model_name=model_name, request_count=0, last_reset_date=today)

    def roll_over(self, today: str) -> bool:
        """
        Reset daily counters when the stored date is not today

        Returns:
            True if the record was reset
        """
        if self.last_reset_date == today:
            return False

        self.request_count = 0
        self.is_blocked = False
        self.last_error = None
        self.last_reset_date = today
        return True

    def to_dict(self) -> Dict:
        data = {
            "modelName": self.model_name,
            "requestCount": self.request_count,
            "lastResetDate": self.last_reset_date,
            "isBlocked": self.is_blocked,
        }
        if self.last_error is not None:
            data["lastError"] = self.last_error
        return data

    @classmethod
    def from_dict(cls, model_name: str, data: Dict) -> "UsageRecord":
        return cls(
            model_name=data.get("modelName", model_name),
            request_count=int(data.get("requestCount", 0)),
            last_reset_date=str(data.get("lastResetDate", "")),
            is_blocked=bool(data.get("isBlocked", False)),
            last_error=data.get("lastError"),
        )

class UsageStore:
    """
    Key-value home for the usage table.

    load() is a read-only view for reporting. update() is the only write
    path and must read, mutate and rewrite the full table as one atomic
    step. Seed a store through its constructor.
    """

    def load(self) -> Optional[UsageTable]:
        raise NotImplementedError

    def update(self, mutator: TableMutator) -> UsageTable:
        raise NotImplementedError

class MemoryUsageStore(UsageStore):
    """Process-local store, serialized with a lock"""

    def __init__(self, initial: Optional[UsageTable] = None):
        self._lock = threading.Lock()
        self._blob = json.dumps(initial) if initial is not None else None

    def load(self) -> Optional[UsageTable]:
        with self._lock:
            return json.loads(self._blob) if self._blob is not None else None

    def update(self, mutator: TableMutator) -> UsageTable:
        with self._lock:
            table = json.loads(self._blob) if self._blob is not None else {}
            result = mutator(table)
            self._blob = json.dumps(result)
            return json.loads(self._blob)

class RedisUsageStore(UsageStore):
    """
    Usage table stored as one JSON string in Redis.

    update() runs under WATCH/MULTI/EXEC so concurrent workers cannot lose
    each other's increments. If Redis is unavailable the store keeps
    serving from its last known copy.
    """

    def __init__(self, redis_client, key: str = DEFAULT_USAGE_KEY):
        self.redis_client = redis_client
        self.key = key
        self._local: UsageTable = {}
        self._lock = threading.Lock()

    def load(self) -> Optional[UsageTable]:
        try:
            raw = self.redis_client.get(self.key)
        except redis.RedisError as e:
            logger.error(f"Error loading usage table from Redis: {str(e)}")
            return dict(self._local) if self._local else None

        if not raw:
            return None

        try:
            table = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse saved usage data: {str(e)}")
            return None

        self._local = table
        return table

    def update(self, mutator: TableMutator) -> UsageTable:
        def _transaction(pipe):
            raw = pipe.get(self.key)
            try:
                table = json.loads(raw) if raw else {}
            except json.JSONDecodeError:
                logger.warning("Stored usage data is corrupt, starting from an empty table")
                table = {}

            result = mutator(table)
            pipe.multi()
            pipe.set(self.key, json.dumps(result))
            return result

        try:
            result = self.redis_client.transaction(_transaction, self.key, value_from_callable=True)
        except redis.RedisError as e:
            logger.error(f"Redis usage update failed, using local copy: {str(e)}")
            with self._lock:
                result = mutator(json.loads(json.dumps(self._local)))

        self._local = result
        return result

def build_usage_store(redis_url: Optional[str] = None) -> UsageStore:
    """
    Pick the usage store from configuration

    Args:
        redis_url: Redis connection URL; falls back to USAGE_REDIS_URL / REDIS_URL

    Returns:
        RedisUsageStore when Redis is configured and reachable, otherwise MemoryUsageStore
    """
    redis_url = redis_url or os.getenv('USAGE_REDIS_URL') or os.getenv('REDIS_URL')
    key = os.getenv('USAGE_REDIS_KEY', DEFAULT_USAGE_KEY)

    if not redis_url:
        logger.info("No Redis configured, model usage is kept in memory")
        return MemoryUsageStore()

    try:
        redis_client = redis.from_url(redis_url, decode_responses=True)
        redis_client.ping()
        logger.info("Redis connection established for model usage")
        return RedisUsageStore(redis_client, key=key)
    except (redis.RedisError, ValueError) as e:
        logger.error(f"Redis connection failed, model usage is kept in memory: {str(e)}")
        return MemoryUsageStore()
