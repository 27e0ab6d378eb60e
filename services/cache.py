import logging
import time

import redis
from pydantic import TypeAdapter, ValidationError
from models.experiments import ExperimentConfig, VisitorAssignment
from config import config

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
CATALOG_CACHE_TTL = 60       # 1 minute for the active experiment snapshot
ASSIGNMENT_CACHE_TTL = 3600  # 1 hour for visitor assignments

# Every key lives under this namespace so the cache can share a Valkey db
KEY_PREFIX = "lx:"
CATALOG_KEY = "catalog:active"

_catalog_adapter = TypeAdapter(list[ExperimentConfig])

# --- Valkey/Redis Backend Implementations ---

class _MockValkeyBackend:
    """In-process stand-in for Valkey, with the same expiry semantics."""
    def __init__(self):
        self._entries: dict[str, tuple[str, float]] = {}

    def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= time.monotonic():
            self._entries.pop(key, None)
            logger.debug("cache mock expired: %s", key)
            return None
        return value

    def set(self, key: str, value: str, ex: int):
        self._entries[key] = (value, time.monotonic() + ex)

    def delete(self, key: str):
        self._entries.pop(key, None)


class RealValkeyBackend:
    """redis-py client pointed at Valkey. Backend errors count as cache misses."""
    def __init__(self, host: str, port: int, db: int = 0, password: str | None = None):
        self.client = redis.Redis(
            host=host,
            port=port,
            db=db,
            password=password,
            decode_responses=True,
            socket_timeout=2.0,
        )
        # fail fast at startup so the module can fall back to the mock backend
        self.client.ping()

    def get(self, key: str) -> str | None:
        try:
            return self.client.get(key)
        except redis.RedisError as e:
            logger.error("Valkey GET %s failed, treating as miss: %s", key, e)
            return None

    def set(self, key: str, value: str, ex: int):
        try:
            self.client.set(key, value, ex=ex)
        except redis.RedisError as e:
            logger.error("Valkey SET %s failed: %s", key, e)

    def delete(self, key: str):
        try:
            self.client.delete(key)
        except redis.RedisError as e:
            logger.error("Valkey DEL %s failed: %s", key, e)


# --- Dedicated Cache Client Class ---

class CacheClient:
    """Typed cache operations for the evaluation path. Keys are namespaced with KEY_PREFIX."""

    def __init__(self, backend, prefix: str = KEY_PREFIX):
        self.backend = backend
        self.prefix = prefix
        self._catalog_key = prefix + CATALOG_KEY

    # --- Active catalog snapshot ---

    def get_active_experiments(self) -> list[ExperimentConfig] | None:
        json_str = self.backend.get(self._catalog_key)
        if not json_str:
            return None
        try:
            return _catalog_adapter.validate_json(json_str)
        except ValidationError as e:
            logger.warning("Discarding unreadable catalog snapshot: %s", e)
            self.backend.delete(self._catalog_key)
            return None

    def set_active_experiments(self, experiments: list[ExperimentConfig]):
        json_str = _catalog_adapter.dump_json(experiments).decode()
        self.backend.set(self._catalog_key, json_str, ex=CATALOG_CACHE_TTL)
        logger.debug("Active catalog cached with %d experiments.", len(experiments))

    def invalidate_catalog(self):
        self.backend.delete(self._catalog_key)

    # --- Assignment Caching ---

    def _assignment_key(self, experiment_id: int, visitor_id: str) -> str:
        return f"{self.prefix}asn:{experiment_id}:{visitor_id}"

    def get_assignment(self, experiment_id: int, visitor_id: str) -> VisitorAssignment | None:
        json_str = self.backend.get(self._assignment_key(experiment_id, visitor_id))
        if not json_str:
            return None
        try:
            return VisitorAssignment.model_validate_json(json_str)
        except ValidationError as e:
            logger.warning("Discarding unreadable assignment for visitor %s: %s", visitor_id, e)
            return None

    def set_assignment(self, visitor_id: str, assignment: VisitorAssignment):
        key = self._assignment_key(assignment.experiment_id, visitor_id)
        self.backend.set(key, assignment.model_dump_json(), ex=ASSIGNMENT_CACHE_TTL)
        logger.debug("Assignment for visitor %s (EID %d) cached.", visitor_id, assignment.experiment_id)


# --- Backend selection ---

def _select_backend(host: str, port: int):
    if not host:
        logger.info("VALKEY_HOST not set, caching in process memory.")
        return _MockValkeyBackend()
    try:
        backend = RealValkeyBackend(host=host, port=port)
    except redis.RedisError as e:
        logger.warning("Valkey at %s:%d unreachable (%s), caching in process memory.", host, port, e)
        return _MockValkeyBackend()
    logger.info("Caching in Valkey at %s:%d.", host, port)
    return backend


VALKEY_BACKEND = _select_backend(config.valkey_host, config.valkey_port)
_DEFAULT_CACHE_CLIENT = CacheClient(backend=VALKEY_BACKEND)

def get_cache_client():
    return _DEFAULT_CACHE_CLIENT

def get_mock_cache_client():
    return CacheClient(backend=_MockValkeyBackend())
