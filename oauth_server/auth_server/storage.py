import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional, Dict

import redis
from pydantic import ValidationError

from .exceptions import StorageError
from .models import AuthorizationCode

logger = logging.getLogger(__name__)


class CodeStorage(ABC):
    """Persists authorization codes. The only shared mutable state of the server."""

    @abstractmethod
    def init(self) -> None:
        """Creates or verifies the backing store. Safe to call repeatedly."""

    @abstractmethod
    def store_code(
        self,
        user_id: str,
        code_id: str,
        code_secret_hash: str,
        client_id: str,
        scope: str,
        redirect_uri: str,
        expires_at: datetime,
        code_challenge: Optional[str] = None,
        issued_at: Optional[datetime] = None,
    ) -> AuthorizationCode:
        """
        Creates a new authorization code record.

        Raises:
            StorageError: If a record with ``code_id`` already exists.
        """

    @abstractmethod
    def get_code(self, code_id: str) -> Optional[AuthorizationCode]:
        """Pure lookup. Expiry is left to the caller."""

    @abstractmethod
    def consume_code(self, code_id: str) -> bool:
        """
        Atomically removes a code record.

        Returns:
            bool: True for exactly one caller per stored code, False otherwise.
        """

    @abstractmethod
    def delete_expired(self, now: datetime) -> int:
        """Removes records whose expiry has passed. Returns how many were removed."""


class MemoryCodeStorage(CodeStorage):
    """Process-local storage for development and tests."""

    def __init__(self):
        self._codes: Dict[str, AuthorizationCode] = {}
        self._lock = threading.Lock()

    def init(self) -> None:
        pass

    def store_code(self, user_id, code_id, code_secret_hash, client_id, scope, redirect_uri,
                   expires_at, code_challenge=None, issued_at=None) -> AuthorizationCode:
        auth_code = AuthorizationCode(
            code_id=code_id,
            code_secret_hash=code_secret_hash,
            user_id=user_id,
            client_id=client_id,
            scope=scope,
            redirect_uri=redirect_uri,
            issued_at=issued_at,
            expires_at=expires_at,
            code_challenge=code_challenge,
        )
        with self._lock:
            if code_id in self._codes:
                raise StorageError(f"authorization code {code_id} already exists")
            self._codes[code_id] = auth_code
        return auth_code

    def get_code(self, code_id: str) -> Optional[AuthorizationCode]:
        with self._lock:
            return self._codes.get(code_id)

    def consume_code(self, code_id: str) -> bool:
        with self._lock:
            return self._codes.pop(code_id, None) is not None

    def delete_expired(self, now: datetime) -> int:
        with self._lock:
            expired = [code_id for code_id, code in self._codes.items() if code.is_expired(now)]
            for code_id in expired:
                del self._codes[code_id]
        return len(expired)


class RedisCodeStorage(CodeStorage):
    """
    Redis backed storage.

    Codes live under ``auth_code:<code_id>`` with a TTL matching their expiry,
    so Redis itself garbage-collects them.
    """

    def __init__(self, redis_client: redis.Redis, key_prefix: str = "auth_code:"):
        self.redis_client = redis_client
        self.key_prefix = key_prefix

    @classmethod
    def from_settings(cls, settings) -> "RedisCodeStorage":
        client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            db=settings.redis_db,
            decode_responses=True,
        )
        return cls(client)

    def _get_auth_code_key(self, code_id: str) -> str:
        """Generates a Redis key for storing an authorization code."""
        return f"{self.key_prefix}{code_id}"

    def init(self) -> None:
        try:
            self.redis_client.ping()
        except redis.exceptions.RedisError as e:
            logger.error("Could not connect to Redis for code storage: %s", e)
            raise StorageError(f"Redis unavailable: {e}") from e
        logger.info("Connected to Redis for code storage.")

    def store_code(self, user_id, code_id, code_secret_hash, client_id, scope, redirect_uri,
                   expires_at, code_challenge=None, issued_at=None) -> AuthorizationCode:
        auth_code = AuthorizationCode(
            code_id=code_id,
            code_secret_hash=code_secret_hash,
            user_id=user_id,
            client_id=client_id,
            scope=scope,
            redirect_uri=redirect_uri,
            issued_at=issued_at,
            expires_at=expires_at,
            code_challenge=code_challenge,
        )
        start = issued_at or datetime.now(timezone.utc)
        ttl = max(int((expires_at - start).total_seconds()), 1)
        try:
            # NX: never overwrite an existing code
            created = self.redis_client.set(
                self._get_auth_code_key(code_id), auth_code.model_dump_json(), ex=ttl, nx=True
            )
        except redis.exceptions.RedisError as e:
            logger.error("Redis error storing authorization code: %s", e)
            raise StorageError(f"could not store authorization code: {e}") from e
        if not created:
            raise StorageError(f"authorization code {code_id} already exists")
        return auth_code

    def get_code(self, code_id: str) -> Optional[AuthorizationCode]:
        try:
            code_data = self.redis_client.get(self._get_auth_code_key(code_id))
        except redis.exceptions.RedisError as e:
            logger.error("Redis error reading authorization code: %s", e)
            raise StorageError(f"could not read authorization code: {e}") from e
        if not code_data:
            return None
        try:
            return AuthorizationCode.model_validate_json(code_data)
        except ValidationError as e:
            raise StorageError(f"corrupt authorization code record {code_id}: {e}") from e

    def consume_code(self, code_id: str) -> bool:
        try:
            # DEL is atomic; only one concurrent caller sees a deleted count of 1
            return self.redis_client.delete(self._get_auth_code_key(code_id)) == 1
        except redis.exceptions.RedisError as e:
            logger.error("Redis error consuming authorization code: %s", e)
            raise StorageError(f"could not consume authorization code: {e}") from e

    def delete_expired(self, now: datetime) -> int:
        return 0 # Handled by key TTLs


def create_storage(settings) -> CodeStorage:
    if settings.storage_backend == "memory":
        return MemoryCodeStorage()
    if settings.storage_backend == "redis":
        return RedisCodeStorage.from_settings(settings)
    raise ValueError(f"Unknown storage backend: {settings.storage_backend}")
