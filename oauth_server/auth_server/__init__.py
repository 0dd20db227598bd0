from .exceptions import OAuthException, StorageError
from .models import AuthorizationRequest, AuthorizationCode, AccessToken, TokenResponse
from .randomness import RandomSource, SecureRandom
from .server import OAuthServer, utc_now
from .storage import CodeStorage, MemoryCodeStorage, RedisCodeStorage, create_storage

__all__ = [
    "OAuthException",
    "StorageError",
    "AuthorizationRequest",
    "AuthorizationCode",
    "AccessToken",
    "TokenResponse",
    "RandomSource",
    "SecureRandom",
    "OAuthServer",
    "utc_now",
    "CodeStorage",
    "MemoryCodeStorage",
    "RedisCodeStorage",
    "create_storage",
]
