import pytest
from datetime import datetime, timedelta, timezone

from oauth_server.auth_server import codec
from oauth_server.auth_server.server import OAuthServer
from oauth_server.auth_server.storage import MemoryCodeStorage
from oauth_server.registry import ClientRegistry

NOW = datetime(2016, 1, 1, tzinfo=timezone.utc)
# RFC 7636 Appendix B example pair
CODE_VERIFIER = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
CODE_CHALLENGE = "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

OAUTH_CLIENTS = {
    "token-client": {
        "redirect_uri": "http://example.org/token-cb",
        "response_type": "token",
        "display_name": "Token Client",
    },
    "code-client": {
        "redirect_uri": "http://example.org/code-cb",
        "response_type": "code",
        "display_name": "Code Client",
    },
    "code-client-query-redirect": {
        "redirect_uri": "http://example.org/code-cb?keep=this",
        "response_type": "code",
        "display_name": "Code Client",
    },
    "code-client-secret": {
        "redirect_uri": "http://example.org/code-cb",
        "response_type": "code",
        "display_name": "Code Client",
        "client_secret": "123456",
    },
}


class FixedRandom:
    """Deterministic randomness: b"random_1", b"random_2", ..."""

    def __init__(self):
        self.calls = 0

    def get(self) -> bytes:
        self.calls += 1
        return f"random_{self.calls}".encode()


class Clock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int):
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def random_source():
    return FixedRandom()

@pytest.fixture
def clock():
    return Clock()

@pytest.fixture
def client_registry():
    return ClientRegistry(OAUTH_CLIENTS)

@pytest.fixture
def code_storage():
    storage = MemoryCodeStorage()
    storage.init()
    expires_at = NOW + timedelta(minutes=5)
    for code_id, client_id, redirect_uri in (
        ("XYZ", "code-client", "http://example.org/code-cb"),
        ("ABC", "code-client-query-redirect", "http://example.org/code-cb?keep=this"),
        ("DEF", "code-client-secret", "http://example.org/code-cb"),
    ):
        storage.store_code(
            user_id="foo",
            code_id=code_id,
            code_secret_hash=codec.hash_secret("abcdefgh"),
            client_id=client_id,
            scope="config",
            redirect_uri=redirect_uri,
            expires_at=expires_at,
            code_challenge=CODE_CHALLENGE,
            issued_at=NOW,
        )
    return storage

@pytest.fixture
def server(code_storage, random_source, clock, client_registry):
    return OAuthServer(code_storage, random_source, clock, client_registry)
