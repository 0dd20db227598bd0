import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Mapping, Any, Optional, Union

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from oauth_server.registry import ClientLookup
from . import codec
from .authorize import AuthorizationEngine, CODE_EXPIRES_IN
from .exceptions import OAuthException
from .exchange import TokenExchangeEngine
from .models import TokenResponse
from .randomness import RandomSource
from .storage import CodeStorage
from .tokens import TokenIssuer, ACCESS_TOKEN_EXPIRES_IN

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class OAuthServer:
    """
    Entry point used by the HTTP layer.

    Wires the injected collaborators (storage, randomness, clock, client
    lookup) into the authorization and token exchange engines.
    """

    def __init__(
        self,
        storage: CodeStorage,
        random_source: RandomSource,
        clock: Callable[[], datetime],
        client_lookup: ClientLookup,
        access_token_expires_in: int = ACCESS_TOKEN_EXPIRES_IN,
        code_expires_in: int = CODE_EXPIRES_IN,
    ):
        self.storage = storage
        self.token_issuer = TokenIssuer(random_source, expires_in=access_token_expires_in)
        self.authorization = AuthorizationEngine(
            client_lookup=client_lookup,
            storage=storage,
            random_source=random_source,
            token_issuer=self.token_issuer,
            clock=clock,
            code_expires_in=code_expires_in,
        )
        self.token_exchange_engine = TokenExchangeEngine(
            client_lookup=client_lookup,
            storage=storage,
            token_issuer=self.token_issuer,
            clock=clock,
        )

    def set_signature_key_pair(self, key_pair: Union[Ed25519PrivateKey, bytes, str, None]):
        """Enables (or with None, disables) signed access tokens."""
        if key_pair is not None and not isinstance(key_pair, Ed25519PrivateKey):
            key_pair = codec.load_signature_key_pair(key_pair)
        self.token_issuer.signature_key = key_pair

    @property
    def public_key(self) -> Optional[Ed25519PublicKey]:
        if self.token_issuer.signature_key is None:
            return None
        return self.token_issuer.signature_key.public_key()

    def authorize_validate(self, params: Mapping[str, Any]) -> Dict[str, str]:
        try:
            return self.authorization.validate(params)
        except OAuthException as e:
            logger.warning("Authorize request rejected: %s (%s)", e.error, e.error_description)
            raise

    def authorize_decide(self, params: Mapping[str, Any], approval: Mapping[str, Any], user_id: str) -> str:
        try:
            return self.authorization.decide(params, approval, user_id)
        except OAuthException as e:
            logger.warning("Authorize decision rejected: %s (%s)", e.error, e.error_description)
            raise

    def token_exchange(
        self,
        form_params: Mapping[str, Any],
        client_id_auth: Optional[str] = None,
        client_secret_auth: Optional[str] = None,
    ) -> TokenResponse:
        try:
            return self.token_exchange_engine.exchange(form_params, client_id_auth, client_secret_auth)
        except OAuthException as e:
            logger.warning("Token request rejected: %s (%s)", e.error, e.error_description)
            raise
