import logging
from datetime import datetime, timedelta
from typing import Optional

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from . import codec
from .models import AccessToken
from .randomness import RandomSource

logger = logging.getLogger(__name__)

ACCESS_TOKEN_EXPIRES_IN = 3600 # seconds


class TokenIssuer:
    """
    Mints bearer tokens for both issuance paths.

    Without a signing key the secret segment is a fresh random value. With one,
    it is replaced by a signature over the token's canonical fields.
    """

    def __init__(
        self,
        random_source: RandomSource,
        signature_key: Optional[Ed25519PrivateKey] = None,
        expires_in: int = ACCESS_TOKEN_EXPIRES_IN,
    ):
        self.random_source = random_source
        self.signature_key = signature_key
        self.expires_in = expires_in

    def issue(
        self,
        user_id: str,
        client_id: str,
        scope: str,
        now: datetime,
        token_id: Optional[str] = None,
    ) -> AccessToken:
        if token_id is None:
            token_id, secret = codec.generate_pair(self.random_source)
        else:
            # Exchanged from a code: keep the code identifier, draw only a new secret
            secret = codec.encode_segment(self.random_source.get())

        if self.signature_key is not None:
            expires_at = now + timedelta(seconds=self.expires_in)
            payload = codec.canonical_payload(
                token_id=token_id,
                client_id=client_id,
                scope=scope,
                expires_at=int(expires_at.timestamp()),
                user_id=user_id,
            )
            secret = codec.sign_segment(payload, self.signature_key)

        logger.info("Issued access token %s for client %s", token_id, client_id)
        return AccessToken(token_id=token_id, secret=secret, expires_in=self.expires_in, scope=scope)
