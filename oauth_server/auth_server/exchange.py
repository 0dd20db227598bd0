import hmac
import logging
from datetime import datetime
from typing import Callable, Mapping, Any, Optional

from oauth_server.registry import ClientLookup, ClientRegistration
from . import codec
from .exceptions import OAuthException, invalid_client, invalid_grant, missing_parameter
from .models import AuthorizationCode, TokenResponse
from .storage import CodeStorage
from .tokens import TokenIssuer

logger = logging.getLogger(__name__)


class TokenExchangeEngine:
    """Exchanges authorization codes for access tokens at the token endpoint."""

    def __init__(
        self,
        client_lookup: ClientLookup,
        storage: CodeStorage,
        token_issuer: TokenIssuer,
        clock: Callable[[], datetime],
    ):
        self.client_lookup = client_lookup
        self.storage = storage
        self.token_issuer = token_issuer
        self.clock = clock

    def exchange(
        self,
        form_params: Mapping[str, Any],
        client_id_auth: Optional[str] = None,
        client_secret_auth: Optional[str] = None,
    ) -> TokenResponse:
        """
        Validates a token request and mints the access token.

        The checks run in a fixed order; the first failure is raised as an
        OAuthException. On success the authorization code is consumed.

        Args:
            form_params (Mapping[str, Any]): The POSTed form parameters.
            client_id_auth (Optional[str]): Client id from HTTP Basic authentication.
            client_secret_auth (Optional[str]): Client secret from HTTP Basic authentication.

        Returns:
            TokenResponse: Status 200, the no-store headers and the token body.
        """
        grant_type = form_params.get("grant_type")
        if not grant_type:
            raise missing_parameter("grant_type")
        if grant_type != "authorization_code":
            raise OAuthException(400, "unsupported_grant_type", "grant_type must be \"authorization_code\"")
        for name in ("code", "redirect_uri"):
            if not form_params.get(name):
                raise missing_parameter(name)

        try:
            code_id, code_secret = codec.parse(form_params["code"])
        except codec.MalformedError:
            raise invalid_grant("invalid code format")

        now = self.clock()
        auth_code = self.storage.get_code(code_id)
        if auth_code is None or auth_code.is_expired(now):
            raise invalid_grant("invalid or expired authorization code")
        if not codec.secret_matches(code_secret, auth_code.code_secret_hash):
            raise invalid_grant("invalid authorization code")

        if form_params["redirect_uri"] != auth_code.redirect_uri:
            raise invalid_grant("redirect_uri does not match the authorization request")

        client_id = form_params.get("client_id") or client_id_auth
        if client_id != auth_code.client_id:
            raise invalid_client("code was not issued to this client")

        client = self.client_lookup.lookup(auth_code.client_id)
        if client is None:
            raise invalid_client("client not registered")
        if client.is_confidential:
            self._authenticate(client, client_id_auth, client_secret_auth)

        # Authenticated confidential clients may skip the verifier; one that is sent is still checked
        code_verifier = form_params.get("code_verifier")
        if auth_code.code_challenge is not None and (not client.is_confidential or code_verifier):
            self._verify_code_verifier(auth_code, code_verifier)

        # First consumer wins; a concurrent exchange of the same code loses here
        if not self.storage.consume_code(code_id):
            raise invalid_grant("authorization code already used")
        logger.info("Consumed authorization code %s for client %s", code_id, client.client_id)

        token = self.token_issuer.issue(
            user_id=auth_code.user_id,
            client_id=auth_code.client_id,
            scope=auth_code.scope,
            now=now,
            token_id=code_id,
        )
        return TokenResponse.for_token(token)

    def _authenticate(self, client: ClientRegistration, client_id_auth: Optional[str], client_secret_auth: Optional[str]):
        if client_id_auth is None or client_secret_auth is None:
            raise invalid_client("invalid credentials (no authentication provided)")
        if client_id_auth != client.client_id:
            raise invalid_client("invalid credentials (client_id does not match)")
        if not hmac.compare_digest(client_secret_auth.encode('utf-8'), client.client_secret.encode('utf-8')):
            raise invalid_client("invalid credentials (invalid client_secret)")

    def _verify_code_verifier(self, auth_code: AuthorizationCode, code_verifier: Optional[str]):
        if not code_verifier:
            raise invalid_grant('missing "code_verifier" parameter')
        try:
            challenge = codec.challenge_from_verifier(code_verifier)
        except UnicodeEncodeError:
            raise invalid_grant("invalid code_verifier")
        if not hmac.compare_digest(challenge.encode('ascii'), auth_code.code_challenge.encode('utf-8')):
            raise invalid_grant("code_verifier does not match code_challenge")
