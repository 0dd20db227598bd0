import logging
import urllib.parse
from datetime import datetime, timedelta
from typing import Callable, Dict, Mapping, Any, Tuple

from oauth_server.registry import ClientLookup, ClientRegistration
from . import codec
from .exceptions import OAuthException, invalid_request, missing_parameter
from .models import AuthorizationRequest
from .randomness import RandomSource
from .storage import CodeStorage
from .tokens import TokenIssuer

logger = logging.getLogger(__name__)

CODE_EXPIRES_IN = 300 # seconds
SUPPORTED_CHALLENGE_METHOD = "S256"


def append_to_query(uri: str, params: Dict[str, str]) -> str:
    """Appends parameters to the query component, keeping existing ones and any fragment."""
    base, hash_sign, fragment = uri.partition('#')
    if base.endswith(('?', '&')):
        joiner = ''
    elif '?' in base:
        joiner = '&'
    else:
        joiner = '?'
    return f"{base}{joiner}{urllib.parse.urlencode(params)}{hash_sign}{fragment}"

def append_to_fragment(uri: str, params: Dict[str, str]) -> str:
    """Appends parameters to the fragment component, joining an existing fragment with '&'."""
    base, hash_sign, fragment = uri.partition('#')
    if not hash_sign:
        return f"{uri}#{urllib.parse.urlencode(params)}"
    joiner = '&' if fragment and not fragment.endswith('&') else ''
    return f"{base}#{fragment}{joiner}{urllib.parse.urlencode(params)}"


class AuthorizationEngine:
    """Validates authorize requests and issues codes (code flow) or tokens (implicit flow)."""

    def __init__(
        self,
        client_lookup: ClientLookup,
        storage: CodeStorage,
        random_source: RandomSource,
        token_issuer: TokenIssuer,
        clock: Callable[[], datetime],
        code_expires_in: int = CODE_EXPIRES_IN,
    ):
        self.client_lookup = client_lookup
        self.storage = storage
        self.random_source = random_source
        self.token_issuer = token_issuer
        self.clock = clock
        self.code_expires_in = code_expires_in

    def _check(self, params: Mapping[str, Any]) -> Tuple[AuthorizationRequest, ClientRegistration]:
        request = AuthorizationRequest.from_params(params)

        client = self.client_lookup.lookup(request.client_id)
        if client is None:
            raise OAuthException(400, "invalid_client", "client not registered")
        # Exact match, query components included
        if request.redirect_uri != client.redirect_uri:
            raise invalid_request("redirect_uri does not match the registered redirect_uri")
        if request.response_type != client.response_type:
            raise OAuthException(400, "unsupported_response_type", "response_type not supported by client")
        return request, client

    def validate(self, params: Mapping[str, Any]) -> Dict[str, str]:
        """
        Checks an authorize request and returns what the consent page shows.

        Never mutates state or draws randomness.
        """
        request, client = self._check(params)
        return {
            "client_id": client.client_id,
            "display_name": client.display_name,
            "scope": request.scope,
            "redirect_uri": client.redirect_uri,
        }

    def decide(self, params: Mapping[str, Any], approval: Mapping[str, Any], user_id: str) -> str:
        """
        Applies the user's decision and returns the redirect URL for the client.

        Args:
            params: The original authorize request parameters.
            approval: The consent form, carrying ``approve`` = ``yes`` or ``no``.
            user_id: The authenticated user making the decision.

        Returns:
            str: Redirect URL carrying the code, the token or the denial.
        """
        request, client = self._check(params)

        approve = approval.get("approve")
        if not approve:
            raise missing_parameter("approve")
        if approve not in ("yes", "no"):
            raise invalid_request('invalid "approve" parameter')

        if approve == "no":
            logger.info("User %s denied authorization for client %s", user_id, client.client_id)
            error_params = {
                "error": "access_denied",
                "error_description": "user refused authorization",
                "state": request.state,
            }
            if request.response_type == "token":
                return append_to_fragment(request.redirect_uri, error_params)
            return append_to_query(request.redirect_uri, error_params)

        if request.response_type == "token":
            return self._issue_token(request, user_id)
        return self._issue_code(request, client, user_id)

    def _issue_token(self, request: AuthorizationRequest, user_id: str) -> str:
        token = self.token_issuer.issue(
            user_id=user_id,
            client_id=request.client_id,
            scope=request.scope,
            now=self.clock(),
        )
        return append_to_fragment(request.redirect_uri, {
            "access_token": token.rendered,
            "state": request.state,
            "expires_in": str(token.expires_in),
        })

    def _check_code_challenge(self, request: AuthorizationRequest, client: ClientRegistration):
        # Public clients must use PKCE; confidential clients may
        if client.is_confidential and not request.code_challenge and not request.code_challenge_method:
            return
        if not request.code_challenge:
            raise missing_parameter("code_challenge")
        if not request.code_challenge_method:
            raise missing_parameter("code_challenge_method")
        if request.code_challenge_method != SUPPORTED_CHALLENGE_METHOD:
            raise invalid_request('unsupported "code_challenge_method", only "S256" is supported')

    def _issue_code(self, request: AuthorizationRequest, client: ClientRegistration, user_id: str) -> str:
        self._check_code_challenge(request, client)

        code_id, code_secret = codec.generate_pair(self.random_source)
        now = self.clock()
        self.storage.store_code(
            user_id=user_id,
            code_id=code_id,
            code_secret_hash=codec.hash_secret(code_secret),
            client_id=request.client_id,
            scope=request.scope,
            redirect_uri=request.redirect_uri,
            expires_at=now + timedelta(seconds=self.code_expires_in),
            code_challenge=request.code_challenge,
            issued_at=now,
        )
        logger.info("Issued authorization code %s for client %s", code_id, request.client_id)
        return append_to_query(request.redirect_uri, {
            "code": codec.render(code_id, code_secret),
            "state": request.state,
        })
