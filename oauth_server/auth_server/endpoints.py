from fastapi import APIRouter, Request, Depends, HTTPException, status
from fastapi.responses import RedirectResponse, JSONResponse
from typing import Optional, Tuple
import base64
import binascii
import logging

from .exceptions import OAuthException, invalid_request
from .models import TOKEN_RESPONSE_HEADERS
from .server import OAuthServer

logger = logging.getLogger(__name__)

auth_router = APIRouter(prefix="/oauth", tags=["OAuth 2.0 Server"])

NO_STORE_HEADERS = {k: v for k, v in TOKEN_RESPONSE_HEADERS.items() if k != "Content-Type"}


def get_oauth_server(request: Request) -> OAuthServer:
    return request.app.state.oauth_server

async def get_current_user_id(request: Request) -> str:
    """
    Returns the user authenticated by the upstream authenticator.
    The header name is configurable; without it the request is rejected.
    """
    header_name = request.app.state.settings.user_id_header
    user_id = request.headers.get(header_name)
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not authenticated")
    return user_id

def parse_basic_auth(authorization: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Extracts (client_id, client_secret) from an HTTP Basic Authorization header."""
    if not authorization or not authorization.lower().startswith("basic "):
        return None, None
    try:
        decoded_creds = base64.b64decode(authorization.split(" ", 1)[1], validate=True).decode('utf-8')
    except (binascii.Error, UnicodeDecodeError):
        raise invalid_request("invalid Basic authorization header")
    if ":" not in decoded_creds:
        raise invalid_request("invalid Basic authorization header")
    client_id, client_secret = decoded_creds.split(":", 1)
    return client_id, client_secret


@auth_router.get("/.well-known/oauth-authorization-server")
async def get_oauth_server_metadata(request: Request):
    """
    OAuth 2.0 Authorization Server Metadata endpoint (RFC 8414).
    """
    base_url = str(request.base_url).rstrip('/') + auth_router.prefix
    metadata = {
        "issuer": str(request.base_url).rstrip('/'),
        "authorization_endpoint": f"{base_url}/authorize",
        "token_endpoint": f"{base_url}/token",
        "response_types_supported": ["token", "code"],
        "grant_types_supported": ["authorization_code"],
        "token_endpoint_auth_methods_supported": ["client_secret_basic", "none"], # 'none' for public clients
        "code_challenge_methods_supported": ["S256"],
    }
    return JSONResponse(content=metadata)


@auth_router.get("/authorize", name="authorize")
async def authorize(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    server: OAuthServer = Depends(get_oauth_server),
):
    """
    Validates the authorization request and returns what the consent
    screen needs to show the user.
    """
    try:
        payload = server.authorize_validate(dict(request.query_params))
    except OAuthException as e:
        return JSONResponse(e.to_dict(), status_code=e.http_status)
    return JSONResponse(content=payload)


@auth_router.post("/authorize")
async def authorize_decision(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    server: OAuthServer = Depends(get_oauth_server),
):
    """
    Applies the user's consent decision. The authorization request stays in
    the query string, the decision (``approve=yes|no``) is form data.
    """
    form = await request.form()
    try:
        redirect_url = server.authorize_decide(
            dict(request.query_params),
            {"approve": form.get("approve")},
            user_id,
        )
    except OAuthException as e:
        return JSONResponse(e.to_dict(), status_code=e.http_status)
    return RedirectResponse(url=redirect_url, status_code=status.HTTP_302_FOUND)


@auth_router.post("/token")
async def token_exchange(request: Request, server: OAuthServer = Depends(get_oauth_server)):
    """
    OAuth 2.0 Token Endpoint (RFC 6749, Section 3.2), authorization_code grant only.
    Confidential clients authenticate with HTTP Basic.
    """
    form = await request.form()
    try:
        auth_client_id, auth_client_secret = parse_basic_auth(request.headers.get("Authorization"))
        token_response = server.token_exchange(dict(form), auth_client_id, auth_client_secret)
    except OAuthException as e:
        headers = dict(NO_STORE_HEADERS)
        if e.http_status == status.HTTP_401_UNAUTHORIZED:
            headers["WWW-Authenticate"] = 'Basic realm="OAuth"'
        return JSONResponse(e.to_dict(), status_code=e.http_status, headers=headers)

    return JSONResponse(
        content=token_response.body,
        status_code=token_response.status_code,
        headers=token_response.headers,
    )
