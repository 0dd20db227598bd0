import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from oauth_server.auth_server.endpoints import auth_router
from oauth_server.auth_server.exceptions import StorageError
from oauth_server.auth_server.randomness import SecureRandom
from oauth_server.auth_server.server import OAuthServer, utc_now
from oauth_server.auth_server.storage import create_storage
from oauth_server.core.config import Settings, settings as default_settings, configure_logging
from oauth_server.registry import load_client_registry
from oauth_server.registry.loader import REGISTRY_FILE_PATH

logger = logging.getLogger(__name__)


def build_server(app_settings: Settings) -> OAuthServer:
    """Builds an OAuthServer from settings: storage backend, client registry and signing key."""
    storage = create_storage(app_settings)
    storage.init()
    server = OAuthServer(
        storage=storage,
        random_source=SecureRandom(),
        clock=utc_now,
        client_lookup=load_client_registry(app_settings.clients_file or REGISTRY_FILE_PATH),
        access_token_expires_in=app_settings.access_token_expires_in,
        code_expires_in=app_settings.code_expires_in,
    )
    if app_settings.signature_key_pair:
        server.set_signature_key_pair(app_settings.signature_key_pair)
        logger.info("Signed access tokens enabled.")
    return server


def create_app(server: Optional[OAuthServer] = None, app_settings: Optional[Settings] = None) -> FastAPI:
    app_settings = app_settings or default_settings
    configure_logging(app_settings.log_level)

    app = FastAPI(title="OAuth 2.0 Authorization Server")
    app.state.settings = app_settings
    app.state.oauth_server = server or build_server(app_settings)

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.error("Storage failure on %s: %s", request.url.path, exc)
        return JSONResponse(
            {"error": "server_error", "error_description": "internal storage failure"},
            status_code=500,
        )

    app.include_router(auth_router) # auth_router already has prefix "/oauth"

    @app.get("/")
    async def read_root():
        return {"message": "OAuth 2.0 Authorization Server is running. Visit /docs for API details."}

    return app
