import logging
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 1 # Keep authorization codes apart from other data
    storage_backend: str = "redis" # "redis" or "memory"

    clients_file: Optional[str] = None # Defaults to the bundled registry/clients.yaml

    access_token_expires_in: int = 3600
    code_expires_in: int = 300 # 5 minutes

    # Base64 Ed25519 key material; when unset tokens carry plain random secrets
    signature_key_pair: Optional[str] = None

    # Header set by the upstream authenticator (e.g. a reverse proxy) for the logged-in user
    user_id_header: str = "X-Remote-User"

    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

settings = Settings()

_logging_configured = False

def configure_logging(level: Optional[str] = None):
    """Configures root logging once per process."""
    global _logging_configured
    if _logging_configured:
        return
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    _logging_configured = True
