from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, Optional, Any, Mapping
from datetime import datetime

from .exceptions import missing_parameter

TOKEN_RESPONSE_HEADERS = {
    "Content-Type": "application/json",
    "Cache-Control": "no-store",
    "Pragma": "no-cache",
}


class AuthorizationRequest(BaseModel): # Request scoped, never persisted
    model_config = ConfigDict(frozen=True)

    client_id: str
    redirect_uri: str
    response_type: str
    scope: str # Opaque, passed through unchanged
    state: str # Opaque, passed through unchanged
    code_challenge: Optional[str] = None
    code_challenge_method: Optional[str] = None # Only "S256" is supported

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "AuthorizationRequest":
        """Builds a request from query parameters, rejecting missing required ones."""
        for name in ("client_id", "redirect_uri", "response_type", "scope", "state"):
            if not params.get(name):
                raise missing_parameter(name)
        return cls(
            client_id=params["client_id"],
            redirect_uri=params["redirect_uri"],
            response_type=params["response_type"],
            scope=params["scope"],
            state=params["state"],
            code_challenge=params.get("code_challenge") or None,
            code_challenge_method=params.get("code_challenge_method") or None,
        )


class AuthorizationCode(BaseModel):
    code_id: str # Lookup key, later reused as the access token identifier
    code_secret_hash: str # Never the raw secret
    user_id: str # The user who authorized
    client_id: str
    scope: str
    redirect_uri: str
    issued_at: Optional[datetime] = None
    expires_at: datetime
    code_challenge: Optional[str] = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class AccessToken(BaseModel):
    token_id: str
    secret: str # Random secret or signature segment, already rendered
    token_type: str = "bearer"
    expires_in: int # Lifetime in seconds
    scope: str

    @property
    def rendered(self) -> str:
        return f"{self.token_id}.{self.secret}"


class TokenResponse(BaseModel):
    status_code: int = 200
    headers: Dict[str, str] = Field(default_factory=lambda: dict(TOKEN_RESPONSE_HEADERS))
    body: Dict[str, Any]

    @classmethod
    def for_token(cls, token: AccessToken) -> "TokenResponse":
        return cls(body={
            "access_token": token.rendered,
            "token_type": token.token_type,
            "expires_in": token.expires_in,
        })
