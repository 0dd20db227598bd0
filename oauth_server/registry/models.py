from pydantic import BaseModel, ConfigDict
from typing import Dict, Optional, Literal

class ClientRegistration(BaseModel):
    model_config = ConfigDict(frozen=True)

    client_id: str
    # Kept as a plain string: redirect URIs are compared byte for byte, HttpUrl would normalize them
    redirect_uri: str
    response_type: Literal["token", "code"] # Fixed per client
    display_name: str
    client_secret: Optional[str] = None # Present for confidential clients only

    @property
    def is_confidential(self) -> bool:
        return self.client_secret is not None


class RegistryData(BaseModel):
    clients: Dict[str, ClientRegistration]
