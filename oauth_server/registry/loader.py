import logging
import yaml
from pathlib import Path
from typing import Dict, Optional, Protocol, Mapping, Any, Union
from .models import ClientRegistration, RegistryData

logger = logging.getLogger(__name__)

REGISTRY_FILE_PATH = Path(__file__).parent / "clients.yaml"


class ClientLookup(Protocol):
    def lookup(self, client_id: str) -> Optional[ClientRegistration]:
        ...


class ClientRegistry:
    """In-memory client registry keyed by client_id."""

    def __init__(self, clients: Optional[Mapping[str, Union[ClientRegistration, Dict[str, Any]]]] = None):
        self._clients: Dict[str, ClientRegistration] = {}
        for client_id, info in (clients or {}).items():
            self.register(client_id, info)

    def register(self, client_id: str, info: Union[ClientRegistration, Dict[str, Any]]) -> ClientRegistration:
        if isinstance(info, ClientRegistration):
            registration = info
        else:
            registration = ClientRegistration(client_id=client_id, **{k: v for k, v in info.items() if k != "client_id"})
        if registration.client_id != client_id:
            raise ValueError(f"Registry key {client_id!r} does not match client_id {registration.client_id!r}")
        self._clients[client_id] = registration
        return registration

    def lookup(self, client_id: str) -> Optional[ClientRegistration]:
        return self._clients.get(client_id)

    def __len__(self) -> int:
        return len(self._clients)

    def __contains__(self, client_id: object) -> bool:
        return client_id in self._clients


def load_client_registry(path: Union[str, Path] = REGISTRY_FILE_PATH) -> ClientRegistry:
    """
    Loads client registrations from a YAML file.

    The file holds a top-level ``clients`` mapping keyed by client_id. A missing
    file yields an empty registry; malformed content raises.

    Args:
        path (Union[str, Path]): The path to the YAML registry file.

    Returns:
        ClientRegistry: The loaded (or empty) registry.
    """
    path = Path(path)
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Client registry file %s not found. Using empty registry.", path)
        return ClientRegistry()

    clients = data.get("clients") or {}
    # Registry entries omit client_id; the mapping key is authoritative
    registry_data = RegistryData(clients={
        client_id: {**info, "client_id": client_id} for client_id, info in clients.items()
    })
    logger.info("Loaded %d client registrations from %s", len(registry_data.clients), path)
    return ClientRegistry(registry_data.clients)
