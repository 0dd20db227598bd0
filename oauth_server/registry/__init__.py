from .loader import (
    ClientLookup,
    ClientRegistry,
    load_client_registry,
)
from .models import ClientRegistration, RegistryData

__all__ = [
    "ClientLookup",
    "ClientRegistry",
    "load_client_registry",
    "ClientRegistration",
    "RegistryData",
]
