import secrets
from typing import Protocol


class RandomSource(Protocol):
    def get(self) -> bytes:
        """Returns a fresh, unguessable opaque value."""
        ...


class SecureRandom:
    """Randomness source backed by the OS CSPRNG."""

    def __init__(self, length: int = 32):
        self.length = length

    def get(self) -> bytes:
        return secrets.token_bytes(self.length)
