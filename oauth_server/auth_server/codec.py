import base64
import binascii
import hashlib
import hmac
import json
import re
from typing import Tuple, Dict, Any, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from .randomness import RandomSource

SIGNATURE_LENGTH = 64 # Ed25519
_SEGMENT_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class MalformedError(ValueError):
    """Raised when a credential string or signed segment cannot be decoded."""
    pass


def encode_segment(raw: bytes) -> str:
    """Renders raw bytes as unpadded base64url text."""
    return base64.urlsafe_b64encode(raw).decode('ascii').rstrip('=')

def decode_segment(segment: str) -> bytes:
    if not _SEGMENT_RE.match(segment):
        raise MalformedError("segment is not URL-safe base64")
    try:
        return base64.urlsafe_b64decode(segment + '=' * (-len(segment) % 4))
    except (binascii.Error, ValueError) as e:
        raise MalformedError(f"invalid base64url segment: {e}") from e

def generate_pair(random_source: RandomSource) -> Tuple[str, str]:
    """
    Draws two independent values from the randomness source.

    Returns:
        Tuple[str, str]: The (identifier, secret) pair in URL-safe text form.
    """
    identifier = encode_segment(random_source.get())
    secret = encode_segment(random_source.get())
    return identifier, secret

def render(identifier: str, secret_or_signature: str) -> str:
    return f"{identifier}.{secret_or_signature}"

def parse(credential: str) -> Tuple[str, str]:
    """
    Splits an ``identifier.secret`` credential into its two segments.

    Raises:
        MalformedError: If there are not exactly two non-empty URL-safe segments.
    """
    if not isinstance(credential, str):
        raise MalformedError("credential must be a string")
    parts = credential.split('.')
    if len(parts) != 2:
        raise MalformedError("credential must have exactly two segments")
    for part in parts:
        if not _SEGMENT_RE.match(part):
            raise MalformedError("credential segments must be non-empty and URL-safe")
    return parts[0], parts[1]

def hash_secret(secret: str) -> str:
    """One-way transform of a secret for stored comparison."""
    return hashlib.sha256(secret.encode('utf-8')).hexdigest()

def secret_matches(secret: str, stored_hash: str) -> bool:
    return hmac.compare_digest(hash_secret(secret), stored_hash)

def challenge_from_verifier(code_verifier: str) -> str:
    """PKCE S256: base64url(SHA-256(ASCII(code_verifier))) without padding."""
    digest = hashlib.sha256(code_verifier.encode('ascii')).digest()
    return encode_segment(digest)


# --- Signatures ---
def load_signature_key_pair(raw: Union[bytes, str]) -> Ed25519PrivateKey:
    """
    Loads an Ed25519 private key.

    Accepts a 32-byte seed, a 64-byte libsodium secret key (seed || public key)
    or a 96-byte libsodium key pair (secret key || public key), raw or base64.
    """
    if isinstance(raw, str):
        try:
            raw = base64.b64decode(raw, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"signature key pair is not valid base64: {e}") from e
    if len(raw) not in (32, 64, 96):
        raise ValueError(f"unsupported signature key length: {len(raw)} bytes")
    return Ed25519PrivateKey.from_private_bytes(raw[:32])

def canonical_payload(token_id: str, client_id: str, scope: str, expires_at: int, user_id: str) -> bytes:
    """Stable encoding of the signed token fields: compact JSON with sorted keys."""
    fields = {
        "token_id": token_id,
        "client_id": client_id,
        "scope": scope,
        "expires_at": int(expires_at),
        "user_id": user_id,
    }
    return json.dumps(fields, sort_keys=True, separators=(',', ':')).encode('utf-8')

def sign(payload: bytes, private_key: Ed25519PrivateKey) -> bytes:
    return private_key.sign(payload)

def verify(payload: bytes, signature: bytes, public_key: Ed25519PublicKey) -> bool:
    try:
        public_key.verify(signature, payload)
    except InvalidSignature:
        return False
    return True

def sign_segment(payload: bytes, private_key: Ed25519PrivateKey) -> str:
    """Renders ``base64url(signature || payload)`` for use as the token secret segment."""
    return encode_segment(sign(payload, private_key) + payload)

def open_signed(segment: str, public_key: Ed25519PublicKey) -> Dict[str, Any]:
    """
    Checks a signed secret segment and returns the token fields it carries.

    Raises:
        MalformedError: If the segment does not decode or the signature does not verify.
    """
    signed = decode_segment(segment)
    if len(signed) <= SIGNATURE_LENGTH:
        raise MalformedError("signed segment too short")
    signature, payload = signed[:SIGNATURE_LENGTH], signed[SIGNATURE_LENGTH:]
    if not verify(payload, signature, public_key):
        raise MalformedError("invalid signature")
    try:
        return json.loads(payload.decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedError(f"signed payload is not JSON: {e}") from e
