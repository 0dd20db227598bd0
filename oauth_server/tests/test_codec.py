import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from oauth_server.auth_server import codec
from oauth_server.tests.conftest import FixedRandom


def test_generate_pair_renders_url_safe_text():
    identifier, secret = codec.generate_pair(FixedRandom())
    assert identifier == "cmFuZG9tXzE"
    assert secret == "cmFuZG9tXzI"

def test_encode_segment_has_no_padding():
    assert codec.encode_segment(b"\xff\xfe") == "__4"
    assert codec.decode_segment("__4") == b"\xff\xfe"

def test_render_and_parse():
    assert codec.render("XYZ", "abcdefgh") == "XYZ.abcdefgh"
    assert codec.parse("XYZ.abcdefgh") == ("XYZ", "abcdefgh")

@pytest.mark.parametrize("credential", ["", "XYZ", "XYZ.", ".abc", "a.b.c", "a+b.c", "a.b=", None])
def test_parse_malformed(credential):
    with pytest.raises(codec.MalformedError):
        codec.parse(credential)

def test_hash_secret():
    hashed = codec.hash_secret("abcdefgh")
    assert hashed != "abcdefgh"
    assert hashed == codec.hash_secret("abcdefgh")
    assert codec.secret_matches("abcdefgh", hashed) is True
    assert codec.secret_matches("abcdefgi", hashed) is False

def test_challenge_from_verifier():
    code_verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
    assert codec.challenge_from_verifier(code_verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"
    assert codec.challenge_from_verifier(code_verifier) == codec.challenge_from_verifier(code_verifier)
    assert codec.challenge_from_verifier(code_verifier + "a") != "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

def test_sign_and_verify():
    private_key = Ed25519PrivateKey.generate()
    payload = codec.canonical_payload("XYZ", "code-client", "config", 1451610000, "foo")
    signature = codec.sign(payload, private_key)
    assert codec.verify(payload, signature, private_key.public_key()) is True
    assert codec.verify(payload + b" ", signature, private_key.public_key()) is False
    assert codec.verify(payload, signature, Ed25519PrivateKey.generate().public_key()) is False

def test_canonical_payload_is_stable():
    assert codec.canonical_payload("XYZ", "c", "config", 10, "foo") == (
        b'{"client_id":"c","expires_at":10,"scope":"config","token_id":"XYZ","user_id":"foo"}'
    )

def test_open_signed_rejects_tampering():
    private_key = Ed25519PrivateKey.generate()
    segment = codec.sign_segment(codec.canonical_payload("XYZ", "c", "s", 1, "u"), private_key)
    assert codec.open_signed(segment, private_key.public_key())["token_id"] == "XYZ"

    raw = bytearray(codec.decode_segment(segment))
    raw[-2] ^= 0x01
    with pytest.raises(codec.MalformedError):
        codec.open_signed(codec.encode_segment(bytes(raw)), private_key.public_key())
    with pytest.raises(codec.MalformedError):
        codec.open_signed("c2hvcnQ", private_key.public_key())

@pytest.mark.parametrize("length", [32, 64, 96])
def test_load_signature_key_pair_lengths(length):
    raw = bytes(range(length))
    key = codec.load_signature_key_pair(raw)
    assert isinstance(key, Ed25519PrivateKey)
    assert key.private_bytes_raw() == raw[:32]

def test_load_signature_key_pair_invalid():
    with pytest.raises(ValueError):
        codec.load_signature_key_pair(b"short")
    with pytest.raises(ValueError):
        codec.load_signature_key_pair("not base64!!")
