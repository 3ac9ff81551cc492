"""Ed25519 request-signing utilities using PyNaCl."""

import hashlib
import secrets
from datetime import UTC, datetime

from nacl.encoding import HexEncoder
from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey


def generate_keypair() -> tuple[str, str]:
    """Generate an Ed25519 keypair. Returns (private_key_hex, public_key_hex)."""
    signing_key = SigningKey.generate()
    private_hex = signing_key.encode(encoder=HexEncoder).decode()
    public_hex = signing_key.verify_key.encode(encoder=HexEncoder).decode()
    return private_hex, public_hex


def build_signature_message(timestamp: str, method: str, path: str, body: bytes) -> bytes:
    """The signed message: timestamp\\nMETHOD\\npath\\nsha256(body)."""
    body_hash = hashlib.sha256(body).hexdigest()
    return f"{timestamp}\n{method}\n{path}\n{body_hash}".encode()


def sign_request(
    private_key_hex: str, timestamp: str, method: str, path: str, body: bytes
) -> str:
    """Sign a request and return the hex-encoded signature."""
    signing_key = SigningKey(private_key_hex.encode(), encoder=HexEncoder)
    message = build_signature_message(timestamp, method, path, body)
    return signing_key.sign(message, encoder=HexEncoder).signature.decode()


def verify_signature(
    public_key_hex: str,
    signature_hex: str,
    timestamp: str,
    method: str,
    path: str,
    body: bytes,
) -> bool:
    """True if ``signature_hex`` is the user's signature over the request."""
    try:
        verify_key = VerifyKey(public_key_hex.encode(), encoder=HexEncoder)
        message = build_signature_message(timestamp, method, path, body)
        verify_key.verify(message, HexEncoder.decode(signature_hex.encode()))
    except (BadSignatureError, ValueError, TypeError):
        return False
    return True


def generate_nonce() -> str:
    return secrets.token_hex(16)


def is_timestamp_valid(timestamp: str, max_age_seconds: int = 30) -> bool:
    """ISO-8601 timestamp with timezone, within ``max_age_seconds`` of now."""
    try:
        ts = datetime.fromisoformat(timestamp)
    except (ValueError, TypeError):
        return False
    if ts.tzinfo is None:
        return False
    return abs((datetime.now(UTC) - ts).total_seconds()) <= max_age_seconds
