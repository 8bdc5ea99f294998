"""Ed25519 verification of a DKIC signature against the canonical payload."""

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric import ed25519

from dkic.errors import KeyImportError
from dkic.key_resolver import decode_base64

ED25519_SIGNATURE_SIZE = 64


def load_public_key(public_key_bytes: bytes) -> ed25519.Ed25519PublicKey:
    """Import raw key bytes as an Ed25519 verification key."""
    try:
        return ed25519.Ed25519PublicKey.from_public_bytes(public_key_bytes)
    except ValueError as exc:
        raise KeyImportError(f"Failed to import Ed25519 public key: {exc}") from exc


def verify_signature(public_key_bytes: bytes, signature_b64: str, payload: str) -> bool:
    """Check ``signature_b64`` over the UTF-8 bytes of ``payload``.

    Returns False when the signature does not match; that is a verdict, and
    only malformed inputs raise.

    Raises:
        InvalidBase64: The signature is not valid base64.
        KeyImportError: The key bytes are not an Ed25519 public key.
    """
    signature = decode_base64(signature_b64, "signature")
    public_key = load_public_key(public_key_bytes)

    if len(signature) != ED25519_SIGNATURE_SIZE:
        return False
    try:
        public_key.verify(signature, payload.encode("utf-8"))
    except InvalidSignature:
        return False
    return True
