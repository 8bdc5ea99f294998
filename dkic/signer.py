"""Generate DKIC keys and embed signatures into HTML documents."""

import base64
import json
import os
from dataclasses import dataclass
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from dkic.canonical import canonicalize
from dkic.config import (
    DKIC_SUBDOMAIN,
    KEY_TYPE,
    PRIVATE_KEY_ENV,
    PROTOCOL_VERSION,
    SIGNATURE_CONTENT_TYPE,
    SIGNATURE_ELEMENT_ID,
)
from dkic.errors import SigningError

# Same length as a real base64 signature so the placeholder document has the
# exact shape of the signed one.
_PLACEHOLDER_SIGNATURE = "A" * 88


@dataclass(frozen=True)
class KeyFiles:
    private_key_path: Path
    dns_entry_path: Path
    dns_content: str


def format_dns_record(public_key: ed25519.Ed25519PublicKey) -> str:
    """Return the TXT content ``v=DKIC1; k=ed25519; p=<base64 SPKI DER>``."""
    der = public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return f"v={PROTOCOL_VERSION}; k={KEY_TYPE}; p={base64.b64encode(der).decode('ascii')}"


def format_zone_entry(dns_content: str) -> str:
    return f'{DKIC_SUBDOMAIN}.[your-domain]. IN TXT "{dns_content}"'


def generate_keypair(prefix: str = "private_key", prefixpub: str = "public_key") -> KeyFiles:
    """Write ``<prefix>.pem`` (PKCS#8) and ``<prefixpub>.dns.txt`` (zone entry)."""
    private_key = ed25519.Ed25519PrivateKey.generate()
    pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    private_path = Path(f"{prefix}.pem")
    private_path.write_bytes(pem)

    dns_content = format_dns_record(private_key.public_key())
    dns_path = Path(f"{prefixpub}.dns.txt")
    dns_path.write_text(format_zone_entry(dns_content))
    return KeyFiles(private_key_path=private_path, dns_entry_path=dns_path, dns_content=dns_content)


def load_private_key(path: str | None = None) -> ed25519.Ed25519PrivateKey:
    """Load the signing key from ``path`` or the DKIC_PRIVATE_KEY environment variable."""
    if path is not None:
        pem = Path(path).read_bytes()
    else:
        env_value = os.environ.get(PRIVATE_KEY_ENV)
        if not env_value:
            raise SigningError(
                f"No private key file specified and {PRIVATE_KEY_ENV} environment variable not set"
            )
        pem = env_value.encode("utf-8")

    try:
        key = serialization.load_pem_private_key(pem, password=None)
    except (ValueError, TypeError) as exc:
        raise SigningError(f"Cannot load private key: {exc}") from exc
    if not isinstance(key, ed25519.Ed25519PrivateKey):
        raise SigningError(f"Private key is {type(key).__name__}, not Ed25519")
    return key


def signature_block(signature_b64: str) -> str:
    body = json.dumps({"alg": KEY_TYPE, "signature": signature_b64}, separators=(",", ":"))
    return f'<script type="{SIGNATURE_CONTENT_TYPE}" id="{SIGNATURE_ELEMENT_ID}">{body}</script>'


def _insert_block(html: str, block: str) -> str:
    head_end = html.find("</head>")
    if head_end != -1:
        return html[:head_end] + block + "\n" + html[head_end:]
    head_start = html.find("<head>")
    if head_start != -1:
        insert_at = head_start + len("<head>")
        return html[:insert_at] + "\n" + block + html[insert_at:]
    raise SigningError("Could not find <head> section in HTML document")


def sign_html(html: str, private_key: ed25519.Ed25519PrivateKey) -> str:
    """Return ``html`` with a signature carrier embedded in its head.

    The signature covers the canonical form of the output, which is what a
    verifier reconstructs. Any existing carrier is replaced.
    """
    unsigned = canonicalize(html)
    payload = canonicalize(_insert_block(unsigned, signature_block(_PLACEHOLDER_SIGNATURE)))
    signature = private_key.sign(payload.encode("utf-8"))
    signed = _insert_block(unsigned, signature_block(base64.b64encode(signature).decode("ascii")))
    if canonicalize(signed) != payload:
        raise SigningError("Signed document does not canonicalize to the signed payload")
    return signed


def sign_file(path: Path, private_key: ed25519.Ed25519PrivateKey) -> None:
    """Sign the HTML file at ``path`` in place."""
    with path.open("r", encoding="utf-8", newline="") as f:
        original = f.read()
    try:
        signed = sign_html(original, private_key)
    except SigningError as exc:
        raise SigningError(f"{exc}: {path}") from exc
    with path.open("w", encoding="utf-8", newline="") as f:
        f.write(signed)
