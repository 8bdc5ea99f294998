"""Defaults and environment-driven settings for the DKIC verifier."""

import os
from dataclasses import dataclass

DKIC_SUBDOMAIN = "_dkic"
SIGNATURE_ELEMENT_ID = "dkic-signature"
SIGNATURE_CONTENT_TYPE = "application/json"
PROTOCOL_VERSION = "DKIC1"
KEY_TYPE = "ed25519"
DNS_JSON_MEDIA_TYPE = "application/dns-json"

DOH_PROVIDERS = {
    "cloudflare": "https://cloudflare-dns.com/dns-query",
    "google": "https://dns.google/resolve",
    "quad9": "https://dns.quad9.net:5053/dns-query",
}
DEFAULT_DOH_URL = DOH_PROVIDERS["cloudflare"]
HTTP_TIMEOUT = 10.0
DEFAULT_CONCURRENCY = 8

PRIVATE_KEY_ENV = "DKIC_PRIVATE_KEY"

_TRUE_VALUES = {"1", "true", "yes", "on"}


def resolve_doh_url(value: str) -> str:
    """Map a provider name (e.g. "google") to its endpoint; URLs pass through."""
    return DOH_PROVIDERS.get(value.strip().lower(), value.strip())


@dataclass(frozen=True)
class VerifierSettings:
    doh_url: str = DEFAULT_DOH_URL
    timeout: float = HTTP_TIMEOUT
    strict_keys: bool = False

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "VerifierSettings":
        """Build settings from DKIC_DOH_URL, DKIC_TIMEOUT and DKIC_STRICT_KEYS."""
        env = os.environ if environ is None else environ
        doh_url = resolve_doh_url(env.get("DKIC_DOH_URL", DEFAULT_DOH_URL))
        raw_timeout = env.get("DKIC_TIMEOUT")
        try:
            timeout = float(raw_timeout) if raw_timeout else HTTP_TIMEOUT
        except ValueError:
            raise ValueError(f"DKIC_TIMEOUT must be a number of seconds, got {raw_timeout!r}") from None
        if timeout <= 0:
            raise ValueError("DKIC_TIMEOUT must be positive")
        strict = env.get("DKIC_STRICT_KEYS", "").strip().lower() in _TRUE_VALUES
        return cls(doh_url=doh_url, timeout=timeout, strict_keys=strict)
