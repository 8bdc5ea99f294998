"""Resolve a domain's DKIC public key over DNS-over-HTTPS."""

import base64
import binascii
import json
import logging

import dns.exception
import dns.name
import dns.rcode
import dns.rdatatype
import httpx
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from dkic.config import DKIC_SUBDOMAIN, DNS_JSON_MEDIA_TYPE, KEY_TYPE, PROTOCOL_VERSION
from dkic.errors import (
    DnsQueryFailed,
    DnsRecordNotFound,
    DnsTransportError,
    InvalidBase64,
    KeyImportError,
    MissingPublicKey,
    UnsupportedKeyType,
    UnsupportedVersion,
)
from dkic.types import KeyRecord

logger = logging.getLogger(__name__)

ED25519_KEY_SIZE = 32


def build_query_name(domain: str) -> str:
    """Return the ``_dkic.<domain>`` owner name queried for the key record."""
    if not domain.strip(". "):
        raise DnsQueryFailed("Cannot build a DKIC query name for an empty domain")
    try:
        origin = dns.name.from_text(domain.strip())
        name = dns.name.from_text(DKIC_SUBDOMAIN, origin=origin)
    except dns.exception.DNSException as exc:
        raise DnsQueryFailed(f"Invalid domain name {domain!r}: {exc}") from exc
    return name.to_text(omit_final_dot=True)


def _rcode_text(status: int) -> str:
    try:
        return dns.rcode.to_text(status)
    except ValueError:
        return str(status)


def _unquote(data: str) -> str:
    if len(data) >= 2 and data.startswith('"') and data.endswith('"'):
        return data[1:-1]
    return data


def extract_txt_data(payload: dict, query_name: str) -> str:
    """Pick the first TXT answer out of a DNS JSON response.

    Raises:
        DnsQueryFailed: ``Status`` is not NOERROR.
        DnsRecordNotFound: No TXT answer present.
    """
    status = payload.get("Status")
    if not isinstance(status, int):
        raise DnsTransportError(f"DNS response for {query_name} has no Status field")
    if status != dns.rcode.NOERROR:
        raise DnsQueryFailed(f"DNS query failed with status: {status} ({_rcode_text(status)})")

    for answer in payload.get("Answer") or []:
        if not isinstance(answer, dict):
            continue
        if answer.get("type", dns.rdatatype.TXT) != dns.rdatatype.TXT:
            continue
        data = answer.get("data")
        if isinstance(data, str):
            return _unquote(data)

    raise DnsRecordNotFound(f"No TXT record found for {query_name}")


async def query_txt_record(client: httpx.AsyncClient, doh_url: str, domain: str) -> str:
    """Look up the DKIC TXT record for ``domain`` via the JSON DoH API at ``doh_url``."""
    query_name = build_query_name(domain)
    logger.debug("Looking up TXT record for %s via %s", query_name, doh_url)
    try:
        response = await client.get(
            doh_url,
            params={"name": query_name, "type": "TXT"},
            headers={"Accept": DNS_JSON_MEDIA_TYPE},
        )
    except httpx.HTTPError as exc:
        raise DnsTransportError(f"DNS lookup error: {exc}") from exc

    if not response.is_success:
        raise DnsTransportError(
            f"DNS lookup failed: {response.status_code} {response.reason_phrase}".rstrip()
        )

    try:
        payload = response.json()
    except json.JSONDecodeError as exc:
        raise DnsTransportError(f"DNS lookup returned a non-JSON body: {exc}") from exc
    if not isinstance(payload, dict):
        raise DnsTransportError("DNS lookup returned an unexpected JSON document")

    return extract_txt_data(payload, query_name)


def parse_key_record(txt_record: str) -> KeyRecord:
    """Parse ``v=DKIC1; k=ed25519; p=<base64>`` into a KeyRecord.

    Pairs are split on the first ``=`` so base64 padding survives. Pairs
    without a key or value are ignored; a repeated key keeps its last value.
    """
    fields: dict[str, str] = {}
    for pair in txt_record.split(";"):
        key, _, value = pair.partition("=")
        key, value = key.strip(), value.strip()
        if key and value:
            fields[key] = value

    version = fields.get("v")
    if version != PROTOCOL_VERSION:
        raise UnsupportedVersion(f"Unsupported version: {version}. Expected v={PROTOCOL_VERSION}")

    key_type = fields.get("k")
    if key_type != KEY_TYPE:
        raise UnsupportedKeyType(f"Unsupported key type: {key_type}. Expected k={KEY_TYPE}")

    public_key_b64 = fields.get("p")
    if not public_key_b64:
        raise MissingPublicKey("Missing public key field (p=) in DNS record")

    return KeyRecord(version=version, key_type=key_type, public_key_b64=public_key_b64)


def decode_base64(value: str, what: str) -> bytes:
    """Strictly decode base64, accepting input whose trailing padding was left off."""
    padded = value + "=" * (-len(value) % 4)
    try:
        return base64.b64decode(padded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidBase64(f"Invalid base64 encoding in {what}: {exc}") from exc


def _strict_raw_key(blob: bytes) -> bytes:
    if len(blob) == ED25519_KEY_SIZE:
        return blob
    try:
        key = serialization.load_der_public_key(blob)
    except (ValueError, UnsupportedAlgorithm) as exc:
        raise KeyImportError(f"Public key is neither raw Ed25519 nor DER SubjectPublicKeyInfo: {exc}") from exc
    if not isinstance(key, ed25519.Ed25519PublicKey):
        raise KeyImportError(f"DER public key is {type(key).__name__}, not Ed25519")
    return key.public_bytes(encoding=serialization.Encoding.Raw, format=serialization.PublicFormat.Raw)


def decode_public_key(record: KeyRecord, strict: bool = False) -> bytes:
    """Decode the record's ``p`` field into raw Ed25519 key bytes.

    By default the key is the trailing 32 bytes of the decoded blob. That is a
    no-op for a raw key and yields the key of an SPKI DER encoding, without
    parsing ASN.1. With ``strict`` the blob must be one of those two forms.
    """
    blob = decode_base64(record.public_key_b64, "public key")
    logger.debug("Public key blob is %d bytes", len(blob))
    if strict:
        return _strict_raw_key(blob)
    return blob[-ED25519_KEY_SIZE:]


async def resolve_public_key(
    client: httpx.AsyncClient,
    doh_url: str,
    domain: str,
    strict: bool = False,
) -> bytes:
    """Fetch, parse and decode the published DKIC key for ``domain``."""
    txt_record = await query_txt_record(client, doh_url, domain)
    record = parse_key_record(txt_record)
    return decode_public_key(record, strict=strict)
