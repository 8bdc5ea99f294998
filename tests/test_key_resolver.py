"""Tests for DKIC key record lookup and parsing."""

import base64

import httpx
import pytest
from cryptography.hazmat.primitives.asymmetric import ec

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
from dkic.key_resolver import (
    build_query_name,
    decode_public_key,
    extract_txt_data,
    parse_key_record,
    query_txt_record,
    resolve_public_key,
)
from dkic.types import KeyRecord

from conftest import DOH_URL, doh_answer, raw_key_record

RAW_KEY = bytes(range(32))
RAW_KEY_B64 = base64.b64encode(RAW_KEY).decode()


# --- Query name ---

def test_build_query_name():
    assert build_query_name("example.org") == "_dkic.example.org"


def test_build_query_name_accepts_absolute_domain():
    assert build_query_name("example.org.") == "_dkic.example.org"


def test_build_query_name_rejects_empty_domain():
    with pytest.raises(DnsQueryFailed):
        build_query_name("")


def test_build_query_name_rejects_oversized_label():
    with pytest.raises(DnsQueryFailed, match="Invalid domain name"):
        build_query_name("a" * 64 + ".org")


# --- DoH response handling ---

def test_extract_txt_data_strips_one_pair_of_quotes():
    payload = {"Status": 0, "Answer": [{"type": 16, "data": '"v=DKIC1; k=ed25519; p=abc"'}]}
    assert extract_txt_data(payload, "_dkic.example.org") == "v=DKIC1; k=ed25519; p=abc"


def test_extract_txt_data_unquoted():
    payload = {"Status": 0, "Answer": [{"type": 16, "data": "v=DKIC1"}]}
    assert extract_txt_data(payload, "_dkic.example.org") == "v=DKIC1"


def test_extract_txt_data_uses_first_txt_answer():
    payload = {
        "Status": 0,
        "Answer": [
            {"type": 5, "data": "keys.example.net."},
            {"type": 16, "data": '"first"'},
            {"type": 16, "data": '"second"'},
        ],
    }
    assert extract_txt_data(payload, "_dkic.example.org") == "first"


def test_extract_txt_data_nxdomain():
    with pytest.raises(DnsQueryFailed, match="NXDOMAIN"):
        extract_txt_data({"Status": 3}, "_dkic.example.org")


def test_extract_txt_data_servfail():
    with pytest.raises(DnsQueryFailed, match="status: 2"):
        extract_txt_data({"Status": 2}, "_dkic.example.org")


def test_extract_txt_data_empty_answer():
    with pytest.raises(DnsRecordNotFound, match="_dkic.example.org"):
        extract_txt_data({"Status": 0, "Answer": []}, "_dkic.example.org")


def test_extract_txt_data_missing_answer():
    with pytest.raises(DnsRecordNotFound):
        extract_txt_data({"Status": 0}, "_dkic.example.org")


def test_extract_txt_data_missing_status():
    with pytest.raises(DnsTransportError):
        extract_txt_data({"Answer": []}, "_dkic.example.org")


@pytest.mark.asyncio
async def test_query_txt_record_sends_dns_json_request(web):
    web.serve_dns(doh_answer("v=DKIC1; k=ed25519; p=abc"))
    async with web.client() as client:
        txt = await query_txt_record(client, DOH_URL, "example.org")

    assert txt == "v=DKIC1; k=ed25519; p=abc"
    request = web.requests[0]
    assert request.method == "GET"
    assert request.url.params["name"] == "_dkic.example.org"
    assert request.url.params["type"] == "TXT"
    assert request.headers["accept"] == "application/dns-json"


@pytest.mark.asyncio
async def test_query_txt_record_http_error(web):
    web.serve_dns({"error": "bad"}, status_code=503)
    async with web.client() as client:
        with pytest.raises(DnsTransportError, match="503"):
            await query_txt_record(client, DOH_URL, "example.org")


@pytest.mark.asyncio
async def test_query_txt_record_non_json_body(web):
    web.serve_dns("<html>captive portal</html>")
    async with web.client() as client:
        with pytest.raises(DnsTransportError, match="non-JSON"):
            await query_txt_record(client, DOH_URL, "example.org")


@pytest.mark.asyncio
async def test_query_txt_record_network_error():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(DnsTransportError, match="timed out"):
            await query_txt_record(client, DOH_URL, "example.org")


# --- Record parsing ---

def test_parse_key_record():
    record = parse_key_record(f"v=DKIC1; k=ed25519; p={RAW_KEY_B64}")
    assert record == KeyRecord(version="DKIC1", key_type="ed25519", public_key_b64=RAW_KEY_B64)


def test_parse_key_record_tolerates_whitespace_and_order():
    record = parse_key_record(f"  p = {RAW_KEY_B64} ;k= ed25519;  v =DKIC1 ; ")
    assert record.public_key_b64 == RAW_KEY_B64
    assert record.version == "DKIC1"


def test_parse_key_record_keeps_base64_padding():
    assert parse_key_record("v=DKIC1; k=ed25519; p=YWJj==").public_key_b64 == "YWJj=="


def test_parse_key_record_rejects_other_version():
    with pytest.raises(UnsupportedVersion, match="DKIC2"):
        parse_key_record(f"v=DKIC2; k=ed25519; p={RAW_KEY_B64}")


def test_parse_key_record_rejects_missing_version():
    with pytest.raises(UnsupportedVersion):
        parse_key_record(f"k=ed25519; p={RAW_KEY_B64}")


def test_parse_key_record_version_is_case_sensitive():
    with pytest.raises(UnsupportedVersion):
        parse_key_record(f"v=dkic1; k=ed25519; p={RAW_KEY_B64}")


def test_parse_key_record_rejects_rsa():
    with pytest.raises(UnsupportedKeyType, match="rsa"):
        parse_key_record(f"v=DKIC1; k=rsa; p={RAW_KEY_B64}")


def test_parse_key_record_missing_public_key():
    with pytest.raises(MissingPublicKey):
        parse_key_record("v=DKIC1; k=ed25519")


def test_parse_key_record_empty_public_key():
    with pytest.raises(MissingPublicKey):
        parse_key_record("v=DKIC1; k=ed25519; p=")


# --- Key decoding ---

def _record(p: str) -> KeyRecord:
    return KeyRecord(version="DKIC1", key_type="ed25519", public_key_b64=p)


def test_decode_raw_key():
    assert decode_public_key(_record(RAW_KEY_B64)) == RAW_KEY


def test_decode_spki_der_key(private_key, dns_record):
    record = parse_key_record(dns_record)
    assert decode_public_key(record) == private_key.public_key().public_bytes_raw()


def test_decode_takes_trailing_bytes_of_longer_blob():
    blob = b"\x00" * 12 + RAW_KEY
    assert decode_public_key(_record(base64.b64encode(blob).decode())) == RAW_KEY


def test_decode_invalid_base64():
    with pytest.raises(InvalidBase64):
        decode_public_key(_record("not*base64!"))


def test_strict_decode_accepts_raw_and_der(private_key, dns_record):
    assert decode_public_key(_record(RAW_KEY_B64), strict=True) == RAW_KEY
    record = parse_key_record(dns_record)
    assert decode_public_key(record, strict=True) == private_key.public_key().public_bytes_raw()


def test_strict_decode_rejects_padded_blob():
    blob = b"\x00" * 12 + RAW_KEY
    with pytest.raises(KeyImportError):
        decode_public_key(_record(base64.b64encode(blob).decode()), strict=True)


def test_strict_decode_rejects_non_ed25519_der():
    from cryptography.hazmat.primitives import serialization

    der = ec.generate_private_key(ec.SECP256R1()).public_key().public_bytes(
        serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
    )
    with pytest.raises(KeyImportError, match="not Ed25519"):
        decode_public_key(_record(base64.b64encode(der).decode()), strict=True)


@pytest.mark.asyncio
async def test_resolve_public_key(web, private_key):
    web.serve_dns(doh_answer(raw_key_record(private_key.public_key())))
    async with web.client() as client:
        key = await resolve_public_key(client, DOH_URL, "example.org")
    assert key == private_key.public_key().public_bytes_raw()


def test_decode_raw_key_without_padding():
    unpadded = RAW_KEY_B64.rstrip("=")
    assert len(unpadded) == 43
    assert decode_public_key(_record(unpadded)) == RAW_KEY
