import base64
import io
import json

import httpx
import pytest
from cryptography.hazmat.primitives.asymmetric import ed25519
from rich.console import Console

from dkic.signer import format_dns_record, sign_html

DOH_URL = "https://doh.test/dns-query"
PAGE_URL = "https://example.org/index.html"

SAMPLE_HTML = """<!DOCTYPE html>
<html>
<head>
    <title>Test Page</title>
    <meta charset="utf-8">
</head>
<body>
    <h1>Hello, World!</h1>
    <p>This is a test HTML file.</p>
</body>
</html>"""


def _capture_console() -> tuple[Console, io.StringIO]:
    """Create a Console that writes to a StringIO for test capturing."""
    buf = io.StringIO()
    return Console(file=buf, force_terminal=True, width=200), buf


def doh_answer(*records: str, status: int = 0) -> dict:
    """Build a DNS JSON response with one quoted TXT answer per record."""
    return {
        "Status": status,
        "Answer": [
            {"name": "_dkic.example.org.", "type": 16, "TTL": 300, "data": f'"{r}"'}
            for r in records
        ],
    }


def raw_key_record(public_key: ed25519.Ed25519PublicKey) -> str:
    raw = public_key.public_bytes_raw()
    return f"v=DKIC1; k=ed25519; p={base64.b64encode(raw).decode()}"


@pytest.fixture
def private_key() -> ed25519.Ed25519PrivateKey:
    return ed25519.Ed25519PrivateKey.generate()


@pytest.fixture
def signed_html(private_key) -> str:
    return sign_html(SAMPLE_HTML, private_key)


@pytest.fixture
def dns_record(private_key) -> str:
    return format_dns_record(private_key.public_key())


class FakeWeb:
    """Routes requests to canned page sources and DoH responses."""

    def __init__(self):
        self.pages: dict[str, tuple[int, str]] = {}
        self.dns: tuple[int, str] | None = None
        self.requests: list[httpx.Request] = []

    def serve_page(self, url: str, html: str, status_code: int = 200) -> None:
        self.pages[url] = (status_code, html)

    def serve_dns(self, payload: dict | str, status_code: int = 200) -> None:
        body = payload if isinstance(payload, str) else json.dumps(payload)
        self.dns = (status_code, body)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if str(request.url).startswith(DOH_URL):
            if self.dns is None:
                return httpx.Response(404)
            status_code, body = self.dns
            return httpx.Response(status_code, text=body)
        page_url = f"{request.url.scheme}://{request.url.host}{request.url.path}"
        status_code, html = self.pages.get(page_url, (404, "not found"))
        return httpx.Response(status_code, text=html)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def web() -> FakeWeb:
    return FakeWeb()
