"""Rebuild the exact text that was signed from the document's raw source."""

import logging
import re

import httpx

from dkic.config import SIGNATURE_ELEMENT_ID
from dkic.errors import CanonicalizationMismatch, SourceFetchFailed

logger = logging.getLogger(__name__)

# Exact-slice match of the carrier block and the whitespace that follows it.
SIGNATURE_BLOCK_RE = re.compile(
    r"<script[^>]*\sid=[\"']" + re.escape(SIGNATURE_ELEMENT_ID) + r"[\"'][^>]*>.*?</script>\s*",
    re.IGNORECASE | re.DOTALL,
)


def strip_signature(html: str) -> tuple[str, int]:
    """Remove every signature carrier block from ``html``.

    Returns the remaining text and the number of blocks removed. Text outside
    the removed slices is left byte-for-byte untouched.
    """
    return SIGNATURE_BLOCK_RE.subn("", html)


def canonicalize(html: str) -> str:
    """Return ``html`` without its signature carrier; unchanged if there is none."""
    return strip_signature(html)[0]


async def fetch_source(client: httpx.AsyncClient, url: str) -> str:
    """Re-fetch the raw source of ``url``.

    Raises:
        SourceFetchFailed: Transport error, timeout, or a non-2xx response.
    """
    try:
        response = await client.get(url, follow_redirects=True)
    except httpx.HTTPError as exc:
        raise SourceFetchFailed(f"Cannot fetch original HTML: {exc}") from exc

    if not response.is_success:
        raise SourceFetchFailed(
            f"Cannot fetch original HTML: failed to fetch page source: {response.status_code}"
        )
    # Signed as UTF-8 regardless of the charset the server declares.
    response.encoding = "utf-8"
    return response.text


async def fetch_canonical_document(client: httpx.AsyncClient, url: str) -> str:
    """Fetch ``url`` and strip its carrier, producing the payload to verify.

    A source without a carrier means the served bytes differ from the page
    the signature was read from, so it is rejected instead of verified as-is.
    """
    source = await fetch_source(client, url)
    canonical, removed = strip_signature(source)
    if removed == 0:
        raise CanonicalizationMismatch(
            f"Re-fetched source of {url} has no #{SIGNATURE_ELEMENT_ID} block to strip"
        )
    if removed > 1:
        logger.warning("Stripped %d signature blocks from %s", removed, url)
    logger.debug("Canonical payload for %s is %d characters", url, len(canonical))
    return canonical
