"""Orchestrate a DKIC verification from signature extraction to verdict."""

import asyncio
import logging
from collections.abc import Callable, Sequence

import httpx

from dkic.canonical import fetch_canonical_document
from dkic.config import DEFAULT_CONCURRENCY, VerifierSettings
from dkic.errors import DkicError, ErrorKind, InvalidUrl
from dkic.extractor import extract_signature
from dkic.key_resolver import resolve_public_key
from dkic.signature import verify_signature
from dkic.types import EventStatus, PageContext, Stage, VerificationEvent, VerificationOutcome

logger = logging.getLogger(__name__)

EventCallback = Callable[[VerificationEvent], None]


def domain_from_url(url: str) -> str:
    """Return the ASCII hostname of ``url``, the way a browser reports it."""
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as exc:
        raise InvalidUrl(f"Invalid URL: {exc}") from exc
    if parsed.scheme not in ("http", "https") or not parsed.raw_host:
        raise InvalidUrl(f"Invalid URL: {url!r} is not an http(s) address with a host")
    return parsed.raw_host.decode("ascii").lower()


class Orchestrator:
    """Run the verification stages for one page, in order, stopping at the first failure.

    Stages: ExtractSignature, FetchAndCanonicalize, ResolveDomain, ResolveKey,
    Verify. Each stage either hands its result to the next or ends the run with
    a failed outcome carrying that stage's error. Nothing is retried and no
    state is kept between calls to ``verify``.
    """

    def __init__(
        self,
        context: PageContext,
        client: httpx.AsyncClient | None = None,
        settings: VerifierSettings | None = None,
        on_event: EventCallback | None = None,
    ):
        self.context = context
        self.settings = settings or VerifierSettings()
        self._client = client
        self._on_event = on_event

    def _emit(self, stage: Stage, status: EventStatus, detail: str = "") -> None:
        logger.debug("[%s] %s %s %s", self.context.url, stage.value, status.value, detail)
        if self._on_event is not None:
            self._on_event(VerificationEvent(self.context.url, stage, status, detail))

    async def verify(self, doh_url: str | None = None) -> VerificationOutcome:
        """Verify the page against the key published for its domain.

        Always returns an outcome; errors are reported in it, never raised.
        Cancellation still propagates.
        """
        doh_url = doh_url or self.settings.doh_url
        if self._client is not None:
            return await self._run(self._client, doh_url)
        async with httpx.AsyncClient(timeout=self.settings.timeout) as client:
            return await self._run(client, doh_url)

    async def _run(self, client: httpx.AsyncClient, doh_url: str) -> VerificationOutcome:
        stage = Stage.EXTRACT_SIGNATURE
        try:
            self._emit(stage, EventStatus.STARTED)
            claim = extract_signature(self.context.rendered_html)
            self._emit(stage, EventStatus.COMPLETED)

            stage = Stage.FETCH_AND_CANONICALIZE
            self._emit(stage, EventStatus.STARTED)
            html_content = await fetch_canonical_document(client, self.context.url)
            self._emit(stage, EventStatus.COMPLETED, f"{len(html_content)} characters")

            stage = Stage.RESOLVE_DOMAIN
            self._emit(stage, EventStatus.STARTED)
            domain = domain_from_url(self.context.url)
            self._emit(stage, EventStatus.COMPLETED, domain)

            stage = Stage.RESOLVE_KEY
            self._emit(stage, EventStatus.STARTED, doh_url)
            public_key = await resolve_public_key(
                client, doh_url, domain, strict=self.settings.strict_keys
            )
            self._emit(stage, EventStatus.COMPLETED)

            stage = Stage.VERIFY
            self._emit(stage, EventStatus.STARTED)
            authentic = verify_signature(public_key, claim.signature, html_content)
        except DkicError as exc:
            logger.info("DKIC verification of %s failed at %s: %s", self.context.url, stage.value, exc)
            self._emit(stage, EventStatus.FAILED, exc.message)
            return VerificationOutcome.failed(exc.message, exc.kind)
        except Exception as exc:
            logger.exception("Unexpected error verifying %s at %s", self.context.url, stage.value)
            self._emit(stage, EventStatus.FAILED, str(exc))
            return VerificationOutcome.failed(f"Unexpected error: {exc}", ErrorKind.INTERNAL_ERROR)

        if not authentic:
            message = "Signature verification failed - signature does not match content"
            logger.info("DKIC signature mismatch for %s", self.context.url)
            self._emit(Stage.VERIFY, EventStatus.FAILED, message)
            return VerificationOutcome.failed(message, ErrorKind.SIGNATURE_MISMATCH)

        self._emit(Stage.VERIFY, EventStatus.COMPLETED)
        self._emit(Stage.DONE, EventStatus.COMPLETED, domain)
        return VerificationOutcome.verified(domain, html_content)


async def verify_page(
    context: PageContext,
    doh_url: str | None = None,
    client: httpx.AsyncClient | None = None,
    settings: VerifierSettings | None = None,
    on_event: EventCallback | None = None,
) -> VerificationOutcome:
    """Verify a single page. See :class:`Orchestrator`."""
    orchestrator = Orchestrator(context, client=client, settings=settings, on_event=on_event)
    return await orchestrator.verify(doh_url)


async def verify_pages(
    contexts: Sequence[PageContext],
    doh_url: str | None = None,
    concurrency: int = DEFAULT_CONCURRENCY,
    settings: VerifierSettings | None = None,
    client: httpx.AsyncClient | None = None,
    on_result: Callable[[PageContext, VerificationOutcome], None] | None = None,
) -> list[VerificationOutcome]:
    """Verify several pages concurrently with a configurable concurrency limit.

    Args:
        contexts: Pages to verify.
        doh_url: DoH endpoint; defaults to the one in ``settings``.
        concurrency: Maximum number of verifications in flight.
        settings: Shared verifier settings.
        client: Optional shared HTTP client; one is created otherwise.
        on_result: Optional callback invoked after each page is verified.

    Returns:
        One VerificationOutcome per context, in input order.
    """
    settings = settings or VerifierSettings()
    semaphore = asyncio.Semaphore(concurrency)

    async def _verify_with_limit(context: PageContext, shared: httpx.AsyncClient) -> VerificationOutcome:
        async with semaphore:
            outcome = await verify_page(context, doh_url, client=shared, settings=settings)
            if on_result is not None:
                on_result(context, outcome)
            return outcome

    async def _run_all(shared: httpx.AsyncClient) -> list[VerificationOutcome]:
        tasks = [asyncio.create_task(_verify_with_limit(c, shared)) for c in contexts]
        return list(await asyncio.gather(*tasks))

    if client is not None:
        return await _run_all(client)
    async with httpx.AsyncClient(timeout=settings.timeout) as shared:
        return await _run_all(shared)
