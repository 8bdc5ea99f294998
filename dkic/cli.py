"""DKIC command line: verify pages, generate keys, sign HTML files."""

import argparse
import asyncio
import json
import logging
from collections.abc import Callable
from pathlib import Path

import httpx
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeRemainingColumn
from rich.table import Table
from rich.text import Text

from dkic.canonical import fetch_source
from dkic.config import DEFAULT_CONCURRENCY, DOH_PROVIDERS, VerifierSettings, resolve_doh_url
from dkic.errors import SigningError, SourceFetchFailed
from dkic.exporter import export_outcomes
from dkic.pipeline import verify_pages
from dkic.signer import generate_keypair, load_private_key, sign_file
from dkic.types import PageContext, VerificationOutcome

console = Console()
err_console = Console(stderr=True)

Row = tuple[PageContext, VerificationOutcome]


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


async def load_pages(
    urls: list[str],
    client: httpx.AsyncClient,
    rendered_html: str | None = None,
) -> tuple[list[PageContext], list[Row]]:
    """Fetch each URL once to stand in for the rendered document.

    Returns the pages that loaded and failed outcomes for those that did not.
    """
    if rendered_html is not None:
        return [PageContext(url=u, rendered_html=rendered_html) for u in urls], []

    async def _load(url: str) -> PageContext | Row:
        try:
            html = await fetch_source(client, url)
        except SourceFetchFailed as exc:
            return (PageContext(url=url, rendered_html=""), VerificationOutcome.failed(exc.message, exc.kind))
        return PageContext(url=url, rendered_html=html)

    loaded = await asyncio.gather(*(_load(u) for u in urls))
    contexts = [item for item in loaded if isinstance(item, PageContext)]
    failures = [item for item in loaded if isinstance(item, tuple)]
    return contexts, failures


async def verify_urls(
    urls: list[str],
    settings: VerifierSettings,
    concurrency: int = DEFAULT_CONCURRENCY,
    rendered_html: str | None = None,
    on_result: Callable[[PageContext, VerificationOutcome], None] | None = None,
) -> list[Row]:
    """Verify ``urls`` and return (page, outcome) rows in input order."""
    async with httpx.AsyncClient(timeout=settings.timeout) as client:
        contexts, failures = await load_pages(urls, client, rendered_html)
        for row in failures:
            if on_result is not None:
                on_result(*row)
        outcomes = await verify_pages(
            contexts,
            concurrency=concurrency,
            settings=settings,
            client=client,
            on_result=on_result,
        )

    by_url = {c.url: (c, o) for c, o in zip(contexts, outcomes)}
    by_url.update({c.url: (c, o) for c, o in failures})
    return [by_url[u] for u in urls]


def display_outcomes(rows: list[Row], output_console: Console | None = None) -> None:
    """Print a table of verification outcomes and a summary line."""
    out = output_console or console

    table = Table(title="DKIC Verification", show_lines=False)
    table.add_column("URL", style="bold")
    table.add_column("Result")
    table.add_column("Details")

    for context, outcome in rows:
        if outcome.success:
            result = Text("verified", style="bold green")
            details = f"Domain: {outcome.domain}"
        else:
            result = Text(outcome.error_kind.value if outcome.error_kind else "failed", style="red")
            details = outcome.error or ""
        table.add_row(context.url, result, details)

    out.print(table)

    verified = sum(1 for _, o in rows if o.success)
    summary = Text()
    summary.append(f"Total: {len(rows)}", style="bold")
    summary.append(" | ")
    summary.append(f"Verified: {verified}", style="bold green")
    summary.append(" | ")
    summary.append(f"Failed: {len(rows) - verified}", style="red")
    out.print(summary)


def _run_verify(args: argparse.Namespace) -> int:
    settings = VerifierSettings.from_env()
    settings = VerifierSettings(
        doh_url=resolve_doh_url(args.doh) if args.doh else settings.doh_url,
        timeout=args.timeout if args.timeout is not None else settings.timeout,
        strict_keys=args.strict_keys or settings.strict_keys,
    )

    rendered_html = None
    if args.rendered:
        if len(args.urls) != 1:
            err_console.print("[red]--rendered can only be used with a single URL[/red]")
            return 2
        try:
            rendered_html = Path(args.rendered).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            err_console.print(f"[red]Cannot read rendered HTML {args.rendered}: {exc}[/red]")
            return 1

    if len(args.urls) > 1 and not args.json:
        with Progress(
            TextColumn("[bold blue]Verifying pages"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeRemainingColumn(),
            console=err_console,
        ) as progress:
            task = progress.add_task("verify", total=len(args.urls))

            def on_result(context: PageContext, outcome: VerificationOutcome) -> None:
                progress.advance(task)

            rows = asyncio.run(
                verify_urls(args.urls, settings, args.concurrency, rendered_html, on_result)
            )
    else:
        rows = asyncio.run(verify_urls(args.urls, settings, args.concurrency, rendered_html))

    if args.json:
        console.print_json(json.dumps([{"url": c.url, **o.to_dict()} for c, o in rows]))
    else:
        display_outcomes(rows)

    if args.output:
        export_outcomes(rows, args.output)
        err_console.print(f"Results exported to {args.output}")

    return 0 if all(o.success for _, o in rows) else 1


def _run_keygen(args: argparse.Namespace) -> int:
    files = generate_keypair(args.out, args.outpubkey)
    console.print(f"Private key: {files.private_key_path}")
    console.print(f"DNS entry with public key: {files.dns_entry_path}:")
    console.print("\tsubdomain: _dkic")
    console.print("\ttype: TXT")
    console.print(f"\tcontent: {files.dns_content}", soft_wrap=True)
    return 0


def _run_sign(args: argparse.Namespace) -> int:
    try:
        private_key = load_private_key(args.private_key)
    except (SigningError, OSError) as exc:
        err_console.print(f"[red]Error signing files: {exc}[/red]")
        return 1

    for name in args.files:
        path = Path(name)
        if not path.exists():
            err_console.print(f"[yellow]Warning: File {name} does not exist, skipping[/yellow]")
            continue
        try:
            sign_file(path, private_key)
        except (SigningError, OSError, UnicodeDecodeError) as exc:
            err_console.print(f"[red]Error signing files: {exc}[/red]")
            return 1
        console.print(f"Signed: {name}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dkic",
        description="Verify and create DKIC (Domain Key Integrity Check) signatures on HTML pages.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log each verification stage")
    subparsers = parser.add_subparsers(dest="command", required=True)

    verify = subparsers.add_parser("verify", help="Verify the DKIC signature of one or more pages")
    verify.add_argument("urls", nargs="+", metavar="URL", help="Page address (http or https)")
    verify.add_argument(
        "--doh",
        metavar="NAME|URL",
        help=f"DNS-over-HTTPS resolver: {', '.join(DOH_PROVIDERS)} or a JSON API URL "
        "(default: $DKIC_DOH_URL or cloudflare)",
    )
    verify.add_argument("--timeout", type=float, help="Per-request timeout in seconds (default: 10)")
    verify.add_argument(
        "--strict-keys",
        action="store_true",
        help="Require the published key to be raw Ed25519 or DER SubjectPublicKeyInfo",
    )
    verify.add_argument(
        "--concurrency",
        type=int,
        default=DEFAULT_CONCURRENCY,
        help=f"Max concurrent verifications (default: {DEFAULT_CONCURRENCY})",
    )
    verify.add_argument("--rendered", metavar="FILE", help="Saved rendered HTML to read the signature from")
    verify.add_argument("--json", action="store_true", help="Print outcomes as JSON")
    verify.add_argument("--output", metavar="FILE", help="Export outcomes to a file (.json, .jsonl, .csv)")
    verify.set_defaults(handler=_run_verify)

    keygen = subparsers.add_parser("keygen", help="Generate an Ed25519 key pair")
    keygen.add_argument(
        "--out",
        metavar="PREFIX",
        default="private_key",
        help="Output file prefix for private key PEM file (default: private_key)",
    )
    keygen.add_argument(
        "--outpubkey",
        metavar="PREFIXPUB",
        default="public_key",
        help="Output file prefix for public key DNS entry text file (default: public_key)",
    )
    keygen.set_defaults(handler=_run_keygen)

    sign = subparsers.add_parser("sign", help="Sign HTML files in place")
    sign.add_argument("files", nargs="+", metavar="FILE", help="Files to sign")
    sign.add_argument("--private-key", metavar="FILE", help="Path to private key PEM file")
    sign.set_defaults(handler=_run_sign)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)
    try:
        return args.handler(args)
    except ValueError as exc:
        parser.error(str(exc))


if __name__ == "__main__":
    raise SystemExit(main())
