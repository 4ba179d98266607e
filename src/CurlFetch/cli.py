"""Typer-based CLI for CurlFetch."""

import asyncio
import dataclasses
import json
import sys
from typing import Any, List, Optional, Tuple

import typer
from rich.console import Console
from rich.table import Table

from CurlFetch.client import CurlClient
from CurlFetch.errors import CurlFetchError
from CurlFetch.logging_config import setup_logging
from CurlFetch.models import HTTPPolicy, TLSPolicy
from CurlFetch.network.capabilities import probe_capabilities
from CurlFetch.response import ResponseEnvelope, StreamingResponseEnvelope
from CurlFetch.settings import ClientSettings, HTTPVersion, LogLevel

console = Console(stderr=True)
app = typer.Typer(help="Fetch URLs through the curl transport")


# ============================================================================
# Helpers
# ============================================================================


def _parse_header(raw: str) -> Tuple[str, str]:
    name, sep, value = raw.partition(":")
    if not sep or not name.strip():
        raise typer.BadParameter(f"Expected 'Name: value', got {raw!r}", param_hint="--header")
    return name.strip(), value.strip()


def _write_head(envelope: Any) -> None:
    lines = [f"HTTP {envelope.status}"]
    lines.extend(f"{name}: {value}" for name, value in envelope.headers.multi_items())
    sys.stdout.write("\r\n".join(lines) + "\r\n\r\n")
    sys.stdout.flush()


def _summary(envelope: ResponseEnvelope) -> dict:
    return {
        "url": envelope.url,
        "status": envelope.status,
        "ok": envelope.ok,
        "type": envelope.type,
        "cached": envelope.cached,
        "redirected": envelope.redirected,
        "redirects": [r if isinstance(r, str) else r.url for r in envelope.redirects],
        "elapsed": round(envelope.elapsed, 6),
        "headers": dict(envelope.headers),
        "response": envelope.response
        if not isinstance(envelope.response, bytes)
        else envelope.response.decode("latin-1"),
    }


async def _run_fetch(
    client: CurlClient,
    url: str,
    include: bool,
    as_json: bool,
    **options: Any,
) -> None:
    envelope = await client.fetch(url, **options)
    if isinstance(envelope, StreamingResponseEnvelope):
        async with envelope:
            if include:
                _write_head(envelope)
            async for chunk in envelope.aiter_bytes():
                sys.stdout.buffer.write(chunk)
                sys.stdout.buffer.flush()
        return

    if as_json:
        typer.echo(json.dumps(_summary(envelope), indent=2, default=str))
    else:
        if include:
            _write_head(envelope)
        sys.stdout.buffer.write(envelope.body)
        sys.stdout.buffer.flush()


# ============================================================================
# Commands
# ============================================================================


@app.command()
def fetch(
    url: str = typer.Argument(..., help="URL to fetch"),
    method: str = typer.Option("GET", "--method", "-X", help="HTTP method"),
    header: Optional[List[str]] = typer.Option(
        None,
        "--header",
        "-H",
        help="Request header 'Name: value' (repeatable)",
    ),
    data: Optional[str] = typer.Option(None, "--data", "-d", help="Request body"),
    proxy: Optional[str] = typer.Option(
        None,
        "--proxy",
        "-x",
        help="Proxy in any supported notation",
    ),
    insecure: bool = typer.Option(False, "--insecure", "-k", help="Skip certificate verification"),
    http: Optional[HTTPVersion] = typer.Option(None, "--http", help="Force HTTP version"),
    max_time: Optional[float] = typer.Option(None, "--max-time", "-m", help="Overall timeout (s)"),
    no_follow: bool = typer.Option(False, "--no-follow", help="Do not follow redirects"),
    include: bool = typer.Option(False, "--include", "-i", help="Print status and headers"),
    stream: bool = typer.Option(False, "--stream", help="Stream the body as it arrives"),
    as_json: bool = typer.Option(False, "--json", help="Print a JSON summary of the response"),
    binary: Optional[str] = typer.Option(None, "--binary", help="Transport executable"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose"),
) -> None:
    """Fetch a URL and write the response body to stdout."""
    overrides: dict = {"log_level": LogLevel.DEBUG if verbose else LogLevel.WARNING}
    if binary:
        overrides["binary"] = binary
    settings = ClientSettings(**overrides)
    setup_logging(settings.log_level, settings.log_format)

    try:
        headers = [_parse_header(item) for item in header or []]
        options: dict = {
            "method": method,
            "headers": headers,
            "body": data,
            "proxy": proxy,
            "tls": TLSPolicy(insecure=insecure),
            "http": HTTPPolicy(version=http),
            "max_time": max_time,
            "stream": stream,
        }
        if no_follow:
            options["follow"] = False
        client = CurlClient(settings)
        asyncio.run(_run_fetch(client, url, include, as_json and not stream, **options))
    except CurlFetchError as exc:
        console.print(f"[red]✗ {exc.code}: {exc}[/red]")
        raise typer.Exit(code=1)


@app.command()
def capabilities(
    binary: str = typer.Option("curl", "--binary", help="Transport executable"),
    raw: bool = typer.Option(False, "--raw", help="Raw JSON"),
) -> None:
    """Probe the transport binary and print the features it supports."""
    caps = probe_capabilities(binary)
    data = dataclasses.asdict(caps)
    data["version"] = caps.version_string
    if raw:
        typer.echo(json.dumps(data, indent=2))
        return

    table = Table(title=f"Transport Capabilities ({binary})")
    table.add_column("Feature", style="cyan")
    table.add_column("Value", style="green")
    for name, value in data.items():
        table.add_row(name, str(value))
    Console().print(table)
    if caps.version == (0, 0, 0):
        console.print(f"[red]✗ Could not probe {binary!r}[/red]")
        raise typer.Exit(code=1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
