"""blockscrape CLI: check and run scrape payloads.

Usage:
    blockscrape check payload.json                 # Show the compiled scraper
    blockscrape run payload.json                   # Scrape the payload's URL
    blockscrape run payload.json https://example.com/list --max-pages 3
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any

import click

from blockscrape.common.exceptions import (
    BlockscrapeException,
    ConfigurationException,
    TransientException,
)
from blockscrape.compiler import new_scraper
from blockscrape.data_types import Task
from blockscrape.fetch import DEFAULT_USER_AGENT, HttpFetcher, load_robots
from blockscrape.payload import Payload, load_payload


def read_payload(payload_path: Path) -> Payload:
    """Load and validate a payload file.

    Raises:
        click.ClickException: If the file is not a valid payload.
    """
    try:
        return load_payload(payload_path.read_bytes())
    except ConfigurationException as e:
        raise click.ClickException(str(e)) from e


def _task_report(task: Task) -> dict[str, Any]:
    return {
        "id": task.id,
        "status": task.status,
        "startTime": task.start_time().isoformat(),
        "visited": {
            url: None if error is None else str(error)
            for url, error in task.results.visited.items()
        },
        "results": task.output(),
    }


@click.group()
@click.version_option(package_name="blockscrape")
def cli() -> None:
    """blockscrape: declarative block scraper CLI."""


@cli.command()
@click.argument(
    "payload_path",
    metavar="PAYLOAD",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
def check(payload_path: Path) -> None:
    """Validate a payload and show the parts it compiles to."""
    payload = read_payload(payload_path)
    try:
        scraper = new_scraper(payload)
    except ConfigurationException as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"Payload:   {payload.name or payload_path.name}")
    click.echo(f"Parts ({len(scraper.parts)}):")
    for part in scraper.parts:
        details_str = " [details]" if part.details is not None else ""
        click.echo(
            f"  {part.name}: {type(part.extractor).__name__} "
            f"{part.selector!r}{details_str}"
        )
    if payload.paginator is None:
        click.echo("Paginator: none")
    else:
        limit = payload.paginator.max_pages or "unlimited"
        click.echo(
            f"Paginator: {payload.paginator.selector!r} "
            f"@{payload.paginator.attribute} (max pages: {limit})"
        )


@cli.command()
@click.argument(
    "payload_path",
    metavar="PAYLOAD",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.argument("url", required=False)
@click.option(
    "--max-pages",
    type=click.IntRange(min=0),
    default=None,
    help="Override the paginator's page limit (0 is unlimited).",
)
@click.option(
    "--timeout",
    type=float,
    default=30.0,
    show_default=True,
    help="Request timeout in seconds.",
)
@click.option(
    "--user-agent",
    default=DEFAULT_USER_AGENT,
    show_default=True,
    help="User-Agent header sent with every request.",
)
@click.option(
    "--robots/--no-robots",
    default=False,
    show_default=True,
    help="Load the site's robots.txt into the session.",
)
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging.")
def run(
    payload_path: Path,
    url: str | None,
    max_pages: int | None,
    timeout: float,
    user_agent: str,
    robots: bool,
    verbose: bool,
) -> None:
    """Scrape URL with a payload and print the results as JSON.

    URL defaults to the payload's request URL.

    \b
    Examples:
        blockscrape run products.json
        blockscrape run products.json https://example.com/products
        blockscrape run products.json --max-pages 2 -v
    """
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    payload = read_payload(payload_path)
    seed_url = url or (payload.request.url if payload.request else "")
    if not seed_url:
        raise click.UsageError(
            "No URL given and the payload has no request URL."
        )

    try:
        scraper = new_scraper(payload)
    except ConfigurationException as e:
        raise click.ClickException(str(e)) from e
    if max_pages is not None:
        scraper = replace(
            scraper, opts=replace(scraper.opts, max_pages=max_pages)
        )
    task = Task(scraper=scraper)

    with HttpFetcher(timeout=timeout, user_agent=user_agent) as fetcher:
        robots_provider = (
            (lambda seed: load_robots(fetcher, seed)) if robots else None
        )
        try:
            task.run(seed_url, fetcher, robots_provider=robots_provider)
        except (BlockscrapeException, TransientException) as e:
            # Pages completed before the failure are still reported.
            click.echo(json.dumps(_task_report(task), indent=2))
            raise click.ClickException(f"Scrape failed: {e}") from e

    click.echo(json.dumps(_task_report(task), indent=2))


def main() -> None:
    """Entry point for the ``blockscrape`` console script."""
    cli()
