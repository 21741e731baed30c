"""
NewsCrawl Command Line
======================

Management and crawl commands.

Usage:
    newscrawl --help                          # Show all commands
    newscrawl check-config                    # Validate configuration
    newscrawl init-db                         # Initialize database
    newscrawl add-feed URL --name N --source S
    newscrawl list-feeds --all                # Show registered feeds
    newscrawl crawl FEED_ID --json            # Run ingestion for one feed
    newscrawl crawl-all                       # Run ingestion for every enabled feed
"""

import sys
import json
import asyncio
from typing import List

import click
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config.settings import get_settings
from .database.schema import DatabaseSchema
from .database.connection import get_db_manager
from .database.models import Feed
from .processing.pipeline import IngestionOrchestrator, RunOutcome
from .storage.feed_repository import FeedRepository
from .utils.logging import configure_application_logging
from .utils.exceptions import NewsCrawlError, get_user_friendly_message

console = Console()


def _load_settings():
    try:
        return get_settings()
    except NewsCrawlError as e:
        console.print(f"[bold red]❌ Configuration error: {escape(str(e))}[/bold red]")
        sys.exit(1)


def _feed_repository() -> FeedRepository:
    settings = _load_settings()
    return FeedRepository(get_db_manager(settings.database.path))


@click.group(invoke_without_command=True)
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, debug):
    """NewsCrawl - RSS/Atom news feed ingestion."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        return

    settings = _load_settings()
    configure_application_logging(
        log_level="DEBUG" if debug else settings.get_effective_log_level(),
        log_file=settings.logging.file_path,
        enable_console=settings.logging.console_logging,
        structured_logging=settings.logging.structured_logging,
        max_file_size_mb=settings.logging.max_file_size_mb,
        backup_count=settings.logging.backup_count,
    )


@cli.command()
def check_config():
    """Validate configuration and environment variables."""
    console.print("[bold blue]🔧 Checking NewsCrawl Configuration[/bold blue]")

    settings = _load_settings()

    table = Table(title="Configuration Status")
    table.add_column("Component", style="cyan")
    table.add_column("Setting")
    table.add_column("Value", style="green")

    table.add_row("Database", "path", settings.database.path)
    table.add_row("Database", "pool_size", str(settings.database.pool_size))
    table.add_row("Fetcher", "timeout_seconds", str(settings.fetcher.timeout_seconds))
    table.add_row("Fetcher", "user_agent", settings.fetcher.user_agent)
    table.add_row("Fetcher", "max_body_bytes", str(settings.fetcher.max_body_bytes))
    table.add_row("Processing", "parallel_feeds", str(settings.processing.parallel_feeds))
    table.add_row("Processing", "max_summary_length", str(settings.processing.max_summary_length))
    table.add_row("Logging", "level", settings.get_effective_log_level())
    table.add_row("Logging", "file_path", settings.logging.file_path or "-")

    console.print(table)
    console.print("[bold green]✅ Configuration is valid[/bold green]")


@cli.command()
@click.option('--reset', is_flag=True, help='Drop existing tables first (destroys all data)')
def init_db(reset):
    """Initialize the database schema."""
    settings = _load_settings()
    console.print(f"[bold blue]🗄️ Initializing database at {settings.database.path}[/bold blue]")

    try:
        schema = DatabaseSchema(settings.database.path)
        if reset:
            schema.drop_tables()
        schema.create_tables()

        if not schema.verify_schema():
            console.print("[bold red]❌ Schema verification failed[/bold red]")
            sys.exit(1)

    except NewsCrawlError as e:
        console.print(f"[bold red]❌ Database error: {escape(str(e))}[/bold red]")
        sys.exit(1)

    info = get_db_manager(settings.database.path).get_database_info()
    counts = info["table_counts"]
    console.print(
        f"[bold green]✅ Database initialized[/bold green] "
        f"({counts['feeds']} feeds, {counts['articles']} articles, {info['database_size_mb']:.1f}MB)"
    )


@cli.command()
@click.argument('url')
@click.option('--name', required=True, help='Display name')
@click.option('--source', required=True, help='Source label copied onto articles')
@click.option('--category', default=None, help='Free-form category')
@click.option('--description', default=None, help='Feed description')
@click.option('--disabled', is_flag=True, help='Register without scheduling crawls')
def add_feed(url, name, source, category, description, disabled):
    """Register a feed."""
    try:
        feed = Feed(
            name=name,
            url=url,
            source=source,
            category=category,
            description=description,
            enabled=not disabled,
        )
    except PydanticValidationError as e:
        console.print(f"[bold red]❌ Invalid feed: {escape(e.errors()[0]['msg'])}[/bold red]")
        sys.exit(1)

    try:
        feed_id = _feed_repository().create_feed(feed)
    except NewsCrawlError as e:
        console.print(f"[bold red]❌ {escape(e.message)}[/bold red]")
        sys.exit(1)

    console.print(f"[bold green]✅ Registered feed {feed_id}: {feed.name}[/bold green]")


@cli.command()
@click.option('--all', 'show_all', is_flag=True, help='Include disabled feeds')
def list_feeds(show_all):
    """Show registered feeds and their health."""
    feeds = _feed_repository().list_feeds(enabled_only=not show_all)

    if not feeds:
        console.print("[yellow]No feeds registered[/yellow]")
        return

    table = Table(title="Feeds")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Source")
    table.add_column("Enabled")
    table.add_column("Errors")
    table.add_column("Last Success")
    table.add_column("Last Error")

    for feed in feeds:
        table.add_row(
            str(feed.id),
            feed.name,
            feed.source,
            "✅" if feed.enabled else "⏸️",
            str(feed.error_count),
            feed.last_crawled_at.strftime("%Y-%m-%d %H:%M") if feed.last_crawled_at else "Never",
            escape((feed.last_error or "-")[:60]),
        )

    console.print(table)


def _set_enabled(feed_id: int, enabled: bool) -> None:
    if not _feed_repository().set_enabled(feed_id, enabled):
        console.print(f"[bold red]❌ Feed {feed_id} not found[/bold red]")
        sys.exit(1)
    console.print(f"✅ Feed {feed_id} {'enabled' if enabled else 'disabled'}")


@cli.command()
@click.argument('feed_id', type=int)
def enable(feed_id):
    """Include a feed in crawl-all runs."""
    _set_enabled(feed_id, True)


@cli.command()
@click.argument('feed_id', type=int)
def disable(feed_id):
    """Exclude a feed from crawl-all runs."""
    _set_enabled(feed_id, False)


@cli.command()
@click.argument('feed_id', type=int)
def remove_feed(feed_id):
    """Delete a feed. Its stored articles are kept."""
    if not _feed_repository().delete_feed(feed_id):
        console.print(f"[bold red]❌ Feed {feed_id} not found[/bold red]")
        sys.exit(1)
    console.print(f"✅ Feed {feed_id} removed")


def _outcome_payload(outcome: RunOutcome) -> dict:
    return {"status": outcome.status_code, **outcome.to_dict()}


def _print_outcome(outcome: RunOutcome) -> None:
    if not outcome.success:
        console.print(
            f"[bold red]❌ Feed {outcome.feed_id}: "
            f"{get_user_friendly_message(outcome.error)}[/bold red] ({escape(str(outcome.error))})"
        )
        return

    console.print(
        f"[bold green]✅ {outcome.feed['name']}[/bold green]: "
        f"{outcome.items_persisted} saved, {outcome.items_skipped} skipped, "
        f"{outcome.items_rejected} rejected"
    )
    if outcome.saved_items:
        table = Table()
        table.add_column("Published", style="cyan")
        table.add_column("Title")
        table.add_column("Image")
        for item in outcome.saved_items:
            table.add_row(
                item.published_at.strftime("%Y-%m-%d %H:%M"),
                escape(item.title[:80]),
                "🖼️" if item.has_image else "",
            )
        console.print(table)


def _orchestrator() -> IngestionOrchestrator:
    settings = _load_settings()
    return IngestionOrchestrator(get_db_manager(settings.database.path), settings=settings)


@cli.command()
@click.argument('feed_id', type=int)
@click.option('--json', 'as_json', is_flag=True, help='Print the run outcome as JSON')
def crawl(feed_id, as_json):
    """Run ingestion for one feed (ignores the enabled flag)."""
    outcome = asyncio.run(_orchestrator().run(feed_id))

    if as_json:
        click.echo(json.dumps(_outcome_payload(outcome), ensure_ascii=False, indent=2))
    else:
        _print_outcome(outcome)

    sys.exit(0 if outcome.success else 1)


@cli.command()
@click.option('--json', 'as_json', is_flag=True, help='Print run outcomes as JSON')
def crawl_all(as_json):
    """Run ingestion for every enabled feed."""
    outcomes: List[RunOutcome] = asyncio.run(_orchestrator().run_enabled_feeds())

    if as_json:
        click.echo(json.dumps(
            [_outcome_payload(outcome) for outcome in outcomes], ensure_ascii=False, indent=2
        ))
    else:
        if not outcomes:
            console.print("[yellow]No enabled feeds[/yellow]")
        for outcome in outcomes:
            _print_outcome(outcome)

    sys.exit(0 if all(outcome.success for outcome in outcomes) else 1)


if __name__ == '__main__':
    cli()
