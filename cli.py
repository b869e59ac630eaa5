#!/usr/bin/env python3
"""
RFPFlow CLI - Command Line Interface
====================================

Commands:
  rfpflow serve                    Start the API server
  rfpflow poll [--once]            Poll the vendor mailbox for proposals
  rfpflow init-db                  Create database tables
  rfpflow seed                     Insert sample vendors
  rfpflow verify-email             Check the outbound mail transport
"""

import argparse
import asyncio
import sys

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from core.config import get_settings
from core.logging_config import setup_logging

console = Console()

SAMPLE_VENDORS = [
    ("Tech Solutions Inc.", "vendor1@example.com", "Tech Solutions Inc."),
    ("Global Supplies Co.", "vendor2@example.com", "Global Supplies Co."),
    ("Premium Equipment Ltd.", "vendor3@example.com", "Premium Equipment Ltd."),
]


def print_output(message, style=None):
    """Print output with optional styling"""
    if style:
        console.print(message, style=style)
    else:
        console.print(message)


def cmd_serve(args):
    """Start the API server"""
    import uvicorn

    settings = get_settings()
    host = args.host or settings.host
    port = args.port or settings.port
    print_output(f"Starting RFPFlow API server on {host}:{port}...", "cyan")
    uvicorn.run("api.main:create_app", factory=True, host=host, port=port, reload=args.reload)


async def _poll(once: bool) -> int:
    from api.main import build_agent, build_pipeline
    from database.connection import Database
    from ingestion.scheduler import PollScheduler

    settings = get_settings()
    if not settings.mailbox.is_configured:
        print_output("IMAP_HOST, IMAP_USER and IMAP_PASSWORD must be set.", "red")
        return 1

    database = Database.from_config(settings.database)
    try:
        if settings.database.auto_create:
            await database.create_all()
        pipeline = build_pipeline(settings, database, build_agent(settings))

        if once:
            report = await pipeline.poll_inbox()
            table = Table(title="Poll cycle", box=box.ROUNDED)
            table.add_column("Outcome", style="cyan")
            table.add_column("Count", style="yellow", justify="right")
            for outcome, count in report.outcomes.items():
                table.add_row(outcome.value, str(count))
            console.print(table)
            style = "red" if report.error else "green"
            print_output(f"State: {report.state.value}, found {report.found}", style)
            if report.error:
                print_output(f"Error: {report.error}", "red")
                return 1
            return 0

        scheduler = PollScheduler(pipeline, interval_seconds=settings.mailbox.poll_interval_seconds)
        print_output(
            f"Polling {settings.mailbox.folder} every {settings.mailbox.poll_interval_seconds}s "
            "(Ctrl+C to stop)", "cyan",
        )
        scheduler.start()
        try:
            await asyncio.Event().wait()
        finally:
            await scheduler.stop()
        return 0
    finally:
        await database.dispose()


def cmd_poll(args):
    """Poll the mailbox for vendor replies"""
    try:
        return asyncio.run(_poll(args.once))
    except KeyboardInterrupt:
        print_output("Poller stopped.", "yellow")
        return 0


async def _init_db() -> None:
    from database.connection import Database

    database = Database.from_config(get_settings().database)
    try:
        await database.create_all()
    finally:
        await database.dispose()


def cmd_init_db(args):
    """Create database tables"""
    asyncio.run(_init_db())
    print_output("✓ Database tables created", "green")
    return 0


async def _seed():
    from database.connection import Database
    from database.repositories import VendorRepository

    database = Database.from_config(get_settings().database)
    try:
        await database.create_all()
        async with database.session() as session:
            repo = VendorRepository(session)
            return [
                (await repo.ensure(name=name, email=email, company=company)).to_dict()
                for name, email, company in SAMPLE_VENDORS
            ]
    finally:
        await database.dispose()


def cmd_seed(args):
    """Insert sample vendors"""
    vendors = asyncio.run(_seed())

    table = Table(title="Vendors", box=box.ROUNDED)
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Email", style="green")
    for vendor in vendors:
        table.add_row(str(vendor["id"]), vendor["name"], vendor["email"])
    console.print(table)
    return 0


async def _verify_email() -> bool:
    from api.email_service import EmailService

    return await EmailService().verify_connection()


def cmd_verify_email(args):
    """Check the outbound mail transport"""
    from api.email_service import EmailConfig

    config = EmailConfig.from_env()
    connected = asyncio.run(_verify_email())
    console.print(Panel(
        f"Provider: [bold]{config.provider.value}[/bold]\n"
        f"From: {config.from_email}\n"
        f"Connected: {'[green]yes[/green]' if connected else '[red]no[/red]'}",
        title="Email transport",
    ))
    return 0 if connected else 1


def main(argv=None):
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(
        description="RFPFlow - AI-assisted procurement",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  rfpflow init-db
  rfpflow seed
  rfpflow serve --port 8000
  rfpflow poll --once
  rfpflow verify-email
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Start API server")
    serve_parser.add_argument("--host", default=None, help="Host to bind")
    serve_parser.add_argument("--port", "-p", type=int, default=None, help="Port to bind")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    # poll command
    poll_parser = subparsers.add_parser("poll", help="Poll the mailbox for proposals")
    poll_parser.add_argument("--once", action="store_true", help="Run a single cycle and exit")

    subparsers.add_parser("init-db", help="Create database tables")
    subparsers.add_parser("seed", help="Insert sample vendors")
    subparsers.add_parser("verify-email", help="Check the outbound mail transport")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)

    # Route to command handler
    commands = {
        "serve": cmd_serve,
        "poll": cmd_poll,
        "init-db": cmd_init_db,
        "seed": cmd_seed,
        "verify-email": cmd_verify_email,
    }

    handler = commands.get(args.command)
    sys.exit(handler(args) or 0)


if __name__ == "__main__":
    main()
