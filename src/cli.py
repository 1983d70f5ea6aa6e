"""
Command-line interface for alert-scheduler.

Provides commands to run the periodic runner and the API, trigger a
single processing run, inspect due alerts, initialize the database and
run diagnostic checks.

Usage:
    alert-scheduler runner        # Process due alerts every minute
    alert-scheduler serve         # Run the API server
    alert-scheduler process-once  # One manual run
    alert-scheduler due           # List due alerts without processing
    alert-scheduler init-db       # Initialize database
    alert-scheduler health        # Check service health
"""

import asyncio
import signal
import sys

import click

from src.config.settings import get_settings
from src.observability.logging import setup_logging
from src.observability.metrics import get_metrics


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Alert Scheduler - time-deferred alert delivery."""
    if debug:
        import os
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    setup_logging()


@main.command("init-db")
def init_db() -> None:
    """Initialize the database schema."""
    from src.scheduled_alerts.repository import ScheduledAlertRepository
    from src.storage.database import Database

    async def run():
        db = Database()
        await db.connect()

        try:
            repo = ScheduledAlertRepository(db)
            await repo.create_tables()
            click.echo("Database initialized successfully")
        finally:
            await db.close()

    asyncio.run(run())


@main.command()
def health() -> None:
    """Check the alert store, Redis and push configuration.

    Only the alert store is required: without Redis, runs still deliver
    but run-completed events are lost.
    """
    import redis.asyncio as aioredis
    import structlog

    from src.storage.database import Database

    logger = structlog.get_logger()
    settings = get_settings()

    async def ping_redis() -> bool:
        client = aioredis.from_url(str(settings.redis_url))
        try:
            return bool(await client.ping())
        finally:
            await client.aclose()

    async def ping_postgres() -> bool:
        db = Database()
        await db.connect()
        try:
            return await db.health_check()
        finally:
            await db.close()

    async def check() -> int:
        checks = [("postgres", ping_postgres, True), ("redis", ping_redis, False)]

        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)
        exit_code = 0
        for name, probe, required in checks:
            try:
                ok = await probe()
            except Exception as e:
                ok = False
                logger.error("Health check failed", component=name, error=str(e))
            click.echo(click.style(f"  {'✓' if ok else '✗'} {name}: {ok}", fg="green" if ok else "red"))
            if required and not ok:
                exit_code = 1

        mode = "fcm" if settings.fcm_configured else "dry_run"
        click.echo(f"  push mode: {mode}")
        click.echo("-" * 40)

        if exit_code:
            click.echo(click.style("Some services unhealthy!", fg="red"))
        else:
            click.echo(click.style("All core services healthy!", fg="green"))
        return exit_code

    sys.exit(asyncio.run(check()))


@main.command()
@click.option("--host", default=None, help="API server host")
@click.option("--port", default=None, type=int, help="API server port")
@click.option("--reload", is_flag=True, help="Enable auto-reload (dev only)")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def serve(host: str | None, port: int | None, reload: bool, metrics_port: int | None) -> None:
    """Start the alert scheduler API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    metrics_port = metrics_port or settings.metrics_port

    # Start metrics server on separate port
    get_metrics().start_server(port=metrics_port)

    click.echo(f"Starting API server on {host}:{port}")
    click.echo(f"Metrics available on http://localhost:{metrics_port}/metrics")
    click.echo(f"API docs available on http://localhost:{port}/docs")

    uvicorn.run(
        "src.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


@main.command()
@click.option("--interval", default=None, type=float, help="Seconds between runs (default: config)")
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def runner(interval: float | None, metrics: bool, metrics_port: int | None) -> None:
    """Run the periodic runner until interrupted.

    Processes due alerts for every organization once per interval.
    Several runners may run at once; each alert is still delivered once.
    """
    import redis.asyncio as aioredis

    from src.scheduled_alerts.config import ScheduledAlertConfig
    from src.scheduled_alerts.events import RunCompletedPublisher
    from src.scheduled_alerts.factory import build_processor, build_push_gateway
    from src.scheduled_alerts.gateway import FCMGateway
    from src.scheduled_alerts.triggers import PeriodicRunner
    from src.storage.database import Database

    async def run():
        settings = get_settings()
        config = ScheduledAlertConfig()

        if metrics:
            get_metrics().start_server(port=metrics_port or settings.metrics_port)

        db = Database()
        await db.connect()
        redis_client = aioredis.from_url(
            str(settings.redis_url),
            encoding="utf-8",
            decode_responses=True,
        )
        gateway = build_push_gateway(config)
        processor = build_processor(
            db,
            gateway,
            publisher=RunCompletedPublisher(redis_client, config.broadcast_channel),
            config=config,
        )

        try:
            periodic = PeriodicRunner(processor, interval_seconds=interval)

            # Handle shutdown signals
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, lambda: asyncio.create_task(periodic.stop()))

            await periodic.start()
        finally:
            await processor.drain()
            if isinstance(gateway, FCMGateway):
                await gateway.close()
            await redis_client.aclose()
            await db.close()

    asyncio.run(run())


@main.command("process-once")
@click.option("--organization", "organization_id", default=None, help="Limit the run to one organization")
@click.option("--timeout", default=None, type=float, help="Run deadline in seconds (default: config)")
def process_once(organization_id: str | None, timeout: float | None) -> None:
    """Process due scheduled alerts once and exit.

    Example:
        alert-scheduler process-once
        alert-scheduler process-once --organization springfield_water
    """
    from src.scheduled_alerts.exceptions import ScheduledAlertError
    from src.scheduled_alerts.factory import build_processor, build_push_gateway
    from src.scheduled_alerts.gateway import FCMGateway
    from src.storage.database import Database

    async def run() -> int:
        db = Database()
        await db.connect()
        gateway = build_push_gateway()
        processor = build_processor(db, gateway)

        try:
            try:
                result = await processor.run(
                    organization_id=organization_id,
                    trigger="manual",
                    timeout=timeout,
                )
            except ScheduledAlertError as e:
                click.echo(click.style(f"Run failed: {e}", fg="red"))
                return 1

            click.echo(f"\nProcessing Results ({result.scope}):")
            click.echo(f"  Processed:              {result.processed_count}")
            click.echo(f"  Organizations scanned:  {result.organizations_scanned}")
            click.echo(f"  Organizations failed:   {len(result.organizations_failed)}")
            click.echo(f"  Claims lost:            {result.claims_lost}")
            click.echo(f"  Errors:                 {len(result.errors)}")
            click.echo(f"  Timed out:              {result.timed_out}")
            click.echo(f"  Elapsed:                {result.elapsed_seconds:.2f}s")

            for title in result.processed_alerts:
                click.echo(f"  - {title}")

            if result.errors:
                click.echo("\nErrors:")
                for err in result.errors:
                    click.echo(click.style(f"  - {err}", fg="red"))
            return 0
        finally:
            await processor.drain()
            if isinstance(gateway, FCMGateway):
                await gateway.close()
            await db.close()

    sys.exit(asyncio.run(run()))


@main.command()
@click.option("--organization", "organization_id", default=None, help="Limit to one organization")
def due(organization_id: str | None) -> None:
    """List due scheduled alerts without processing them."""
    from src.scheduled_alerts.exceptions import ScheduledAlertError
    from src.scheduled_alerts.repository import ScheduledAlertRepository
    from src.scheduled_alerts.scanner import DueAlertScanner
    from src.storage.database import Database

    async def run() -> int:
        db = Database()
        await db.connect()

        try:
            scanner = DueAlertScanner(ScheduledAlertRepository(db))
            try:
                alerts = await scanner.scan(organization_id)
            except ScheduledAlertError as e:
                click.echo(click.style(f"Scan failed: {e}", fg="red"))
                return 1

            if not alerts:
                click.echo("No due scheduled alerts")
                return 0

            click.echo(f"\nDue scheduled alerts: {len(alerts)}")
            click.echo("-" * 60)
            for alert in sorted(alerts, key=lambda a: a.scheduled_date or a.created_at):
                when = alert.scheduled_date.isoformat() if alert.scheduled_date else "now"
                click.echo(
                    f"  [{alert.severity}] {alert.title} "
                    f"({alert.organization_id}) due {when}"
                )
            return 0
        finally:
            await db.close()

    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()
