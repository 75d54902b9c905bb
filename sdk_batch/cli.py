"""
Command line entry point for the SDK batch processor.
"""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from sdk_batch.core.config import settings
from sdk_batch.core.database import init_database, close_database, DatabaseManager
from sdk_batch.core.exceptions import BatchRunError, ConfigurationError
from sdk_batch.core.logging import setup_logging, get_logger
from sdk_batch.services.batch import BatchOrchestrator, RunStatistics
from sdk_batch.services.batch.database import QueueRepository
from sdk_batch.services.batch.metrics import format_native
from sdk_batch.services.ledger_client import close_ledger_client
from sdk_batch.services.reconciliation_service import ReconciliationService

console = Console()
logger = get_logger(__name__)
app = typer.Typer(help="SDK transaction batch processing commands")


def _require_database() -> None:
    missing = [name for name in settings.missing_required() if name.startswith("DATABASE")]
    if missing:
        raise ConfigurationError(
            f"Missing required environment variables: {', '.join(missing)}",
            {"missing": missing},
        )


def _fail_on_configuration(check) -> None:
    try:
        check()
    except ConfigurationError as e:
        console.print(f"❌ {e.message}")
        raise typer.Exit(code=1)


def _print_run_summary(stats: RunStatistics) -> None:
    symbol = settings.native_symbol

    table = Table(title=f"Batch Run #{stats.batch_id}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Status", stats.status.value if stats.status else "unknown")
    table.add_row("Total transactions", str(stats.total_transactions))
    table.add_row("Successful", str(stats.successful))
    table.add_row("Failed", str(stats.failed))
    table.add_row("Skipped", str(stats.skipped))
    table.add_row("Requeued for retry", str(stats.retried))
    table.add_row("Reclaimed", str(stats.reclaimed))
    table.add_row("Success rate", f"{stats.success_rate * 100:.1f}%")
    table.add_row("Total gas used", str(stats.total_gas_used))
    table.add_row("Total fees generated", format_native(stats.total_fees_generated, symbol))
    table.add_row("Total rewards calculated", format_native(stats.total_rewards_calculated, symbol))
    table.add_row("Duration", f"{stats.duration_seconds:.1f}s")

    console.print(table)


@app.command("init-db")
def init_db():
    """Create all tables."""
    _fail_on_configuration(_require_database)

    async def _init():
        setup_logging()
        await init_database()
        try:
            await DatabaseManager.create_tables()
        finally:
            await close_database()
        console.print("✅ Database initialized successfully!")

    asyncio.run(_init())


@app.command()
def upgrade(revision: str = "head"):
    """Apply alembic migrations."""
    from alembic import command
    from alembic.config import Config

    _fail_on_configuration(_require_database)

    alembic_cfg = Config("alembic.ini")
    command.upgrade(alembic_cfg, revision)

    console.print(f"✅ Database upgraded to: {revision}")


@app.command("run-batch")
def run_batch(
    include_failed: bool = typer.Option(
        False, "--include-failed", help="Also retry failed rows with retry budget left"
    ),
    triggered_by: Optional[str] = typer.Option(None, "--triggered-by", help="Recorded on the batch run"),
):
    """Process the pending queue once."""
    _fail_on_configuration(settings.ensure_configured)

    async def _run() -> RunStatistics:
        setup_logging()
        await init_database()
        try:
            orchestrator = BatchOrchestrator(include_failed=include_failed or None)
            async with orchestrator:
                return await orchestrator.run(triggered_by=triggered_by)
        finally:
            await close_ledger_client()
            await close_database()

    try:
        stats = asyncio.run(_run())
    except BatchRunError as e:
        console.print(f"❌ Batch run failed: {e.message}")
        raise typer.Exit(code=1)

    _print_run_summary(stats)


@app.command()
def reclaim(
    minutes: Optional[int] = typer.Option(
        None, "--minutes", min=1, help="Age after which a processing row counts as stranded"
    ),
):
    """Return rows stranded in processing to the queue."""
    _fail_on_configuration(_require_database)
    minutes = minutes or settings.processing_reclaim_minutes

    async def _reclaim():
        setup_logging()
        await init_database()
        try:
            return await QueueRepository().reclaim_stale(minutes)
        finally:
            await close_database()

    requeued, failed = asyncio.run(_reclaim())
    console.print(f"♻️ Requeued {requeued} row(s), marked {failed} row(s) failed (older than {minutes} min)")


@app.command()
def reconcile():
    """Rebuild user stats and campaign counters from transaction history."""
    _fail_on_configuration(_require_database)

    async def _reconcile():
        setup_logging()
        await init_database()
        try:
            return await ReconciliationService().run()
        finally:
            await close_database()

    report = asyncio.run(_reconcile())
    console.print(
        f"✅ Rebuilt {report.users_rebuilt} user aggregate(s) and "
        f"{report.campaigns_rebuilt} campaign counter(s)"
    )


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host"),
    port: Optional[int] = typer.Option(None, "--port"),
):
    """Run the HTTP API."""
    import uvicorn

    _fail_on_configuration(settings.ensure_configured)

    uvicorn.run(
        "sdk_batch.api.main:create_app",
        factory=True,
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    app()
