"""Operator CLI for chipin."""

import logging

import typer
import uvicorn
from sqlalchemy import text

from chipin.core.settings import get_settings
from chipin.db.session import get_session_factory, session_scope
from chipin.infrastructure.payments.stripe_gateway import StripePaymentGateway
from chipin.repositories.chip_repository import ChipRepository
from chipin.repositories.payment_repository import PaymentRepository
from chipin.repositories.pool_repository import PoolRepository
from chipin.services.deadline_sweeper import (
    ChipDeadlineSweeper,
    PoolDeadlineSweeper,
    SweepResult,
)

app = typer.Typer(help="Operator commands for chips and pools.")


@app.callback()
def configure_logging() -> None:
    """Configure root logging from LOG_LEVEL."""
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _echo_sweep(label: str, result: SweepResult) -> None:
    typer.echo(f"{label}: checked={result.checked} transitioned={result.transitioned}")


@app.command("healthcheck")
def healthcheck() -> None:
    """Verify that the database answers."""
    with session_scope(get_session_factory()) as session:
        session.execute(text("SELECT 1"))
    typer.echo("chipin is ready")


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", help="Interface to bind."),
    port: int = typer.Option(8000, help="Port to listen on."),
) -> None:
    """Run the HTTP API."""
    uvicorn.run(
        "chipin.api.app:app",
        host=host,
        port=port,
        log_level=get_settings().log_level.lower(),
    )


@app.command("sweep-chips")
def sweep_chips() -> None:
    """Expire chips whose deadline passed."""
    with session_scope(get_session_factory()) as session:
        sweeper = ChipDeadlineSweeper(
            chip_repository=ChipRepository(session),
            session=session,
        )
        result = sweeper.sweep()
    _echo_sweep("chips", result)


@app.command("sweep-pools")
def sweep_pools() -> None:
    """Fund or refund pools whose deadline passed."""
    settings = get_settings()
    gateway = StripePaymentGateway(
        secret_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        webhook_tolerance_seconds=settings.stripe_webhook_tolerance_seconds,
    )
    with session_scope(get_session_factory()) as session:
        sweeper = PoolDeadlineSweeper(
            pool_repository=PoolRepository(session),
            payment_repository=PaymentRepository(session),
            payment_gateway=gateway,
            session=session,
        )
        result = sweeper.sweep()
    _echo_sweep("pools", result)


def main() -> None:
    """Run the chipin CLI application."""
    app()


if __name__ == "__main__":
    main()
