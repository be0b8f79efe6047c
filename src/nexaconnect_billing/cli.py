"""Typer CLI for NexaConnect billing."""

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

app = typer.Typer(name="nexaconnect-billing", help="NexaConnect billing: Stripe subscriptions and lead unlocks")
console = Console()


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind host"),
    port: int = typer.Option(8080, help="Bind port"),
):
    """Start the billing API server."""
    import uvicorn
    from nexaconnect_billing.app import create_app

    console.print(f"[bold green]Starting NexaConnect billing on {host}:{port}[/bold green]")
    uvicorn.run(create_app(), host=host, port=port)


@app.command("init-db")
def init_db():
    """Create the billing tables in the configured database."""
    from nexaconnect_billing.deps import get_db

    async def _run():
        db = get_db()
        await db.init()
        try:
            await db.create_all()
        finally:
            await db.close()

    asyncio.run(_run())
    console.print("[bold green]Tables created[/bold green]")


@app.command()
def tier(
    label: str = typer.Argument(..., help="Plan label, e.g. 'Premium Annual'"),
):
    """Show which tier a plan label maps to."""
    from nexaconnect_billing.billing.tiers import tier_from_plan_label

    result = tier_from_plan_label(label)
    console.print(f"[bold]{label}[/bold] → {result.value}")


@app.command()
def sign(
    payload: Path = typer.Argument(..., exists=True, readable=True, help="Event JSON file"),
    secret: Optional[str] = typer.Option(None, help="Webhook secret (defaults to NEXA_STRIPE_WEBHOOK_SECRET)"),
    timestamp: Optional[int] = typer.Option(None, help="Unix timestamp to sign with"),
):
    """Print a Stripe-Signature header for a local webhook test."""
    from nexaconnect_billing.common.config import get_settings
    from nexaconnect_billing.webhooks.signature import signature_header

    secret = secret or get_settings().stripe_webhook_secret
    if not secret:
        console.print("[bold red]Error:[/bold red] no webhook secret configured")
        raise typer.Exit(1)

    console.print(signature_header(payload.read_bytes(), secret, timestamp), soft_wrap=True)


@app.command()
def health(
    url: str = typer.Option("http://localhost:8080", help="Server URL"),
):
    """Check billing server health."""
    import httpx

    try:
        resp = httpx.get(f"{url}/health", timeout=5)
        data = resp.json()
        console.print(f"[bold green]{data['status']}[/bold green] — v{data['version']}")
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
