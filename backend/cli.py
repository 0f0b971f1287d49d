"""
Storefront CLI.

Command-line interface for common operations.

    python -m cli db-init
    python -m cli db-seed
    python -m cli ws-listen --tienda 1 --admin
"""

import asyncio
import json
import sys
import time
from datetime import date, timedelta

import httpx
import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="storefront",
    help="Storefront real-time and discount CLI",
    add_completion=False,
)
console = Console()


# =============================================================================
# Database Commands
# =============================================================================

@app.command()
def db_init():
    """Create the database tables."""
    from shared.infrastructure.db import engine
    from rest_api.models import Base

    console.print(f"[blue]Creating tables on: {engine.url.render_as_string(hide_password=True)}[/blue]")
    try:
        Base.metadata.create_all(engine)
        console.print("[green]✓ Tables created[/green]")
    except Exception as e:
        console.print(f"[red]✗ Table creation failed: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def db_seed(
    env: str = typer.Option("development", help="Environment to seed"),
    force: bool = typer.Option(False, "--force", "-f", help="Force reseed"),
):
    """Seed a demo store with its configuration and a PROMO10 discount event."""
    from shared.config.constants import DEFAULT_STORE_CONFIG
    from shared.infrastructure.db import get_db_context, safe_commit
    from rest_api.models import DiscountEvent, Store, StoreConfig

    console.print(f"[blue]Seeding database for: {env}[/blue]")

    if env == "production" and not force:
        console.print("[red]Cannot seed production without --force[/red]")
        raise typer.Exit(1)

    try:
        with get_db_context() as db:
            store = db.query(Store).filter(Store.slug == "tienda-demo").first()
            if store is not None and not force:
                console.print(f"[yellow]Demo store already exists (id={store.id})[/yellow]")
                return
            if store is None:
                store = Store(name="Tienda Demo", slug="tienda-demo", whatsapp="+5491100000000")
                db.add(store)
                db.flush()
                db.add(StoreConfig(store_id=store.id, business_name=store.name, **DEFAULT_STORE_CONFIG))

            today = date.today()
            db.add(DiscountEvent(
                store_id=store.id,
                title="10% de descuento",
                kind="descuento",
                code="PROMO10",
                discount_percent=10,
                start_date=today,
                end_date=today + timedelta(days=30),
                usage_limit=100,
                per_customer_limit=1,
            ))
            safe_commit(db)
            console.print(f"[green]✓ Seeded store {store.id} with code PROMO10[/green]")
    except Exception as e:
        console.print(f"[red]✗ Seeding failed: {e}[/red]")
        raise typer.Exit(1)


# =============================================================================
# WebSocket Commands
# =============================================================================

@app.command()
def ws_test(
    url: str = typer.Option("ws://localhost:3000/ws", help="WebSocket URL"),
    origin: str = typer.Option("http://localhost:3000", help="Origin header"),
):
    """Test WebSocket connectivity with a ping."""
    from ws_client import websocket_transport

    async def _test():
        console.print(f"[blue]Testing WebSocket: {url}[/blue]")
        try:
            transport = await asyncio.wait_for(websocket_transport(url, origin=origin), timeout=5)
            try:
                await transport.send(json.dumps({"event": "ping"}))
                response = await asyncio.wait_for(transport.recv(), timeout=5)
                console.print(f"[green]✓ Connected! Response: {response}[/green]")
            finally:
                await transport.close()
        except asyncio.TimeoutError:
            console.print("[red]✗ Connection timed out[/red]")
        except Exception as e:
            console.print(f"[red]✗ Connection failed: {e}[/red]")

    asyncio.run(_test())


@app.command()
def ws_listen(
    tienda: int = typer.Option(..., "--tienda", "-t", help="Store id to join"),
    admin: bool = typer.Option(False, "--admin", help="Also join the admin room"),
    url: str = typer.Option("ws://localhost:3000/ws", help="WebSocket URL"),
    origin: str = typer.Option("http://localhost:3000", help="Origin header"),
    duration: float = typer.Option(0, help="Seconds to listen (0 = until Ctrl+C)"),
):
    """Join a store's rooms and print every event received."""
    from functools import partial

    from ws_client import SocketManager, websocket_transport
    from ws_gateway.components.events.types import StoreEvent

    def _on_status(label: str, kind: str) -> None:
        style = {"success": "green", "warning": "yellow"}.get(kind, "red")
        console.print(f"[{style}]{label}[/{style}]")

    def _print_event(name: str, data) -> None:
        console.print(f"[cyan]{name}[/cyan] {json.dumps(data, ensure_ascii=False)}")

    async def _listen():
        finished = asyncio.Event()
        manager = SocketManager(
            url,
            partial(websocket_transport, origin=origin),
            on_status=_on_status,
            on_connection_error=lambda status: finished.set(),
        )
        for event in StoreEvent:
            manager.on(event.value, partial(_print_event, event.value))

        await manager.join_store(tienda, admin=admin)
        await manager.connect()
        try:
            if duration > 0:
                await asyncio.wait_for(finished.wait(), timeout=duration)
            else:
                await finished.wait()
        except asyncio.TimeoutError:
            pass
        finally:
            await manager.disconnect()

    try:
        asyncio.run(_listen())
    except KeyboardInterrupt:
        console.print("[yellow]Stopped[/yellow]")


# =============================================================================
# Health Commands
# =============================================================================

@app.command()
def health(
    base_url: str = typer.Option("http://localhost:3000", help="API base URL"),
):
    """Check service health."""

    async def _health():
        table = Table(title="Service Health")
        table.add_column("Check", style="cyan")
        table.add_column("Status", style="green")
        table.add_column("Response Time", style="yellow")

        async with httpx.AsyncClient(timeout=5.0) as client:
            for name, path in (("API", "/health"), ("API (detailed)", "/health/detailed")):
                try:
                    start = time.time()
                    response = await client.get(f"{base_url}{path}")
                    elapsed = (time.time() - start) * 1000

                    if response.status_code == 200:
                        table.add_row(name, "✓ Healthy", f"{elapsed:.0f}ms")
                    else:
                        table.add_row(name, f"✗ Status {response.status_code}", f"{elapsed:.0f}ms")
                except Exception as e:
                    table.add_row(name, f"✗ {type(e).__name__}", "-")

        console.print(table)

    asyncio.run(_health())


@app.command()
def ws_stats(
    base_url: str = typer.Option("http://localhost:3000", help="API base URL"),
):
    """Show connected stores."""
    try:
        response = httpx.get(f"{base_url}/api/socket/stats", timeout=5.0)
        response.raise_for_status()
    except httpx.HTTPError as e:
        console.print(f"[red]✗ Could not fetch stats: {e}[/red]")
        raise typer.Exit(1)

    stats = response.json()
    table = Table(title=f"Connections: {stats['total_connections']}")
    table.add_column("Tienda", style="cyan")
    table.add_column("Connections", style="green")
    for store_id, count in sorted(stats["connections_por_tienda"].items()):
        table.add_row(str(store_id), str(count))
    console.print(table)


@app.command()
def version():
    """Show version information."""
    table = Table(title="Storefront Version")
    table.add_column("Component", style="cyan")
    table.add_column("Version", style="green")

    table.add_row("API", "1.0.0")
    table.add_row("CLI", "1.0.0")
    table.add_row("Python", sys.version.split()[0])

    console.print(table)


if __name__ == "__main__":
    app()
