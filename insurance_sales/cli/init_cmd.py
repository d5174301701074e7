"""Init command implementation"""

import asyncio

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from insurance_sales.services.container import build_services
from insurance_sales.services.errors import StorageError

console = Console()


def init_command(mode: str | None = None):
    """Verify the configured backend is reachable and report table counts"""
    console.print(Panel.fit(
        "[bold blue]Initializing Insurance Sales backend[/bold blue]",
        border_style="blue"
    ))

    services = build_services(mode)
    backend = mode or services.settings.db_mode
    console.print(f"\n[yellow]1. Connecting to {backend} backend...[/yellow]")
    try:
        status = asyncio.run(services.db.get_status())
        console.print("[green]   [OK] Backend reachable[/green]")
    except (StorageError, ValueError) as e:
        console.print(f"[red]   [FAIL] Backend not reachable: {e}[/red]")
        raise SystemExit(1)

    console.print("\n[yellow]2. Checking tables...[/yellow]")
    table = Table(title=f"Backend: {status['backend']}")
    table.add_column("Table", style="cyan")
    table.add_column("Rows", justify="right")
    for name, count in status["tables"].items():
        table.add_row(name, str(count))
    console.print(table)

    console.print(Panel.fit(
        "[bold green][OK] Initialization complete![/bold green]\n\n"
        "Next steps:\n"
        "1. Review a sale: [cyan]insurance-sales history <sale-id>[/cyan]\n"
        "2. Start the API: [cyan]insurance-sales serve[/cyan]",
        border_style="green"
    ))
