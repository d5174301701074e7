"""Main CLI application"""

import asyncio
import json
from datetime import date
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from insurance_sales.cli.init_cmd import init_command
from insurance_sales.models import (
    Actor,
    Beneficiary,
    Client,
    Company,
    Plan,
    Sale,
    UserRole,
)
from insurance_sales.services import health_declaration
from insurance_sales.services.container import LifecycleServices, build_services
from insurance_sales.services.documents import GenerationResult
from insurance_sales.services.errors import DocumentGenerationError, SaleLifecycleError
from insurance_sales.services.placeholders import PlaceholderResolver
from insurance_sales.services.template_engine import TemplateEngine
from insurance_sales.utils.config import get_settings
from insurance_sales.utils.logging import configure_logging

app = typer.Typer(
    name="insurance-sales",
    help="Insurance sale audit, document generation and signature workflow",
    add_completion=False,
)

console = Console(force_terminal=True)

USER_OPTION = typer.Option("cli", "--user", "-u", help="Acting user ID")
ROLE_OPTION = typer.Option("auditor", "--role", "-r", help="Acting user role")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")):
    configure_logging("DEBUG" if verbose else get_settings().log_level)


def _actor(user: str, role: str) -> Actor:
    try:
        return Actor(user_id=user, role=UserRole(role))
    except ValueError:
        console.print(f"[red]Unknown role '{role}'[/red]")
        console.print("Roles: " + ", ".join(r.value for r in UserRole if r != UserRole.SYSTEM))
        raise typer.Exit(1)


def _run(coro_factory):
    """Run an async action against fresh services, printing lifecycle errors."""
    services = build_services()
    try:
        return asyncio.run(coro_factory(services))
    except SaleLifecycleError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


def _print_generation(services: LifecycleServices, result: GenerationResult):
    title = "Regenerated documents" if result.regenerated else "Generated documents"
    table = Table(title=title)
    table.add_column("Name", style="cyan")
    table.add_column("Type")
    table.add_column("Signature", justify="center")
    table.add_column("Beneficiary")
    for doc in result.documents:
        table.add_row(
            doc.name,
            doc.document_type.value,
            "yes" if doc.requires_signature else "-",
            doc.beneficiary_id or "",
        )
    console.print(table)

    for link in result.signature_links:
        console.print(f"  [green]link[/green] {link.recipient_type.value}: {services.signatures.link_url(link)}")
    if result.preserved_document_ids:
        console.print(f"[dim]Preserved {len(result.preserved_document_ids)} signed/final document(s)[/dim]")
    for name, markers in result.unresolved.items():
        console.print(f"[yellow]Unresolved in {name}: {', '.join(markers)}[/yellow]")
    for warning in result.warnings:
        console.print(f"[yellow]Warning: {warning}[/yellow]")
    if result.status:
        console.print(f"\nSale status: [bold]{result.status.value}[/bold]")


@app.command("init")
def init(mode: Optional[str] = typer.Option(None, "--mode", "-m", help="Override DB_MODE")):
    """Verify the backend and show table counts"""
    init_command(mode)


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Port"),
):
    """Start the HTTP API"""
    import uvicorn

    from insurance_sales.api.app import create_app

    uvicorn.run(create_app(), host=host, port=port)


@app.command("history")
def history(sale_id: str = typer.Argument(..., help="Sale ID")):
    """Show the workflow history of a sale"""
    transitions = _run(lambda s: s.workflow.history(sale_id))
    if not transitions:
        console.print("[yellow]No history recorded[/yellow]")
        return

    table = Table(title=f"Sale {sale_id}")
    table.add_column("When", style="dim")
    table.add_column("From")
    table.add_column("To", style="cyan")
    table.add_column("By")
    table.add_column("Reason")
    for t in transitions:
        table.add_row(
            t.created_at.strftime("%d/%m/%Y %H:%M") if t.created_at else "",
            t.previous_status.value if t.previous_status else "",
            t.new_status.value,
            t.changed_by,
            t.change_reason,
        )
    console.print(table)


@app.command("approve")
def approve(
    sale_id: str = typer.Argument(..., help="Sale ID"),
    notes: Optional[str] = typer.Option(None, "--notes", "-n", help="Audit notes"),
    user: str = USER_OPTION,
    role: str = ROLE_OPTION,
):
    """Approve a sale for document generation"""
    actor = _actor(user, role)
    sale = _run(lambda s: s.workflow.approve(sale_id, actor, notes=notes))
    console.print(f"[green][OK] Sale {sale.id} -> {sale.status.value}[/green]")
    console.print(f"Contract start date: {sale.contract_start_date}")


@app.command("reject")
def reject(
    sale_id: str = typer.Argument(..., help="Sale ID"),
    notes: str = typer.Option(..., "--notes", "-n", help="Reason for rejection"),
    user: str = USER_OPTION,
    role: str = ROLE_OPTION,
):
    """Reject a sale back to the salesperson"""
    actor = _actor(user, role)
    sale = _run(lambda s: s.workflow.reject(sale_id, actor, notes=notes))
    console.print(f"[green][OK] Sale {sale.id} -> {sale.status.value}[/green]")


@app.command("request-info")
def request_info(
    sale_id: str = typer.Argument(..., help="Sale ID"),
    notes: str = typer.Option(..., "--notes", "-n", help="Information needed"),
    user: str = USER_OPTION,
    role: str = ROLE_OPTION,
):
    """Ask the salesperson for more information"""
    actor = _actor(user, role)
    sale = _run(lambda s: s.workflow.request_info(sale_id, actor, notes=notes))
    console.print(f"[green][OK] Sale {sale.id} -> {sale.status.value} ({sale.audit_status.value})[/green]")


def _generate(sale_id: str, actor: Actor, regenerate: bool):
    services = build_services()
    action = services.documents.regenerate if regenerate else services.documents.generate
    try:
        result = asyncio.run(action(sale_id, actor))
    except DocumentGenerationError as e:
        console.print(f"[red]Error: {e}[/red]")
        _print_generation(services, e.result)
        raise typer.Exit(1)
    except SaleLifecycleError as e:
        console.print(f"[red]Error: {e}[/red]")
        result = getattr(e, "result", None)
        if result is not None:
            _print_generation(services, result)
        raise typer.Exit(1)
    _print_generation(services, result)


@app.command("generate")
def generate(
    sale_id: str = typer.Argument(..., help="Sale ID"),
    user: str = USER_OPTION,
    role: str = ROLE_OPTION,
):
    """Generate documents and signature links for an approved sale"""
    _generate(sale_id, _actor(user, role), regenerate=False)


@app.command("regenerate")
def regenerate(
    sale_id: str = typer.Argument(..., help="Sale ID"),
    user: str = USER_OPTION,
    role: str = ROLE_OPTION,
):
    """Rebuild pending documents; signed and final ones are kept"""
    _generate(sale_id, _actor(user, role), regenerate=True)


@app.command("ddjj-decode")
def ddjj_decode(
    text: str = typer.Argument(..., help="Stored health declaration text"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Decode a stored health declaration into its placeholders"""
    declaration = health_declaration.decode(text)
    values = health_declaration.to_placeholders(declaration)

    if json_output:
        print(json.dumps(values, ensure_ascii=False, indent=2))
        return

    table = Table(title="Declaración jurada de salud")
    table.add_column("Placeholder", style="cyan")
    table.add_column("Value")
    for key, value in values.items():
        table.add_row(key, value)
    console.print(table)


@app.command("render")
def render(
    template_file: Path = typer.Argument(..., exists=True, readable=True, help="Template HTML file"),
    context_file: Path = typer.Argument(..., exists=True, readable=True, help="JSON context file"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write rendered HTML here"),
):
    """Render a template against a JSON context.

    The context holds "sale", "client", "plan", "company", "beneficiaries",
    "responses" and an optional "reference_date" (YYYY-MM-DD).
    """
    context = json.loads(context_file.read_text(encoding="utf-8"))
    sale = Sale(**context.get("sale", {}))
    beneficiaries = [
        Beneficiary(**{"sale_id": sale.id, **b}) for b in context.get("beneficiaries", [])
    ]
    reference = context.get("reference_date")
    settings = get_settings()
    resolver = PlaceholderResolver(
        sale=sale,
        client=Client(**context["client"]) if context.get("client") else None,
        plan=Plan(**context["plan"]) if context.get("plan") else None,
        company=Company(**context["company"]) if context.get("company") else None,
        beneficiaries=beneficiaries,
        responses=context.get("responses", {}),
        reference_date=date.fromisoformat(reference) if reference else date.today(),
        signature_base_url=settings.signature_base_url,
        currency_symbol=settings.currency_symbol,
    )
    result = TemplateEngine().render(template_file.read_text(encoding="utf-8"), resolver)

    if output:
        output.write_text(result.content, encoding="utf-8")
        console.print(f"[green][OK] Rendered to {output}[/green]")
    else:
        console.print(Panel(Text(result.content), title=template_file.name, border_style="blue"))
    if result.unresolved:
        console.print(f"[yellow]Unresolved: {', '.join(result.unresolved)}[/yellow]")


if __name__ == "__main__":
    app()
