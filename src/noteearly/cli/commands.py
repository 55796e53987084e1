"""CLI commands for NoteEarly.

Commands:
- init-db: Create database tables
- sync-plans: Load the plan catalog into the database
- plans: Show the configured plan catalog
- create-super-admin: Create a super-admin account
- serve: Run the API server
"""

import typer
from rich.console import Console
from rich.table import Table

from noteearly.config.app_config import load_app_config
from noteearly.config.plans import list_plans
from noteearly.core.auth_service import create_super_admin as do_create_super_admin
from noteearly.core.errors import AppError
from noteearly.core.subscription_service import sync_plans as do_sync_plans
from noteearly.db.database import get_session, init_db as do_init_db
from noteearly.utils.log_config import configure_logging

app = typer.Typer(
    name="noteearly",
    help="NoteEarly reading comprehension platform.",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main(
    json_logs: bool = typer.Option(False, "--json-logs", help="Render logs as JSON"),
) -> None:
    configure_logging("json" if json_logs else load_app_config().log_format)


@app.command(name="init-db")
def init_db(
    database_url: str | None = typer.Option(None, "--database-url", help="Override the configured database URL"),
) -> None:
    """Create database tables if they don't exist."""
    engine = do_init_db(database_url)
    console.print("[green]✓ Database initialized[/green]")
    console.print(f"  [dim]url:[/dim] {engine.url.render_as_string(hide_password=True)}")


@app.command(name="sync-plans")
def sync_plans(
    database_url: str | None = typer.Option(None, "--database-url", help="Override the configured database URL"),
) -> None:
    """Load the plan catalog (data/config/plans_v1.yaml) into the database."""
    do_init_db(database_url)
    with get_session() as session:
        rows = do_sync_plans(session)
        synced = [(r.tier, r.id) for r in rows]

    console.print(f"[green]✓ Synced {len(synced)} plans[/green]")
    for tier, plan_id in synced:
        console.print(f"  [dim]{tier}:[/dim] {plan_id}")


@app.command()
def plans() -> None:
    """Show the configured plan catalog."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("Tier")
    table.add_column("Plan ID")
    table.add_column("Price", justify="right")
    table.add_column("Students", justify="right")
    table.add_column("Modules", justify="right")
    table.add_column("Custom/period", justify="right")

    for plan in list_plans():
        table.add_row(
            plan.tier,
            plan.id,
            f"{plan.price}/{plan.interval}",
            str(plan.student_limit),
            str(plan.module_limit),
            str(plan.custom_module_limit),
        )
    console.print(table)


@app.command(name="create-super-admin")
def create_super_admin(
    email: str = typer.Option(..., "--email", "-e", help="Login email"),
    full_name: str = typer.Option(..., "--name", "-n", help="Full name"),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True, confirmation_prompt=True),
    database_url: str | None = typer.Option(None, "--database-url", help="Override the configured database URL"),
) -> None:
    """Create a super-admin account."""
    do_init_db(database_url)
    try:
        with get_session() as session:
            profile = do_create_super_admin(session, email, password, full_name)
            profile_id = profile.id
    except AppError as e:
        console.print(f"[red]✗ {e.message}[/red]")
        raise typer.Exit(code=1)

    console.print("[green]✓ Super-admin created[/green]")
    console.print(f"  [dim]profile_id:[/dim] {profile_id}")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Run the API server with uvicorn."""
    import uvicorn

    config = load_app_config()
    console.print(f"[blue]Serving NoteEarly API on http://{host}:{port}{config.api_prefix}[/blue]")
    uvicorn.run("noteearly.web.api:create_app", factory=True, host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
