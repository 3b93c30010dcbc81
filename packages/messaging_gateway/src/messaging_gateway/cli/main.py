"""
Messaging Gateway CLI

Command-line interface for messaging gateway administration.

Commands:
- init-db: Create gateway tables (development; production uses alembic)
- set-platform-credentials: Store provider-level credentials
- create-package: Add a message package to the catalog
- grant-addon: Activate the messaging addon for a tenant
- sync-templates: Pull approved templates from the provider
- send-test: Send a test message through the full dispatch path
- list-conversations: List conversations for a tenant
"""

import asyncio
from typing import Optional
from uuid import UUID

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from messaging_gateway.errors import GatewayError

app = typer.Typer(
    name="gateway-cli",
    help="Messaging Gateway CLI",
)

console = Console()


def get_db():
    """Get database session."""
    from basecore.db import new_session
    return new_session()


def get_vault():
    """Get credential vault (exits when the master secret is missing)."""
    from messaging_gateway.security.vault import CredentialVault

    try:
        return CredentialVault.from_settings()
    except GatewayError as e:
        rprint(f"[red]{e.message}[/red]")
        raise typer.Exit(1)


def parse_uuid(value: str, label: str = "tenant ID") -> UUID:
    try:
        return UUID(value)
    except ValueError:
        rprint(f"[red]Invalid {label}: {value}[/red]")
        raise typer.Exit(1)


@app.command()
def init_db():
    """
    Create all gateway tables on DATABASE_URL.
    """
    from basecore.db import get_engine
    from messaging_gateway.persistence.models import GatewayBase

    GatewayBase.metadata.create_all(get_engine())
    rprint("[green]Gateway tables created[/green]")


@app.command()
def set_platform_credentials(
    api_key: Optional[str] = typer.Option(None, help="Provider API key (will be encrypted)"),
    app_name: Optional[str] = typer.Option(None, help="Provider app name"),
    app_id: Optional[str] = typer.Option(None, help="Provider app ID (partner API)"),
    sender_phone: Optional[str] = typer.Option(None, help="Sender phone number"),
    partner_email: Optional[str] = typer.Option(None, help="Partner account email"),
    partner_password: Optional[str] = typer.Option(None, help="Partner account password (will be encrypted)"),
    enabled: Optional[bool] = typer.Option(None, "--enabled/--disabled", help="Globally enable or disable messaging"),
):
    """
    Store provider-level credentials in the platform credential store.

    Only the options given are changed.
    """
    from messaging_gateway.service import credentials as keys
    from messaging_gateway.service.credentials import CredentialStore

    vault = get_vault()
    db = get_db()

    try:
        store = CredentialStore(db, vault)
        store.set_platform_credentials(
            {
                keys.API_KEY: api_key,
                keys.APP_NAME: app_name,
                keys.APP_ID: app_id,
                keys.SENDER_PHONE: sender_phone,
                keys.PARTNER_EMAIL: partner_email,
                keys.PARTNER_PASSWORD: partner_password,
                keys.GLOBAL_ENABLED: enabled,
            }
        )

        status = store.platform_status()
        rprint("[green]Platform credentials saved[/green]")
        for key, value in status.items():
            rprint(f"  {key}: {value}")

    finally:
        db.close()


@app.command()
def create_package(
    name: str = typer.Argument(..., help="Package name"),
    message_limit: int = typer.Argument(..., help="Messages included"),
    price: int = typer.Argument(..., help="Price in cents"),
    sort_order: int = typer.Option(0, help="Catalog position"),
):
    """
    Add a message package to the catalog.
    """
    if message_limit <= 0:
        rprint("[red]message_limit must be positive[/red]")
        raise typer.Exit(1)

    db = get_db()

    try:
        from messaging_gateway.persistence.repo import GatewayRepository

        package = GatewayRepository(db).create_package(name, message_limit, price, sort_order)
        db.commit()

        rprint(f"[green]Package created[/green]")
        rprint(f"  ID: {package.id}")
        rprint(f"  Messages: {package.message_limit}")

    finally:
        db.close()


@app.command()
def grant_addon(
    tenant_id: str = typer.Argument(..., help="Tenant UUID"),
    trial: bool = typer.Option(False, help="Grant as a trial if the tenant never had one"),
):
    """
    Activate the messaging addon for a tenant.
    """
    tenant_uuid = parse_uuid(tenant_id)
    db = get_db()

    try:
        from messaging_gateway.service.entitlement import EntitlementGate

        try:
            addon = EntitlementGate(db).activate_addon(tenant_uuid, with_trial=trial)
        except GatewayError as e:
            rprint(f"[red]{e.message}[/red]")
            raise typer.Exit(1)

        rprint(f"[green]Addon {addon.addon_key} is {addon.status}[/green]")
        if addon.trial_ends_at:
            rprint(f"  Trial ends: {addon.trial_ends_at:%Y-%m-%d %H:%M}")

    finally:
        db.close()


@app.command()
def sync_templates(
    tenant_id: str = typer.Argument(..., help="Tenant UUID"),
):
    """
    Pull approved templates from the provider into the tenant's templates.
    """
    tenant_uuid = parse_uuid(tenant_id)
    vault = get_vault()
    db = get_db()

    try:
        from messaging_gateway.providers import get_provider
        from messaging_gateway.service.credentials import CredentialStore
        from messaging_gateway.service.templates import TemplateLifecycleManager

        async def sync():
            provider = get_provider()
            try:
                manager = TemplateLifecycleManager(db, provider, CredentialStore(db, vault))
                return await manager.sync_from_provider(tenant_uuid)
            finally:
                await provider.close()

        try:
            result = asyncio.run(sync())
        except GatewayError as e:
            rprint(f"[red]Sync failed: {e.message}[/red]")
            raise typer.Exit(1)

        rprint(f"[green]Templates synced[/green]")
        rprint(f"  Inserted: {result.inserted}")
        rprint(f"  Updated: {result.updated}")

    finally:
        db.close()


@app.command()
def send_test(
    tenant_id: str = typer.Argument(..., help="Tenant UUID"),
    to: str = typer.Argument(..., help="Recipient phone number"),
    text: str = typer.Option("Mensaje de prueba", help="Message text"),
):
    """
    Send a test message.

    Goes through entitlement, quota and logging like any other send.
    """
    tenant_uuid = parse_uuid(tenant_id)
    vault = get_vault()
    db = get_db()

    try:
        from messaging_gateway.persistence.models import MessageKind
        from messaging_gateway.providers import get_provider
        from messaging_gateway.service.dispatcher import MessageDispatcher

        async def send():
            provider = get_provider()
            try:
                dispatcher = MessageDispatcher(db, provider, vault)
                return await dispatcher.send_session(tenant_uuid, to, text, kind=MessageKind.MANUAL)
            finally:
                await provider.close()

        result = asyncio.run(send())

        if result.success:
            rprint(f"[green]Message sent successfully![/green]")
            rprint(f"  Message ID: {result.message_id}")
        else:
            rprint(f"[red]Failed to send message[/red]")
            rprint(f"  Error: {result.error}")
            rprint(f"  Code: {result.code}")
            raise typer.Exit(1)

    finally:
        db.close()


@app.command()
def list_conversations(
    tenant_id: str = typer.Argument(..., help="Tenant UUID"),
    search: Optional[str] = typer.Option(None, help="Match phone or customer name"),
    limit: int = typer.Option(20, help="Maximum number of conversations to show"),
):
    """
    List conversations for a tenant.
    """
    tenant_uuid = parse_uuid(tenant_id)
    db = get_db()

    try:
        from messaging_gateway.routing.conversation import ConversationStore

        conversations = ConversationStore(db).list_conversations(tenant_uuid, search=search, limit=limit)

        if not conversations:
            rprint("[yellow]No conversations found[/yellow]")
            raise typer.Exit(0)

        table = Table(title=f"Conversations for tenant {tenant_id[:8]}...")
        table.add_column("ID", style="dim")
        table.add_column("Phone")
        table.add_column("Name")
        table.add_column("Unread")
        table.add_column("Preview")
        table.add_column("Last Message")

        for conv in conversations:
            table.add_row(
                str(conv.id)[:8] + "...",
                conv.customer_phone,
                conv.customer_name or "-",
                str(conv.unread_count),
                (conv.last_message_preview or "")[:40],
                conv.last_message_at.strftime("%Y-%m-%d %H:%M") if conv.last_message_at else "-",
            )

        console.print(table)

    finally:
        db.close()


if __name__ == "__main__":
    app()
