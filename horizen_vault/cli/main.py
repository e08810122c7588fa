"""Horizen Vault CLI - manage the secrets vault and encrypted backups."""

import json
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

import typer
from rich.console import Console
from rich.table import Table

from .. import __version__
from ..config.settings import get_settings
from ..utils.logging import setup_logging
from ..vault import (
    PROVIDER_LABELS,
    PROVIDERS,
    DecryptionError,
    ExportError,
    ImportValidationError,
    IntegrityError,
    KeyRotationError,
    PasswordRequiredError,
    VaultError,
    VaultLockedError,
    VaultManager,
)

app = typer.Typer(
    name="horizen-vault",
    help="Secrets vault and encrypted backups for the Horizen start page.",
    no_args_is_help=True,
)
protect_app = typer.Typer(help="Manage password protection.", no_args_is_help=True)
secrets_app = typer.Typer(help="Manage stored provider API keys.", no_args_is_help=True)
app.add_typer(protect_app, name="protect")
app.add_typer(secrets_app, name="secrets")

console = Console()


@app.callback()
def callback(
    ctx: typer.Context,
    store: Optional[Path] = typer.Option(
        None,
        "--store", "-s",
        envvar="HORIZEN_VAULT_STORE",
        help="Vault store file (default: ~/.local/share/horizen_vault/store.json)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Secrets vault and encrypted backups for the Horizen start page."""
    settings = get_settings()
    setup_logging(level="DEBUG" if verbose else settings.log_level, log_file=settings.log_file)
    ctx.obj = store or settings.store_path


@contextmanager
def handle_vault_errors() -> Iterator[None]:
    """Turn vault errors into a message and exit code 1."""
    try:
        yield
    except VaultLockedError:
        console.print("[red]Session is locked. Unlock with your password first.[/red]")
        raise typer.Exit(1)
    except DecryptionError:
        console.print("[red]Incorrect password or corrupted data.[/red]")
        raise typer.Exit(1)
    except IntegrityError:
        console.print("[red]File integrity check failed. The file may have been modified.[/red]")
        raise typer.Exit(1)
    except (ImportValidationError, PasswordRequiredError, ExportError, KeyRotationError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    except VaultError as e:
        console.print(f"[red]Vault error: {e}[/red]")
        raise typer.Exit(1)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


def open_vault(ctx: typer.Context, startup: bool = True) -> VaultManager:
    """Open the vault for the selected store file."""
    vm = VaultManager.open(ctx.obj, get_settings().vault)
    if startup:
        with handle_vault_errors():
            if vm.startup():
                console.print("[dim]Encrypted legacy plaintext secrets.[/dim]")
    return vm


def unlock_vault(vm: VaultManager, password: Optional[str]) -> None:
    """Unlock a protected vault, prompting for the password if needed."""
    if not vm.is_password_protection_enabled():
        return
    if password is None:
        password = typer.prompt("Vault password", hide_input=True)
    if not vm.unlock_with_password(password):
        console.print("[red]Incorrect password.[/red]")
        raise typer.Exit(1)


def prompt_new_password(vm: VaultManager, password: Optional[str], label: str = "New password") -> str:
    """Ask for a new password and report its strength."""
    if password is None:
        password = typer.prompt(label, hide_input=True, confirmation_prompt=True)

    check = vm.validate_password_strength(password)
    if not check.valid:
        console.print(f"[red]{check.message}[/red]")
        raise typer.Exit(1)
    if not check.strong:
        console.print(f"[yellow]{check.message}[/yellow]")
    return password


def mask_secret(value: str) -> str:
    """Show only the ends of a secret."""
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:3]}...{value[-4:]}"


def check_provider(provider: str) -> str:
    """Validate a provider name."""
    provider = provider.lower()
    if provider not in PROVIDERS:
        console.print(f"[red]Error: Unknown provider '{provider}'. Choose from: {', '.join(PROVIDERS)}[/red]")
        raise typer.Exit(1)
    return provider


def load_app_data(path: Optional[Path]) -> dict[str, Any]:
    """Read an application data file ({"chats", "settings", "widgets"})."""
    if path is None:
        return {}
    if not path.exists():
        console.print(f"[red]Error: File not found: {path}[/red]")
        raise typer.Exit(1)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except ValueError as e:
        console.print(f"[red]Error: {path} is not valid JSON: {e}[/red]")
        raise typer.Exit(1)
    if not isinstance(data, dict):
        console.print(f"[red]Error: {path} must contain a JSON object[/red]")
        raise typer.Exit(1)
    return data


@app.command()
def status(ctx: typer.Context):
    """
    Show protection and session status.
    """
    from ..backup import SnapshotStore

    vm = open_vault(ctx)
    info = vm.status()

    table = Table(title="Vault Status", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")

    table.add_row("Store", str(ctx.obj))
    table.add_row(
        "Password protection",
        "[green]enabled[/green]" if info.protection_enabled else "[yellow]disabled[/yellow]",
    )
    table.add_row("Encrypted secrets", "present" if info.has_encrypted_secrets else "none")
    table.add_row("Session timeout", f"{vm.config.session_timeout_minutes} min")
    table.add_row("Snapshots", str(len(SnapshotStore(vm.store).recent())))

    console.print(table)


# Password protection


@protect_app.command("enable")
def protect_enable(
    ctx: typer.Context,
    password: Optional[str] = typer.Option(None, "--password", "-p", help="New password (prompted if omitted)"),
):
    """
    Enable password protection.

    Existing secrets are re-encrypted under a key derived from the password.
    """
    vm = open_vault(ctx)
    if vm.is_password_protection_enabled():
        console.print("[yellow]Password protection is already enabled.[/yellow]")
        raise typer.Exit(1)

    password = prompt_new_password(vm, password)
    with handle_vault_errors():
        vm.setup_password(password)

    console.print("[green]Password protection enabled.[/green]")


@protect_app.command("disable")
def protect_disable(
    ctx: typer.Context,
    password: Optional[str] = typer.Option(None, "--password", "-p", help="Current password"),
):
    """
    Disable password protection.

    Secrets are re-encrypted under a device key stored next to them.
    """
    vm = open_vault(ctx)
    if not vm.is_password_protection_enabled():
        console.print("[yellow]Password protection is not enabled.[/yellow]")
        return

    unlock_vault(vm, password)
    with handle_vault_errors():
        vm.disable_password_protection()

    console.print("[green]Password protection disabled.[/green]")


@protect_app.command("change-password")
def protect_change_password(
    ctx: typer.Context,
    old_password: Optional[str] = typer.Option(None, "--old-password", help="Current password"),
    new_password: Optional[str] = typer.Option(None, "--new-password", help="New password"),
):
    """
    Change the vault password.
    """
    vm = open_vault(ctx)
    if not vm.is_password_protection_enabled():
        console.print("[red]Error: Password protection is not enabled.[/red]")
        raise typer.Exit(1)

    if old_password is None:
        old_password = typer.prompt("Current password", hide_input=True)
    new_password = prompt_new_password(vm, new_password)

    with handle_vault_errors():
        changed = vm.change_password(old_password, new_password)

    if not changed:
        console.print("[red]Incorrect password.[/red]")
        raise typer.Exit(1)

    console.print("[green]Password changed.[/green]")


@protect_app.command("reset")
def protect_reset(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """
    Reset a forgotten password.

    Stored secrets cannot be recovered and are deleted.
    """
    vm = open_vault(ctx, startup=False)
    if not yes:
        typer.confirm("This deletes all stored API keys. Continue?", abort=True)

    with handle_vault_errors():
        vm.reset_protection()

    console.print("[yellow]Password protection reset. Stored API keys were deleted.[/yellow]")


# Secrets


@secrets_app.command("list")
def secrets_list(
    ctx: typer.Context,
    password: Optional[str] = typer.Option(None, "--password", "-p", help="Vault password"),
):
    """
    List stored API keys (masked).
    """
    vm = open_vault(ctx)
    unlock_vault(vm, password)

    with handle_vault_errors():
        secrets = vm.get_secrets()

    table = Table(title="Stored API Keys")
    table.add_column("Provider", style="cyan")
    table.add_column("Key")

    for provider in PROVIDERS:
        value = secrets.get(provider)
        table.add_row(PROVIDER_LABELS[provider], mask_secret(value) if value else "[dim]not set[/dim]")

    console.print(table)


@secrets_app.command("set")
def secrets_set(
    ctx: typer.Context,
    provider: str = typer.Argument(..., help="Provider (openai, anthropic, gemini)"),
    value: Optional[str] = typer.Option(None, "--value", help="API key (prompted if omitted)"),
    password: Optional[str] = typer.Option(None, "--password", "-p", help="Vault password"),
):
    """
    Store an API key.
    """
    provider = check_provider(provider)
    vm = open_vault(ctx)
    unlock_vault(vm, password)

    if value is None:
        value = typer.prompt(f"{PROVIDER_LABELS[provider]} API key", hide_input=True)

    with handle_vault_errors():
        vm.update_secret(provider, value)

    console.print(f"[green]Saved {PROVIDER_LABELS[provider]} API key.[/green]")


@secrets_app.command("clear")
def secrets_clear(
    ctx: typer.Context,
    provider: str = typer.Argument(..., help="Provider (openai, anthropic, gemini)"),
    password: Optional[str] = typer.Option(None, "--password", "-p", help="Vault password"),
):
    """
    Remove an API key.
    """
    provider = check_provider(provider)
    vm = open_vault(ctx)
    unlock_vault(vm, password)

    with handle_vault_errors():
        vm.clear_secret(provider)

    console.print(f"Removed {PROVIDER_LABELS[provider]} API key.")


# Backups


@app.command("export")
def export_command(
    ctx: typer.Context,
    output: Path = typer.Argument(..., help="Output file or directory"),
    data: Optional[Path] = typer.Option(
        None,
        "--data", "-d",
        help="Application data JSON file (chats, settings, widgets)",
    ),
    api_keys: bool = typer.Option(False, "--api-keys", help="Include API keys (requires encryption)"),
    encrypt: bool = typer.Option(True, "--encrypt/--no-encrypt", help="Encrypt the backup"),
    password: Optional[str] = typer.Option(None, "--password", help="Backup password"),
    vault_password: Optional[str] = typer.Option(None, "--vault-password", help="Vault password"),
):
    """
    Export an encrypted backup.
    """
    from ..backup import ExportSelection, export_bundle, write_export

    app_data = load_app_data(data)
    selection = ExportSelection.everything(app_data, set(PROVIDERS) if api_keys else None)

    if api_keys and not encrypt:
        console.print("[red]Error: API keys must be exported with encryption.[/red]")
        raise typer.Exit(1)

    vm = open_vault(ctx)
    if api_keys:
        unlock_vault(vm, vault_password)

    if encrypt and password is None:
        password = typer.prompt("Backup password", hide_input=True, confirmation_prompt=True)

    with handle_vault_errors():
        bundle = export_bundle(vm, app_data, selection, password if encrypt else None)
        path = write_export(output, bundle)

    sections = ", ".join(bundle.section_names) or "nothing"
    console.print(f"[green]Exported {sections} to {path}[/green]")


@app.command("import")
def import_command(
    ctx: typer.Context,
    input_file: Path = typer.Argument(..., help="Backup file"),
    data: Optional[Path] = typer.Option(
        None,
        "--data", "-d",
        help="Application data JSON file to merge imported sections into",
    ),
    mode: str = typer.Option("merge", "--mode", "-m", help="API key import mode: merge or replace"),
    password: Optional[str] = typer.Option(None, "--password", help="Backup password"),
    vault_password: Optional[str] = typer.Option(None, "--vault-password", help="Vault password"),
):
    """
    Import a backup.

    API keys go into the vault. Other sections are merged into the --data
    file after a snapshot of its previous contents is saved.
    """
    from ..backup import SnapshotStore, apply_sections, import_bundle, parse_bundle
    from ..backup.importer import detect_format

    if not input_file.exists():
        console.print(f"[red]Error: File not found: {input_file}[/red]")
        raise typer.Exit(1)

    text = input_file.read_text(encoding="utf-8")
    app_data = load_app_data(data) if data else None

    with handle_vault_errors():
        parsed = parse_bundle(text)
        detect_format(parsed)

    sealed = bool(parsed.get("encryptedSections")) or parsed.get("encrypted") is True
    if sealed and password is None:
        password = typer.prompt("Backup password", hide_input=True)

    vm = open_vault(ctx)
    unlock_vault(vm, vault_password)

    with handle_vault_errors():
        result = import_bundle(
            vm,
            text,
            password=password,
            mode=mode,
            snapshot_store=SnapshotStore(vm.store) if app_data is not None else None,
            app_data=app_data,
        )

    if result.api_keys:
        console.print(f"API keys: {', '.join(result.api_keys)}")

    if result.sections:
        if data is not None and app_data is not None:
            updated = apply_sections(app_data, result.sections)
            data.write_text(json.dumps(updated, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
            console.print(f"Updated {data}: {', '.join(result.sections)}")
        else:
            console.print(
                f"[yellow]Skipped {', '.join(result.sections)} (no --data file given)[/yellow]"
            )

    if result.snapshot_key:
        console.print(f"[dim]Snapshot saved: {result.snapshot_key}[/dim]")

    console.print(f"[green]Import complete ({result.format_version} backup).[/green]")


@app.command()
def migrate(
    ctx: typer.Context,
    password: Optional[str] = typer.Option(None, "--password", "-p", help="Vault password"),
):
    """
    Encrypt legacy plaintext secrets.
    """
    vm = open_vault(ctx, startup=False)
    unlock_vault(vm, password)

    with handle_vault_errors():
        migrated = vm.migrate_legacy_secrets()

    if migrated:
        console.print("[green]Legacy secrets encrypted.[/green]")
    else:
        console.print("Nothing to migrate.")


@app.command()
def version():
    """Show version information."""
    console.print(f"Horizen Vault v{__version__}")
    console.print("Secrets vault and session security")


def main():
    """Entry point for the CLI."""
    from dotenv import load_dotenv

    load_dotenv()
    app()


if __name__ == "__main__":
    main()
