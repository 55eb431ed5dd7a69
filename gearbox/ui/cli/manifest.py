"""
CLI commands for the installation manifest: backups and restore.
"""

from __future__ import annotations

import json

import click

from gearbox.ui.cli.common import get_audit, get_store, handle_errors


@click.group()
def manifest() -> None:
    """Manifest — inspect, back up and restore the installation record."""


@manifest.command("show")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
@handle_errors
def manifest_show(ctx: click.Context, as_json: bool) -> None:
    """Show what the manifest records."""
    store = get_store(ctx)
    data = store.load()

    if as_json:
        click.echo(json.dumps(data.model_dump(mode="json"), indent=2))
        return

    stats = data.installation_stats()
    click.secho(f"\n📒 {store.path}", fg="cyan", bold=True)
    click.echo(f"   Schema {data.schema_version}, updated {data.updated_at}")
    click.echo(f"   Installations: {stats.pop('total')}")
    click.echo(f"   Tools: {stats.pop('tools')}  Bundles: {stats.pop('bundles')}")
    for method, count in sorted(stats.items()):
        click.echo(f"     {method:<16} {count}")
    if data.dependencies:
        click.echo(f"   Shared dependencies: {len(data.dependencies)}")
        for name, dep in sorted(data.dependencies.items()):
            click.echo(f"     {name:<16} {', '.join(dep.dependents) or '-'}")
    click.echo()


@manifest.command("backup")
@click.option("--suffix", default="", help="Label appended to the backup name.")
@click.pass_context
@handle_errors
def manifest_backup(ctx: click.Context, suffix: str) -> None:
    """Snapshot the manifest into the backups directory."""
    path = get_store(ctx).backup(suffix)
    if path is None:
        click.secho("No manifest to back up yet.", fg="yellow")
        return
    click.secho(f"✅ Backup created: {path.name}", fg="green")


@manifest.command("backups")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def manifest_backups(ctx: click.Context, as_json: bool) -> None:
    """List manifest backups, oldest first."""
    names = get_store(ctx).list_backups()

    if as_json:
        click.echo(json.dumps(names, indent=2))
        return

    if not names:
        click.echo("No backups.")
        return
    for name in names:
        click.echo(f"   • {name}")


@manifest.command("restore")
@click.argument("name")
@click.option("--yes", "-y", is_flag=True, help="Don't ask for confirmation.")
@click.pass_context
@handle_errors
def manifest_restore(ctx: click.Context, name: str, yes: bool) -> None:
    """Replace the manifest with backup NAME.

    The current manifest is itself backed up first.
    """
    from gearbox.core.persistence.audit import AuditEntry

    if not yes:
        click.confirm(f"Restore manifest from {name}?", abort=True)

    restored = get_store(ctx).restore_backup(name)
    get_audit(ctx).write(
        AuditEntry(
            operation_type="restore",
            status="ok",
            tools_total=len(restored.installations),
            context={"backup": name},
        )
    )
    click.secho(
        f"✅ Restored {name} ({len(restored.installations)} installations)",
        fg="green",
    )
