"""
CLI commands for removing tools.

Thin wrappers over ``gearbox.core.services.uninstall``.
"""

from __future__ import annotations

import functools
import json
import sys
from collections.abc import Callable
from typing import Any

import click

from gearbox.core.services.uninstall.planning import (
    DEFAULT_BACKUP_SUFFIX,
    SAFETY_LEVELS,
    UninstallPlan,
)
from gearbox.ui.cli.common import get_audit, get_catalog, get_store, handle_errors

_WARNING_COLORS = {"info": "cyan", "warning": "yellow", "error": "red"}


def _removal_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by ``uninstall`` and ``uninstall-plan``."""
    decorators = [
        click.argument("names", nargs=-1, required=True),
        click.option(
            "--safety",
            type=click.Choice(SAFETY_LEVELS),
            default="standard",
            help="Which orphaned dependencies a cascade may remove.",
        ),
        click.option("--cascade", is_flag=True, help="Also remove dependencies nothing else needs."),
        click.option("--force", is_flag=True, help="Remove even if other tools depend on it."),
        click.option("--remove-config", is_flag=True, help="Also delete recorded config files."),
        click.option(
            "--bundle-contents",
            "remove_bundle_contents",
            is_flag=True,
            help="Treat bundle names as every tool they contain.",
        ),
        click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON."),
    ]
    return functools.reduce(lambda f, d: d(f), reversed(decorators), fn)


def _build_plan(ctx: click.Context, names: tuple[str, ...], **options: Any) -> UninstallPlan:
    from gearbox.core.services.uninstall.planning import RemovalOptions, RemovalPlanner

    planner = RemovalPlanner(get_catalog(ctx), get_store(ctx).load())
    return planner.plan(list(names), RemovalOptions(**options))


def _print_plan(plan: UninstallPlan) -> None:
    click.secho("\n🗑  Uninstall plan", fg="cyan", bold=True)

    for block in plan.blocking:
        click.secho(f"   ⛔ {block.message}", fg="red")

    for action in plan.to_remove:
        tag = " (cascade)" if action.cascaded else ""
        click.secho(f"   - {action.target}{tag}", fg="white", bold=True, nl=False)
        click.echo(f"  [{action.method}] {action.reason}")
        if action.description:
            click.echo(f"       {action.description}")
        for path in action.paths:
            click.echo(f"       {path}")

    for keep in plan.to_keep:
        click.secho(f"   = {keep.target}", fg="green", nl=False)
        click.echo(f"  kept: {'; '.join(keep.reasons)}")

    for dep in plan.dependencies:
        if dep.action == "preserve":
            click.echo(f"   ~ {dep.dependency}: {dep.reason}")
        elif dep.action == "untrack":
            click.echo(f"   ? {dep.dependency}: {dep.reason}")

    for warn in plan.warnings:
        click.secho(f"   ⚠️  {warn.target}: {warn.message}", fg=_WARNING_COLORS[warn.level])

    if not plan.to_remove and not plan.blocked:
        click.echo("   Nothing to remove.")
    click.echo()


@click.command("uninstall-plan")
@_removal_options
@click.pass_context
@handle_errors
def uninstall_plan(
    ctx: click.Context,
    names: tuple[str, ...],
    as_json: bool,
    **options: Any,
) -> None:
    """Show what uninstalling NAMES would remove, without removing it."""
    plan = _build_plan(ctx, names, **options)

    if as_json:
        data = plan.model_dump(mode="json")
        data["summary"] = plan.summary()
        click.echo(json.dumps(data, indent=2))
    else:
        _print_plan(plan)

    if plan.blocked:
        sys.exit(1)


@click.command()
@_removal_options
@click.option("--dry-run", is_flag=True, help="Report what would be removed, remove nothing.")
@click.option("--backup/--no-backup", default=True, help="Back up the manifest before removal.")
@click.option(
    "--backup-suffix",
    default=DEFAULT_BACKUP_SUFFIX,
    show_default=True,
    help="Label for the pre-removal backup.",
)
@click.option("--yes", "-y", is_flag=True, help="Don't ask for confirmation.")
@click.pass_context
@handle_errors
def uninstall(
    ctx: click.Context,
    names: tuple[str, ...],
    as_json: bool,
    dry_run: bool,
    backup: bool,
    backup_suffix: str,
    yes: bool,
    **options: Any,
) -> None:
    """Remove tools installed by gearbox.

    Examples:

        gearbox uninstall fd

        gearbox uninstall ripgrep --cascade --safety conservative

        gearbox uninstall essential --bundle-contents --dry-run
    """
    from gearbox.core.services.uninstall.execution import RemovalExecutor

    plan = _build_plan(
        ctx, names, dry_run=dry_run, backup=backup, backup_suffix=backup_suffix, **options
    )

    if not as_json:
        _print_plan(plan)

    if plan.blocked:
        if as_json:
            click.echo(json.dumps({"blocked": [b.model_dump() for b in plan.blocking]}, indent=2))
        sys.exit(1)

    if plan.to_remove and not (yes or dry_run or as_json):
        click.confirm(f"Remove {len(plan.to_remove)} tools?", abort=True)

    result = RemovalExecutor(get_store(ctx), audit=get_audit(ctx)).execute(plan)

    if as_json:
        data = result.model_dump(mode="json")
        data["space_freed"] = result.space_freed
        click.echo(json.dumps(data, indent=2))
    else:
        verb = "Would remove" if result.dry_run else "Removed"
        if result.removed:
            click.secho(f"   ✓ {verb}: {', '.join(result.removed)}", fg="green")
        for failure in result.failed:
            click.secho(f"   ✗ {failure.target}: {failure.error}", fg="red")
        if not result.dry_run and result.removed:
            click.echo(f"   Freed {result.space_freed}")
        if result.untracked:
            click.echo(f"   No longer tracking: {', '.join(result.untracked)}")
        if result.backup_created:
            click.echo(f"   Manifest backup: {result.backup_created}")
        click.echo()

    if not result.ok:
        sys.exit(1)
