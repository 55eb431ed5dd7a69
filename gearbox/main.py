"""
Gearbox — CLI entrypoint.

Usage:
    gearbox --help
    gearbox install ripgrep fd --jobs 2
    gearbox status --sync
    gearbox uninstall fd --cascade
"""

from __future__ import annotations

import dataclasses
import json
import shlex
import sys
from pathlib import Path

import click

from gearbox import __version__
from gearbox.core.config.settings import GearboxSettings
from gearbox.core.models.catalog import BUILD_TYPES
from gearbox.core.observability.logging_config import setup_logging
from gearbox.ui.cli.common import (
    STATUS_COLORS,
    get_audit,
    get_catalog,
    get_settings,
    get_store,
    handle_errors,
)

# Exit status after Ctrl-C, as a shell reports it
EXIT_CANCELLED = 130

_STATE_MARKS = {
    "running": ("▶", "cyan"),
    "done": ("✓", "green"),
    "failed": ("✗", "red"),
    "skipped": ("⊘", "yellow"),
}


@click.group()
@click.version_option(version=__version__, prog_name="gearbox")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--catalog",
    "catalog_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to tools.json (default: auto-detect).",
)
@click.option(
    "--home",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Gearbox state directory (default: ~/.gearbox).",
)
@click.option(
    "--scripts-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Root of the installation scripts (default: next to the catalog).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    catalog_path: Path | None,
    home: Path | None,
    scripts_dir: Path | None,
) -> None:
    """Gearbox — build, track and remove developer tools."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = None

    settings = GearboxSettings.from_env(
        home=home,
        catalog_path=catalog_path,
        scripts_dir=scripts_dir,
        log_level=level,
    )
    ctx.obj["settings"] = settings

    setup_logging(
        level=settings.log_level,
        log_file=settings.log_file,
        log_file_level=settings.log_file_level,
    )


# ── install ─────────────────────────────────────────────────────


@cli.command()
@click.argument("names", nargs=-1, required=True)
@click.option(
    "--build-type",
    "-b",
    type=click.Choice(BUILD_TYPES),
    default=None,
    help="Build variant (default: from the catalog).",
)
@click.option("--minimal", "build_type", flag_value="minimal", help="Same as --build-type minimal.")
@click.option("--standard", "build_type", flag_value="standard", help="Same as --build-type standard.")
@click.option("--maximum", "build_type", flag_value="maximum", help="Same as --build-type maximum.")
@click.option("--jobs", "-j", type=click.IntRange(min=0), default=0, help="Parallel builds (0 = auto).")
@click.option("--skip-common-deps", is_flag=True, help="Don't install shared build dependencies first.")
@click.option("--run-tests", is_flag=True, help="Run each tool's test suite after building.")
@click.option("--no-shell", "skip_shell", is_flag=True, help="Skip shell integration setup.")
@click.option("--force", is_flag=True, help="Rebuild even if already installed.")
@click.option("--no-cache", is_flag=True, help="Ignore cached sources and build artifacts.")
@click.option("--dry-run", is_flag=True, help="Print the build commands, run nothing.")
@click.option("--mock", is_flag=True, help="Use the mock backend (no real builds).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
@handle_errors
def install(
    ctx: click.Context,
    names: tuple[str, ...],
    build_type: str | None,
    jobs: int,
    skip_common_deps: bool,
    run_tests: bool,
    skip_shell: bool,
    force: bool,
    no_cache: bool,
    dry_run: bool,
    mock: bool,
    as_json: bool,
) -> None:
    """Install tools and bundles, dependencies first.

    Examples:

        gearbox install ripgrep fd

        gearbox install essential --jobs 4 --build-type maximum

        gearbox install delta --dry-run
    """
    from gearbox.core.models.options import InstallationOptions
    from gearbox.core.services.tool_install.execution.mock_backend import MockBackend
    from gearbox.core.services.tool_install.execution.script_backend import ScriptBackend
    from gearbox.core.services.tool_install.orchestration.orchestrator import BuildOrchestrator

    settings = get_settings(ctx)
    catalog = get_catalog(ctx)
    quiet = ctx.obj.get("quiet", False)

    options = InstallationOptions(
        build_type=build_type or catalog.default_build_type,
        jobs=jobs,
        skip_common_deps=skip_common_deps,
        run_tests=run_tests,
        skip_shell_integration=skip_shell,
        force=force,
        no_cache=no_cache,
        dry_run=dry_run,
    )

    if mock:
        backend = MockBackend()
    else:
        scripts_dir = settings.resolve_scripts_dir(ctx.obj.get("catalog_file"))
        backend = ScriptBackend(
            scripts_dir,
            settings.build_dir,
            sink=lambda line: click.echo(line, err=as_json),
        )

    def on_progress(event) -> None:
        if as_json or quiet or event.state not in _STATE_MARKS:
            return
        mark, color = _STATE_MARKS[event.state]
        reason = f" ({event.reason})" if event.reason else ""
        click.secho(f"   {mark} [{event.index}/{event.total}] {event.tool}{reason}", fg=color)

    orchestrator = BuildOrchestrator(
        catalog,
        backend,
        store=None if mock else get_store(ctx),
        audit=get_audit(ctx),
        build_dir=settings.build_dir,
        on_progress=on_progress,
    )

    plan = orchestrator.plan(list(names))
    if not as_json and not quiet:
        mode_label = "[dry-run] " if dry_run else "[mock] " if mock else ""
        click.secho(f"\n🔧 {mode_label}Installing {len(plan)} tools", fg="cyan", bold=True)
        click.echo(f"   Order: {' → '.join(plan.order)}")
        if plan.pulled_in:
            click.echo(f"   Dependencies: {', '.join(plan.pulled_in)}")
        click.echo()

    report = orchestrator.execute(plan, options)

    if as_json:
        click.echo(
            json.dumps(
                {
                    "order": plan.order,
                    "jobs": report.jobs,
                    "dry_run": report.dry_run,
                    "cancelled": report.cancelled,
                    "succeeded": report.succeeded,
                    "failed": report.failed,
                    "skipped": report.skipped,
                    "commands": report.commands,
                    "errors": report.errors,
                },
                indent=2,
            )
        )
    elif dry_run:
        for cmd in report.commands:
            click.echo(f"   $ {shlex.join(cmd)}")
        click.echo()
    else:
        _print_install_summary(report, verbose=ctx.obj.get("verbose", False))

    if report.cancelled:
        sys.exit(EXIT_CANCELLED)
    if not report.ok:
        sys.exit(1)


def _print_install_summary(report, *, verbose: bool) -> None:
    click.echo()
    for failure in report.failures:
        click.secho(f"   ✗ {failure}", fg="red")
        result = report.outcomes[failure.tool].result
        if verbose and result and result.output:
            for line in result.output.splitlines()[-10:]:
                click.echo(f"     │ {line}")

    status = "ok" if report.ok else ("partial" if report.succeeded else "failed")
    total = len(report.outcomes)
    click.secho(
        f"   Result: {len(report.succeeded)}/{total} installed"
        f" ({len(report.failed)} failed, {len(report.skipped)} skipped, {report.jobs} jobs)",
        fg=STATUS_COLORS[status],
        bold=True,
    )
    if report.cancelled:
        click.secho("   Cancelled.", fg="yellow")
    click.echo()


# ── status / list / show ────────────────────────────────────────


@cli.command()
@click.argument("names", nargs=-1)
@click.option("--sync", is_flag=True, help="Record tools found on PATH as pre-existing.")
@click.option("--installed", "only_installed", is_flag=True, help="Show installed tools only.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
@handle_errors
def status(
    ctx: click.Context,
    names: tuple[str, ...],
    sync: bool,
    only_installed: bool,
    as_json: bool,
) -> None:
    """Show which tools are installed, and how."""
    from gearbox.core.services.status import UnifiedStatusService

    service = UnifiedStatusService(get_catalog(ctx), get_store(ctx), audit=get_audit(ctx))

    added: list[str] = []
    if sync:
        added = service.sync_manifest_with_system()

    if names:
        manifest = get_store(ctx).load()
        statuses = {n: service.get_tool_status(n, manifest) for n in names}
    else:
        statuses = service.get_all_tools_status()

    if only_installed:
        statuses = {n: s for n, s in statuses.items() if s.installed}

    if as_json:
        click.echo(
            json.dumps(
                {
                    "tools": {n: s.model_dump() for n, s in statuses.items()},
                    "synced": added,
                },
                indent=2,
            )
        )
        return

    if sync:
        if added:
            click.secho(f"🔄 Synced {len(added)} pre-existing tools: {', '.join(added)}", fg="cyan")
        else:
            click.secho("🔄 Manifest already in sync", fg="cyan")

    installed = sum(1 for s in statuses.values() if s.installed)
    click.secho(f"\n📋 Tools: {installed}/{len(statuses)} installed", fg="cyan", bold=True)
    for name, st in statuses.items():
        if st.installed:
            label = "managed" if st.source == "gearbox-managed" else "system"
            click.secho(f"   ✓ {name} ", fg="green", nl=False)
            click.echo(f"{st.version or '?'}  [{label}]")
        else:
            click.secho(f"   ✗ {name}", fg="red")
        if st.needs_sync:
            click.secho("     ⚠️  manifest and system disagree (run with --sync)", fg="yellow")
        if not st.in_catalog:
            click.secho("     ⚠️  no longer in the catalog", fg="yellow")
    click.echo()


@cli.command("list")
@click.option("--category", default=None, help="Only tools in this category.")
@click.option("--bundles", "show_bundles", is_flag=True, help="List bundles instead of tools.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
@handle_errors
def list_tools(
    ctx: click.Context,
    category: str | None,
    show_bundles: bool,
    as_json: bool,
) -> None:
    """List catalog tools (or bundles)."""
    from gearbox.core.services.tool_install.resolver.bundles import expand_bundle

    catalog = get_catalog(ctx)

    if show_bundles:
        bundles = catalog.bundles
        if category:
            bundles = [b for b in bundles if b.category == category]
        if as_json:
            click.echo(json.dumps([b.model_dump() for b in bundles], indent=2))
            return
        click.secho(f"\n📦 Bundles: {len(bundles)}", fg="cyan", bold=True)
        for bundle in bundles:
            tools = expand_bundle(catalog, bundle.name)
            click.secho(f"   • {bundle.name}", bold=True, nl=False)
            click.echo(f" ({len(tools)} tools) — {bundle.description}")
        click.echo()
        return

    grouped = catalog.tools_by_category(category)
    if as_json:
        click.echo(
            json.dumps(
                {cat: [t.model_dump() for t in tools] for cat, tools in grouped.items()},
                indent=2,
            )
        )
        return

    for cat, tools in grouped.items():
        label = catalog.categories.get(cat, cat)
        click.secho(f"\n{label}", fg="cyan", bold=True)
        for tool in tools:
            click.echo(f"   • {tool.name:<16} {tool.description}")
    click.echo()


@cli.command()
@click.argument("name")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
@handle_errors
def show(ctx: click.Context, name: str, as_json: bool) -> None:
    """Show a tool's catalog entry and installation status."""
    from gearbox.core.errors import UnknownToolError
    from gearbox.core.services.status import UnifiedStatusService

    catalog = get_catalog(ctx)
    tool = catalog.get_tool(name)
    if tool is None:
        raise UnknownToolError(name)

    st = UnifiedStatusService(catalog, get_store(ctx)).get_tool_status(name)

    if as_json:
        click.echo(json.dumps({"tool": tool.model_dump(), "status": st.model_dump()}, indent=2))
        return

    click.secho(f"\n🔧 {tool.name}", fg="cyan", bold=True)
    if tool.description:
        click.echo(f"   {tool.description}")
    click.echo(f"   Category:     {tool.category}")
    click.echo(f"   Language:     {tool.language}")
    click.echo(f"   Repository:   {tool.repository}")
    click.echo(f"   Build types:  {', '.join(tool.build_types)}")
    if tool.dependencies:
        click.echo(f"   Depends on:   {', '.join(tool.dependencies)}")
    click.echo()
    if st.installed:
        click.secho(f"   ✓ Installed {st.version} ({st.source})", fg="green")
        for path in st.binary_paths:
            click.echo(f"     → {path}")
        if st.install_method:
            click.echo(f"     via {st.install_method} at {st.installed_at}")
    else:
        click.secho("   ✗ Not installed", fg="red")
    click.echo()


# ── doctor / history ────────────────────────────────────────────


@cli.command()
@click.argument("names", nargs=-1)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
@handle_errors
def doctor(ctx: click.Context, names: tuple[str, ...], as_json: bool) -> None:
    """Run each installed tool's test command.

    With no NAMES, checks every catalog tool found on PATH.
    """
    from gearbox.core.errors import UnknownToolError
    from gearbox.core.services.tool_install.detection.tool_version import find_binary, verify_tool

    catalog = get_catalog(ctx)
    if names:
        tools = []
        for name in names:
            tool = catalog.get_tool(name)
            if tool is None:
                raise UnknownToolError(name)
            tools.append(tool)
    else:
        tools = [t for t in catalog.tools if find_binary(t.binary_name)]

    results = [verify_tool(t) for t in tools]

    if as_json:
        click.echo(json.dumps([dataclasses.asdict(r) for r in results], indent=2))
    else:
        click.secho(f"\n🩺 Checked {len(results)} tools", fg="cyan", bold=True)
        for r in results:
            if r.ok:
                click.secho(f"   ✓ {r.tool}", fg="green")
            else:
                click.secho(f"   ✗ {r.tool}: {r.error}", fg="red")
        click.echo()

    if any(not r.ok for r in results):
        sys.exit(1)


@cli.command()
@click.option("--limit", "-n", default=20, type=int, help="Number of entries.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def history(ctx: click.Context, limit: int, as_json: bool) -> None:
    """Show recent operations from the audit ledger."""
    entries = get_audit(ctx).read_recent(limit)

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        click.echo("No operations recorded yet.")
        return

    for entry in entries:
        color = STATUS_COLORS.get(entry.status, "white")
        click.echo(f"   {entry.timestamp[:19]}  {entry.operation_type:<10} ", nl=False)
        click.secho(f"{entry.status or '-':<8}", fg=color, nl=False)
        click.echo(f" {', '.join(entry.tools)}")


# ── Register sub-command groups from gearbox/ui/cli/ ────────────

from gearbox.ui.cli.manifest import manifest  # noqa: E402
from gearbox.ui.cli.uninstall import uninstall, uninstall_plan  # noqa: E402

cli.add_command(manifest)
cli.add_command(uninstall)
cli.add_command(uninstall_plan)


if __name__ == "__main__":
    cli()
