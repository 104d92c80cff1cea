"""
rsprovision — CLI entrypoint.

Usage:
    rsprovision --help
    rsprovision run
    rsprovision plan
    rsprovision config check
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from rsprovision.core.observability.logging_config import setup_logging

from rsprovision import __version__

CONTAINER_NOTE = (
    "Kernel patches were skipped. Direct camera access from inside a "
    "container may be limited; pass the device through from the host."
)


@click.group()
@click.version_option(version=__version__, prog_name="rsprovision")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to provision.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """Provision librealsense2 from source on a Debian/Ubuntu host."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("RSP_LOG_LEVEL", "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get("RSP_LOG_FILE"),
        log_file_level=os.environ.get("RSP_LOG_FILE_LEVEL"),
    )


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--dry-run", is_flag=True, help="Validate every step but execute none.")
@click.option("--mock", is_flag=True, help="Use mock adapters (no real execution).")
@click.option("--capture", is_flag=True, help="Capture command output instead of streaming it.")
@click.option(
    "--ask-sudo-password",
    is_flag=True,
    help="Prompt once for the sudo password and feed it to every root step.",
)
@click.pass_context
def run(
    ctx: click.Context,
    as_json: bool,
    dry_run: bool,
    mock: bool,
    capture: bool,
    ask_sudo_password: bool,
) -> None:
    """Run the provisioning recipe, stopping at the first failure.

    Examples:

        rsprovision run

        rsprovision run --dry-run

        rsprovision --config ./provision.yml run --capture
    """
    from rsprovision.adapters.shell import command
    from rsprovision.core.use_cases.provision import run_provision

    quiet = ctx.obj.get("quiet", False)
    sudo_password = ""
    # root steps run without sudo when already root
    if ask_sudo_password and not command.is_root():
        sudo_password = click.prompt("sudo password", hide_input=True, err=True)

    def _announce(index: int, total: int, action) -> None:
        click.secho(f"\n[{index + 1}/{total}] {action.name}", fg="cyan", bold=True)
        click.echo(f"   $ {action.params.get('_display', '')}")

    try:
        result = run_provision(
            config_path=ctx.obj.get("config_path"),
            dry_run=dry_run,
            mock_mode=mock,
            # JSON output owns stdout
            stream_output=not (capture or as_json),
            sudo_password=sudo_password,
            on_step=None if (as_json or quiet) else _announce,
        )
    except KeyboardInterrupt:
        click.secho("\n⚠️  Interrupted", fg="yellow", err=True)
        sys.exit(130)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    report = result.report
    assert report is not None

    if report.interrupted:
        click.secho("\n⚠️  Interrupted", fg="yellow", err=True)
        sys.exit(report.exit_code)

    mode_label = "[dry-run] " if dry_run else "[mock] " if mock else ""
    click.echo()

    failing = report.failing_receipt
    if failing is not None:
        action = next(a for a in result.plan.actions if a.id == failing.action_id)
        click.secho(f"❌ {mode_label}Step failed: {action.name}", fg="red", bold=True)
        if failing.return_code is not None:
            click.echo(f"   Exit code: {failing.return_code}")
        progress = failing.metadata.get("progress")
        if progress:
            click.echo(f"   Build stopped at {progress['percent']}%")
        tail = failing.error or ""
        stdout = failing.metadata.get("stdout")
        if capture and stdout:
            tail = stdout + "\n" + tail
        for line in tail.strip().split("\n")[-20:]:
            click.echo(f"     │ {line}")
        analysis = failing.metadata.get("analysis")
        if analysis:
            click.secho(f"   💡 {analysis['cause']}", fg="yellow")
            click.echo(f"      {analysis['suggestion']}")
        if report.not_run:
            click.echo(f"   Not run: {', '.join(report.not_run)}")
        click.echo()
        sys.exit(report.exit_code)

    for step_id in report.tolerated:
        click.secho(f"⚠️  {step_id} failed (allowed)", fg="yellow")

    if dry_run:
        click.secho(
            f"✅ {mode_label}{report.total} steps validated, nothing executed",
            fg="green",
            bold=True,
        )
        click.echo()
        return

    status_color = {"ok": "green", "partial": "yellow"}.get(report.status, "white")
    click.secho(
        f"✅ {mode_label}librealsense2 provisioned: {report.succeeded}/{report.total} steps ok",
        fg=status_color,
        bold=True,
    )
    if not quiet:
        click.echo(f"   {CONTAINER_NOTE}")
    click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def plan(ctx: click.Context, as_json: bool) -> None:
    """Show the ordered provisioning steps without running them."""
    from rsprovision.core.use_cases.provision import resolve_recipe

    result = resolve_recipe(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    recipe = result.recipe
    assert recipe is not None

    click.secho(f"\n📋 {recipe.name}: {len(recipe.steps)} steps", fg="cyan", bold=True)
    phase = ""
    for index, step in enumerate(recipe.steps, start=1):
        if step.phase != phase:
            phase = step.phase
            click.secho(f"\n   {phase}", fg="white", bold=True)
        allowed = " (allowed to fail)" if step.allow_failure else ""
        click.echo(f"   {index:2d}. {step.id}{allowed}")
        if not ctx.obj.get("quiet"):
            click.echo(f"       $ {step.display()}")
    click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def check(ctx: click.Context, as_json: bool) -> None:
    """Check whether this host can be provisioned."""
    from rsprovision.core.config.loader import ConfigError, load_config
    from rsprovision.core.use_cases.preflight import run_preflight

    try:
        cfg = load_config(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    result = run_preflight(cfg)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.ok else 1)

    profile = result.profile
    distro = profile.get("distro", {})
    click.secho("\n🔍 Host", fg="cyan", bold=True)
    click.echo(f"   Distro: {distro.get('name') or distro.get('id') or 'unknown'}")
    click.echo(f"   Root: {'yes' if profile.get('is_root') else 'no'}"
               f" | sudo: {'yes' if profile.get('has_sudo') else 'no'}"
               f" | apt: {'yes' if profile.get('has_apt') else 'no'}")
    click.echo(f"   CPUs: {profile.get('cpu_count')}"
               f" | Container: {'yes' if profile.get('in_container') else 'no'}")
    if result.toolchain:
        tools = ", ".join(f"{k} {v}" for k, v in result.toolchain.items())
        click.echo(f"   Toolchain: {tools}")

    click.echo()
    if result.ok:
        click.secho("✅ Host can be provisioned", fg="green", bold=True)
    else:
        click.secho("❌ Host cannot be provisioned:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    click.echo()
    if not result.ok:
        sys.exit(1)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def verify(ctx: click.Context, as_json: bool) -> None:
    """Verify the SDK, udev rules and dependencies after a run."""
    from rsprovision.core.use_cases.verify import run_verify

    result = run_verify(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.ok else 1)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    report = result.report
    assert report is not None

    click.echo()
    for c in report.checks:
        if c.ok:
            click.secho(f"   ✓ {c.name} ", fg="green", nl=False)
        else:
            click.secho(f"   ✗ {c.name} ", fg="red", nl=False)
        click.echo(c.message)

    click.echo()
    if not report.ok:
        click.secho(f"❌ {len(report.failed)} check(s) failed", fg="red", bold=True)
        click.echo()
        sys.exit(1)
    click.secho("✅ librealsense2 installation verified", fg="green", bold=True)
    click.echo()


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("-n", "limit", default=10, type=int, help="Number of entries to show.")
@click.option(
    "--all", "include_all", is_flag=True, help="Include dry-run and mock runs."
)
@click.pass_context
def history(ctx: click.Context, as_json: bool, limit: int, include_all: bool) -> None:
    """Show recent provisioning runs from the audit ledger.

    Only live runs are listed unless --all is given.
    """
    from rsprovision.core.config.loader import find_config_file, state_root
    from rsprovision.core.persistence.audit import AuditWriter

    config_path = ctx.obj.get("config_path") or find_config_file()
    writer = AuditWriter(root=state_root(config_path))
    entries = writer.read_recent(limit, modes=None if include_all else ("live",))

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        click.echo("No provisioning runs recorded.")
        return

    click.secho(f"\n📜 Last {len(entries)} run(s) — {writer.path}", fg="cyan", bold=True)
    for e in entries:
        status_color = {"ok": "green", "partial": "yellow", "failed": "red"}.get(
            e.status, "white"
        )
        click.echo(f"   {e.timestamp}  {e.operation_id}  [{e.mode}] ", nl=False)
        click.secho(e.status, fg=status_color, nl=False)
        halted = f"  halted at {e.halted_at}" if e.halted_at else ""
        click.echo(f"  exit {e.exit_code}  {e.steps_succeeded}/{e.steps_total}{halted}")
    click.echo()


@cli.group()
def config() -> None:
    """Provisioning configuration commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate provision.yml configuration."""
    from rsprovision.core.use_cases.config_check import check_config

    result = check_config(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        assert result.config is not None
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        click.echo(f"   Source: {result.config_path or '(defaults)'}")
        click.echo(f"   Repository: {result.config.repository}")
        click.echo(f"   Packages: {len(result.config.all_packages)}")
    else:
        click.secho("❌ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        click.echo()
        sys.exit(1)

    click.echo()


if __name__ == "__main__":
    cli()
