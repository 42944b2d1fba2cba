"""skillgate CLI — the main entry point for convention checks, template sync and gate setup."""

import json
import logging
import sys

import click
import yaml
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from skillgate import __version__
from skillgate.config import ConfigError, SkillgateConfig, find_config, parse_actor
from skillgate.remote.models import Enforcement
from skillgate.schema.registry import SchemaError, load_schema
from skillgate.sync.resolver import ConflictPolicy, ResolutionAction
from skillgate.utils.logging import configure_logging

logger = logging.getLogger(__name__)

console = Console()

_OUTCOME_STYLE = {"applied": "green", "declined": "yellow", "failed": "red"}


def _load_config(directory: str) -> SkillgateConfig:
    try:
        return find_config(directory)
    except (ConfigError, SchemaError) as e:
        raise click.UsageError(str(e)) from e


def _console_ask(entry, choices):
    """Interactive conflict decision, backed by a terminal prompt."""
    value = click.prompt(
        f"Conflict at {entry.path} ({entry.kind.value})",
        type=click.Choice([c.value for c in choices]),
        default=ResolutionAction.SKIP.value,
    )
    return ResolutionAction(value)


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to stderr")
def main(verbose: bool):
    """skillgate — keep skill-package repositories on convention.

    Validate a repository against the skill-package convention, propagate a
    reference template into it, and make the validator a required merge check.
    """
    configure_logging(verbose)


# ── Validate ─────────────────────────────────────────────────────────


@main.command()
@click.argument("path", default=".", type=click.Path(exists=True, file_okay=False))
@click.option("--schema", "schema_path", default=None, help="YAML schema registry to validate against")
@click.option("--json", "as_json", is_flag=True, help="Emit the report as JSON")
def validate(path: str, schema_path: str | None, as_json: bool):
    """Validate a repository tree against the skill-package convention.

    Exits non-zero when any error-severity issue is found.
    """
    from skillgate.schema.validator import validate as validate_tree

    config = _load_config(path)
    try:
        registry = load_schema(schema_path) if schema_path else config.registry()
    except (OSError, SchemaError) as e:
        raise click.UsageError(f"Cannot load schema: {e}") from e

    report = validate_tree(path, registry)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        console.print(f"\n[bold blue]skillgate[/] — Validating: {path}\n")
        if report.issues:
            table = Table(title=f"Issues ({len(report.issues)})")
            table.add_column("Severity")
            table.add_column("Path", style="cyan")
            table.add_column("Rule")
            table.add_column("Message")
            for issue in report.issues:
                color = "red" if issue.severity.value == "error" else "yellow"
                table.add_row(
                    f"[{color}]{issue.severity.value}[/]", escape(issue.path), issue.rule, escape(issue.message)
                )
            console.print(table)
        console.print(report.summary())

    if not report.passed:
        sys.exit(1)


# ── Sync ─────────────────────────────────────────────────────────────


@main.command()
@click.argument("target", default=".", type=click.Path(file_okay=False))
@click.option("--template", "-t", default=None, help="Reference tree: directory or git URL")
@click.option("--ref", default=None, help="Branch or tag to clone when the template is a URL")
@click.option(
    "--policy",
    type=click.Choice([p.value for p in ConflictPolicy]),
    default=None,
    help="How to treat files that differ from the template",
)
@click.option("--scope", "-s", multiple=True, help="Only sync beneath this path (repeatable)")
@click.option("--dry-run", is_flag=True, help="Show the planned actions without writing")
@click.option("--no-history", is_flag=True, help="Do not record this run in the target")
@click.option("--json", "as_json", is_flag=True, help="Emit the report as JSON")
def sync(
    target: str,
    template: str | None,
    ref: str | None,
    policy: str | None,
    scope: tuple,
    dry_run: bool,
    no_history: bool,
    as_json: bool,
):
    """Propagate a reference template into TARGET without deleting anything.

    Exits non-zero when any entry failed to apply.
    """
    from pathlib import Path

    from skillgate.sync.history import SyncHistoryStore, SyncRecord
    from skillgate.sync.synchronizer import TemplateSynchronizer
    from skillgate.utils.filesystem import LocalFileSystem
    from skillgate.utils.git_ops import resolve_template

    config = _load_config(target) if Path(target).is_dir() else SkillgateConfig()
    source = template or config.template
    if not source:
        raise click.UsageError("No template given: pass --template or set 'template' in .skillgate.yaml")
    conflict_policy = ConflictPolicy(policy) if policy else config.conflict_policy
    scopes = list(scope) or config.scope

    Path(target).mkdir(parents=True, exist_ok=True)
    target_fs = LocalFileSystem(target)

    try:
        handle = resolve_template(source, ref)
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    with handle:
        synchronizer = TemplateSynchronizer(
            LocalFileSystem(handle.local_path),
            target_fs,
            policy=conflict_policy,
            ask=_console_ask if conflict_policy == ConflictPolicy.INTERACTIVE else None,
            scope=scopes or None,
        )

        if dry_run:
            plan = synchronizer.plan()
            if as_json:
                click.echo(json.dumps(
                    [
                        {"path": e.path, "classification": e.classification.value, "action": a.value}
                        for e, a in plan
                    ],
                    indent=2,
                ))
                return
            table = Table(title=f"Planned actions ({len(plan)} entries)")
            table.add_column("Path", style="cyan")
            table.add_column("Classification")
            table.add_column("Action")
            for entry, action in plan:
                table.add_row(escape(entry.path), entry.classification.value, action.value)
            console.print(table)
            return

        report = synchronizer.sync()

    if config.history and not no_history:
        try:
            SyncHistoryStore(target_fs).record(
                SyncRecord.from_report(report, reference=source, policy=conflict_policy.value, scope=scopes)
            )
        except OSError as e:
            logger.warning("Could not record sync history in %s: %s", target, e)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        console.print(f"\n[bold blue]skillgate[/] — Synced {source} into {target}\n")
        table = Table(title="Sync log")
        table.add_column("Path", style="cyan")
        table.add_column("Action")
        table.add_column("Outcome")
        for entry in report.entries:
            style = _OUTCOME_STYLE[entry.outcome.value]
            detail = escape(f" ({entry.error})") if entry.error else ""
            table.add_row(escape(entry.relative_path), entry.action.value, f"[{style}]{entry.outcome.value}[/]{detail}")
        console.print(table)
        console.print(report.summary())

    if report.has_failures:
        sys.exit(1)


# ── Drift ────────────────────────────────────────────────────────────


@main.command()
@click.argument("target", default=".", type=click.Path(exists=True, file_okay=False))
@click.option("--template", "-t", default=None, help="Reference tree: directory or git URL")
@click.option("--ref", default=None, help="Branch or tag to clone when the template is a URL")
@click.option("--scope", "-s", multiple=True, help="Only compare beneath this path (repeatable)")
def drift(target: str, template: str | None, ref: str | None, scope: tuple):
    """Report how TARGET diverges from the reference template."""
    from skillgate.sync.drift import detect_drift
    from skillgate.utils.filesystem import LocalFileSystem
    from skillgate.utils.git_ops import resolve_template

    config = _load_config(target)
    source = template or config.template
    if not source:
        raise click.UsageError("No template given: pass --template or set 'template' in .skillgate.yaml")

    try:
        handle = resolve_template(source, ref)
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    with handle:
        report = detect_drift(
            LocalFileSystem(handle.local_path),
            LocalFileSystem(target),
            scope=list(scope) or config.scope or None,
        )

    console.print(f"\n[bold blue]skillgate[/] — Drift detection: {target}\n")
    if not report.has_drift:
        console.print(f"  [green]OK[/] {report.summary()}")
        return

    console.print(f"  [red]DRIFT[/] {escape(report.summary())}")
    for label, paths in (
        ("missing", report.missing),
        ("modified", report.modified),
        ("kind changed", report.kind_changed),
        ("unreadable", report.unreadable),
    ):
        for path in paths:
            console.print(f"    - {label}: {escape(path)}")
    sys.exit(1)


# ── Provision ────────────────────────────────────────────────────────


@main.command()
@click.option("--config-dir", "-c", default=".", help="Directory holding .skillgate.yaml")
@click.option("--org", default=None, help="Provision at organization scope")
@click.option("--repo", default=None, help="Provision at repository scope (owner/repo)")
@click.option("--name", default=None, help="Policy name (the reconciliation key)")
@click.option("--enforcement", type=click.Choice([e.value for e in Enforcement]), default=None)
@click.option("--bypass", multiple=True, help="Bypass actor as Type:id (repeatable)")
@click.option("--max-attempts", default=5, show_default=True, help="Attempts per call when rate limited")
@click.option("--timeout", default=15.0, show_default=True, help="Per-request timeout in seconds")
def provision(
    config_dir: str,
    org: str | None,
    repo: str | None,
    name: str | None,
    enforcement: str | None,
    bypass: tuple,
    max_attempts: int,
    timeout: float,
):
    """Require the validator check on the default branch via a ruleset.

    Uses the token in GITHUB_TOKEN or GH_TOKEN.
    """
    from skillgate.remote.github import GitHubRulesetClient
    from skillgate.remote.models import TargetScope
    from skillgate.remote.provisioner import PolicyProvisioner, ProvisionError, RetryPolicy
    from skillgate.utils.git_ops import detect_repository

    if org and repo:
        raise click.UsageError("--org and --repo are mutually exclusive")

    settings = _load_config(config_dir).policy
    if org:
        settings.scope, settings.target = TargetScope.ORGANIZATION, org
    elif repo:
        settings.scope, settings.target = TargetScope.REPOSITORY, repo
    elif not settings.target and settings.scope == TargetScope.REPOSITORY:
        settings.target = detect_repository(config_dir) or ""
    if name:
        settings.name = name
    if enforcement:
        settings.enforcement = Enforcement(enforcement)
    try:
        if bypass:
            settings.bypass_actors = [parse_actor(b) for b in bypass]
        scope = settings.scope_ref()
    except ConfigError as e:
        raise click.UsageError(str(e)) from e

    console.print(f"\n[bold blue]skillgate[/] — Provisioning '{settings.name}' in {scope}\n")

    try:
        with GitHubRulesetClient(timeout=timeout) as client:
            provisioner = PolicyProvisioner(
                client,
                retry=RetryPolicy(max_attempts=max_attempts),
                check_context=settings.check_context,
            )
            outcome = provisioner.provision(scope, settings.document())
    except ProvisionError as e:
        console.print(f"[red]Provisioning failed ({type(e).__name__}):[/] {escape(str(e))}")
        sys.exit(1)

    console.print(Panel(
        f"Policy:   {outcome.name} (id {outcome.policy_id})\n"
        f"Action:   {outcome.action}\n"
        f"Requires: {settings.check_context}\n"
        f"Attempts: {outcome.attempts}",
        title="Merge gate",
    ))


# ── Schema ───────────────────────────────────────────────────────────


@main.command(name="schema")
@click.option("--schema", "schema_path", default=None, help="YAML schema registry to show instead")
def dump_schema(schema_path: str | None):
    """Print the active schema registry as YAML."""
    from skillgate.schema.registry import default_registry

    try:
        registry = load_schema(schema_path) if schema_path else default_registry()
    except (OSError, SchemaError) as e:
        raise click.UsageError(f"Cannot load schema: {e}") from e
    click.echo(yaml.safe_dump(registry.to_dict(), sort_keys=False))


if __name__ == "__main__":
    main()
