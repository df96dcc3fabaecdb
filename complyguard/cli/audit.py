"""CLI commands for running compliance audits."""

import asyncio
import json
import logging

import click
from dotenv import load_dotenv

from config.settings import Settings
from complyguard.errors import (
    ComplyGuardError,
    CredentialError,
    CredentialSourceUnavailable,
    RateLimited,
)
from complyguard.models import EvidenceStatus
from complyguard.runner import ComplyGuardRunner

_STATUS_COLORS = {
    "passed": "green",
    "failed": "red",
    "error": "yellow",
    "inactive": "white",
    "checking": "cyan",
}


def _load_settings(**overrides) -> Settings:
    load_dotenv()
    values = {k: v for k, v in overrides.items() if v is not None}
    return Settings(**values)


async def _with_runner(config: Settings, action):
    runner = await ComplyGuardRunner.from_settings(config)
    try:
        return await action(runner)
    finally:
        await runner.aclose()


def _run(coro):
    try:
        return asyncio.run(coro)
    except CredentialSourceUnavailable as e:
        raise click.ClickException(f"{e}. Try again later.")
    except CredentialError as e:
        raise click.ClickException(f"{e}. Configure SUPABASE_ACCESS_TOKEN and SUPABASE_PROJECT_REF.")
    except RateLimited as e:
        wait = f" Retry in {e.retry_after:.0f}s." if e.retry_after else ""
        raise click.ClickException(f"{e}.{wait}")
    except ComplyGuardError as e:
        raise click.ClickException(str(e))


def _echo_summary(summary: dict) -> None:
    overall = summary["overall"]
    click.secho(
        f"Overall: {overall.upper()} (score {summary['score']}%)",
        fg=_STATUS_COLORS.get(overall),
        bold=True,
    )
    for check, result in summary["checks"].items():
        line = f"  {check.upper():<5} {result['status']:<9} {result['percentage']:>3}%"
        if result["total"]:
            line += f"  ({result['compliant']}/{result['total']})"
        if result["error"]:
            line += f"  {result['error']}"
        click.secho(line, fg=_STATUS_COLORS.get(result["status"]))
    if len(summary["projects"]) > 1:
        click.echo("Projects:")
        for project_id, status in summary["projects"].items():
            click.secho(f"  {project_id}: {status}", fg=_STATUS_COLORS.get(status))
    if summary["rate_limited"]:
        click.secho("Some checks were rate limited; re-run later.", fg="yellow")


@click.group()
@click.option("--log-level", default=None, help="Logging level (DEBUG, INFO, WARNING, ERROR)")
@click.pass_context
def cli(ctx: click.Context, log_level: str | None):
    """Audit Supabase projects for MFA, RLS and PITR compliance."""
    logging.basicConfig(
        level=(log_level or "INFO").upper(),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s"
    )
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level


@cli.command()
@click.option("--all-projects/--single-project", default=None, help="Audit every project the token can see")
@click.option("--json", "as_json", is_flag=True, help="Print the summary as JSON")
@click.pass_context
def run(ctx: click.Context, all_projects: bool | None, as_json: bool):
    """Run a full compliance audit."""
    config = _load_settings(check_all_projects=all_projects, log_level=ctx.obj.get("log_level"))
    summary = _run(_with_runner(config, lambda runner: runner.run()))
    if as_json:
        click.echo(json.dumps(summary, indent=2))
    else:
        _echo_summary(summary)


@cli.command()
@click.argument("project_id")
@click.option("--json", "as_json", is_flag=True, help="Print the summary as JSON")
@click.pass_context
def project(ctx: click.Context, project_id: str, as_json: bool):
    """Audit a single project by reference."""
    config = _load_settings(
        supabase_project_ref=project_id,
        log_level=ctx.obj.get("log_level"),
    )
    summary = _run(_with_runner(config, lambda runner: runner.audit_project(project_id)))
    if as_json:
        click.echo(json.dumps(summary, indent=2))
    else:
        _echo_summary(summary)


@cli.command()
@click.option(
    "--status",
    type=click.Choice([s.value for s in EvidenceStatus]),
    default=None,
    help="Only show entries with this status",
)
@click.option("--project-id", default=None, help="Only show entries for this project")
@click.option("--limit", default=50, type=int, help="Maximum entries to print")
@click.pass_context
def evidence(ctx: click.Context, status: str | None, project_id: str | None, limit: int):
    """Print the evidence log, newest first."""
    config = _load_settings(log_level=ctx.obj.get("log_level"))
    entries = _run(_with_runner(config, lambda runner: runner.evidence()))

    wanted = EvidenceStatus(status) if status else None
    shown = 0
    for entry in entries:
        if wanted is not None and entry.status != wanted:
            continue
        if project_id is not None and entry.project_id != project_id:
            continue
        click.echo(
            f"{entry.timestamp.isoformat()}  {entry.status.value:<9}  {entry.check:<18}  "
            f"{entry.project or '-'}  {entry.details}"
        )
        shown += 1
        if shown >= limit:
            break
    if shown == 0:
        click.echo("No evidence entries found.")


if __name__ == "__main__":
    cli()
