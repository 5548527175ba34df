"""CLI entrypoint for reviewflow."""

import logging
import sys
from datetime import date, datetime
from pathlib import Path

import click
from rich.logging import RichHandler

from . import __version__
from .config import find_config, load_settings
from .models import Actor


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(show_path=False, show_time=False)],
        force=True,
    )


def _parse_attributes(pairs: tuple[str, ...]) -> dict[str, str]:
    attrs: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"Expected KEY=VALUE, got '{pair}'", param_hint="--attr")
        attrs[key.strip()] = value.strip()
    return attrs


def _as_date(value: datetime | None) -> date | None:
    return value.date() if value is not None else None


def actor_options(f):
    """Identity of the caller, as provided by the hosting auth layer."""
    f = click.option("--actor-role", required=True, help="Role of the acting user (e.g. finance, admin)")(f)
    f = click.option("--actor-name", default="", help="Display name recorded in the history")(f)
    f = click.option("--actor-id", required=True, help="Id of the acting user")(f)
    return f


def _actor(actor_id: str, actor_name: str, actor_role: str) -> Actor:
    return Actor(id=actor_id, name=actor_name or actor_id, role=actor_role)


@click.group()
@click.version_option(__version__, prog_name="reviewflow")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to reviewflow.toml (defaults to the nearest one above the working directory)",
)
@click.option(
    "--store",
    type=click.Path(file_okay=False, dir_okay=True, path_type=Path),
    default=None,
    help="Record store directory (overrides config and REVIEWFLOW_STORE)",
)
@click.option("--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, store: Path | None, verbose: bool) -> None:
    """reviewflow - Review lifecycle and audit ledger for business records.

    Create records, move them through their approval workflow, and summarise
    them for dashboards.
    """
    _setup_logging(verbose)
    ctx.ensure_object(dict)

    if config_path is None:
        config_path = find_config(Path.cwd())
    try:
        settings = load_settings(config_path)
    except ValueError as exc:
        raise click.ClickException(f"Invalid config {config_path}: {exc}") from exc
    if store is not None:
        settings.store_dir = store

    ctx.obj["settings"] = settings
    ctx.obj["store"] = settings.store_dir


@cli.command()
@click.argument("record_type")
@click.argument("record_id")
@click.option("--owner", "owner_id", required=True, help="Id of the creating user")
@click.option("--value", "monetary_value", type=float, default=None, help="Monetary value")
@click.option("--code", default=None, help="Account code (e.g. 4310)")
@click.option("--category", default=None, help="Category name, if already known")
@click.option("--due", "due_date", type=click.DateTime(formats=["%Y-%m-%d"]), default=None, help="Due date (YYYY-MM-DD)")
@click.option("--attr", "attrs", multiple=True, metavar="KEY=VALUE", help="Free-form attribute (repeatable)")
@click.pass_context
def create(
    ctx: click.Context,
    record_type: str,
    record_id: str,
    owner_id: str,
    monetary_value: float | None,
    code: str | None,
    category: str | None,
    due_date: datetime | None,
    attrs: tuple[str, ...],
) -> None:
    """Create a Draft record of RECORD_TYPE (trip, report, tender, expenditure)."""
    from .commands.record_cmd import run_create

    exit_code = run_create(
        ctx.obj["store"],
        record_type,
        record_id,
        owner_id,
        monetary_value=monetary_value,
        code=code,
        category=category,
        due_date=_as_date(due_date),
        attributes=_parse_attributes(attrs),
    )
    sys.exit(exit_code)


@cli.command()
@click.argument("record_id")
@click.argument("role")
@click.argument("actor_id")
@click.pass_context
def assign(ctx: click.Context, record_id: str, role: str, actor_id: str) -> None:
    """Bind ROLE on a Draft record to ACTOR_ID."""
    from .commands.record_cmd import run_assign

    sys.exit(run_assign(ctx.obj["store"], record_id, role, actor_id))


@cli.command()
@click.argument("record_id")
@click.argument("status")
@actor_options
@click.option("--comment", "-m", default=None, help="Comment (required for rejections and cancellations)")
@click.option("--json", "output_json", is_flag=True, help="Output the transition event as JSON")
@click.pass_context
def transition(
    ctx: click.Context,
    record_id: str,
    status: str,
    actor_id: str,
    actor_name: str,
    actor_role: str,
    comment: str | None,
    output_json: bool,
) -> None:
    """Move RECORD_ID to STATUS on behalf of an actor."""
    from .commands.record_cmd import run_transition

    exit_code = run_transition(
        ctx.obj["store"],
        record_id,
        status,
        _actor(actor_id, actor_name, actor_role),
        comment=comment,
        output_json=output_json,
        max_attempts=ctx.obj["settings"].max_attempts,
    )
    sys.exit(exit_code)


@cli.command()
@click.argument("record_id")
@actor_options
@click.option("--comment", "-m", default=None, help="Reason for reopening")
@click.pass_context
def reopen(
    ctx: click.Context,
    record_id: str,
    actor_id: str,
    actor_name: str,
    actor_role: str,
    comment: str | None,
) -> None:
    """Send a rejected or cancelled record back to Draft."""
    from .commands.record_cmd import run_reopen

    exit_code = run_reopen(
        ctx.obj["store"],
        record_id,
        _actor(actor_id, actor_name, actor_role),
        comment=comment,
        max_attempts=ctx.obj["settings"].max_attempts,
    )
    sys.exit(exit_code)


@cli.command()
@click.argument("record_id")
@click.option("--json", "output_json", is_flag=True, help="Output the record as JSON")
@click.pass_context
def show(ctx: click.Context, record_id: str, output_json: bool) -> None:
    """Show a record and its history."""
    from .commands.record_cmd import run_show

    sys.exit(run_show(ctx.obj["store"], record_id, output_json=output_json))


@cli.command("list")
@click.option("--type", "record_type", default=None, help="Only records of this type")
@click.option("--status", default=None, help="Only records in this status")
@click.pass_context
def list_cmd(ctx: click.Context, record_type: str | None, status: str | None) -> None:
    """List stored records."""
    from .commands.record_cmd import run_list

    sys.exit(run_list(ctx.obj["store"], record_type=record_type, status=status))


@cli.command()
@click.argument("record_id", required=False)
@click.option("--json", "output_json", is_flag=True, help="Output violations as JSON")
@click.pass_context
def validate(ctx: click.Context, record_id: str | None, output_json: bool) -> None:
    """Check stored histories against the ledger invariants."""
    from .commands.record_cmd import run_validate

    sys.exit(run_validate(ctx.obj["store"], record_id=record_id, output_json=output_json))


@cli.command()
@actor_options
@click.pass_context
def inbox(ctx: click.Context, actor_id: str, actor_name: str, actor_role: str) -> None:
    """Records awaiting the actor's approval."""
    from .commands.record_cmd import run_inbox

    sys.exit(run_inbox(ctx.obj["store"], _actor(actor_id, actor_name, actor_role)))


@cli.command()
@click.option(
    "--group-by",
    type=click.Choice(["status", "category"]),
    default="status",
    help="Grouping key",
)
@click.option("--type", "record_type", default=None, help="Only records of this type")
@click.option("--status", default=None, help="Only records in this status")
@click.option("--attr", "attrs", multiple=True, metavar="KEY=VALUE", help="Attribute filter (repeatable)")
@click.option("--json", "output_json", is_flag=True, help="Output the rollup as JSON")
@click.pass_context
def rollup(
    ctx: click.Context,
    group_by: str,
    record_type: str | None,
    status: str | None,
    attrs: tuple[str, ...],
    output_json: bool,
) -> None:
    """Count and total records for dashboards, with budget health."""
    from .commands.report_cmd import run_rollup

    settings = ctx.obj["settings"]
    exit_code = run_rollup(
        ctx.obj["store"],
        group_by=group_by,
        record_type=record_type,
        status=status,
        attributes=_parse_attributes(attrs),
        budgets=settings.budgets or None,
        output_json=output_json,
    )
    sys.exit(exit_code)


@cli.command()
@click.argument("code")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def classify(ctx: click.Context, code: str, output_json: bool) -> None:
    """Map an account CODE to its category."""
    from .commands.report_cmd import run_classify

    sys.exit(run_classify(code, budgets=ctx.obj["settings"].budgets or None, output_json=output_json))


@cli.command()
@click.option("--today", type=click.DateTime(formats=["%Y-%m-%d"]), default=None, help="Reference date (defaults to today)")
@click.option("--window", "window_days", type=int, default=None, help="Days ahead that count as expiring soon")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def due(ctx: click.Context, today: datetime | None, window_days: int | None, output_json: bool) -> None:
    """Bucket records by due date: expired, expiring soon, valid."""
    from .commands.report_cmd import run_due

    settings = ctx.obj["settings"]
    exit_code = run_due(
        ctx.obj["store"],
        today=_as_date(today) or date.today(),
        window_days=settings.due_window_days if window_days is None else window_days,
        output_json=output_json,
    )
    sys.exit(exit_code)


@cli.command()
@click.argument("record_type", required=False)
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def workflows(record_type: str | None, output_json: bool) -> None:
    """Show the transition graph for each record type."""
    from .commands.report_cmd import run_workflows

    sys.exit(run_workflows(record_type, output_json=output_json))


if __name__ == "__main__":
    cli()
