"""Flask CLI commands: ``flask recalculate`` and ``flask init-db``."""

import click
from flask import current_app
from flask.cli import with_appcontext

from . import datastore_pg
from .errors import LeaderboardError
from .recalculate import summarize
from .services import get_recalculator
from .validation import parse_recalc_types


def _print_table(rows):
    headers = ["Race ID", "Type", "Total", "Updated"]
    cells = [[str(r.race_id), r.result_type.value, str(r.total), str(r.updated)] for r in rows]
    widths = [max(len(h), *(len(c[i]) for c in cells)) if cells else len(h) for i, h in enumerate(headers)]
    line = "+".join("-" * (w + 2) for w in widths)
    click.echo(f"+{line}+")
    click.echo("| " + " | ".join(h.ljust(w) for h, w in zip(headers, widths)) + " |")
    click.echo(f"+{line}+")
    for c in cells:
        click.echo("| " + " | ".join(v.ljust(w) for v, w in zip(c, widths)) + " |")
    click.echo(f"+{line}+")


@click.command("recalculate")
@click.option(
    "--type", "result_type",
    type=click.Choice(["individual", "team", "all"]),
    default="all", show_default=True,
    help="Leaderboard to recalculate.",
)
@click.option("--race", "race_id", type=int, default=None, help="Only recalculate this race ID.")
@click.option("--force", is_flag=True, help="Recompute rows that already have points.")
@with_appcontext
def recalculate_command(result_type, race_id, force):
    """Recalculate leaderboard points where points are not yet set."""
    click.echo("Recalculating leaderboard points...")
    click.echo(f"Type: {result_type}")
    click.echo(f"Force: {'Yes' if force else 'No'}")
    if race_id is not None:
        click.echo(f"Race ID: {race_id}")

    recalculator = get_recalculator()
    results = []
    try:
        for rtype in parse_recalc_types(result_type):
            results.extend(recalculator.recalculate(race_id, rtype, force=force))
    except LeaderboardError as exc:
        current_app.logger.error("recalc_failed race_id=%s type=%s error=%s", race_id, result_type, exc)
        raise click.ClickException(str(exc))
    except Exception as exc:  # pylint: disable=broad-except
        current_app.logger.exception("recalc_failed race_id=%s type=%s", race_id, result_type)
        raise click.ClickException(f"Recalculation failed: {exc}")

    click.echo("")
    if results:
        _print_table(results)
    for rtype, agg in summarize(results).items():
        click.echo(f"{rtype.capitalize()}: {agg['updated']}/{agg['total']} updated")
    click.echo("")
    click.echo("Points recalculation complete!")


@click.command("init-db")
@with_appcontext
def init_db_command():
    """Create leaderboard tables and the nullable points columns."""
    datastore_pg.ensure_schema()
    click.echo("Schema ready.")


def register(app):
    app.cli.add_command(recalculate_command)
    app.cli.add_command(init_db_command)
