import logging
from pathlib import Path

import click

from accessprof.capture.store import LogStore
from accessprof.errors import AccessProfError
from accessprof.generation.formatter import render_html, render_table
from accessprof.storage.logfile import truncate

_LOG_FILE = click.Path(dir_okay=False, path_type=Path)


@click.group()
@click.version_option(package_name="accessprof")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def cli(verbose):
    """Aggregate request statistics recorded by accessprof."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)


@cli.command()
@click.argument("log_file", envvar="ACCESSPROF_LOG_FILE", type=_LOG_FILE)
@click.option(
    "--agg", "patterns", multiple=True, metavar="PATTERN",
    help="Regular expression grouping matching paths; repeat for precedence order",
)
@click.option("--html", "as_html", is_flag=True, help="Render an HTML page instead of a table")
@click.option("--report-path", default="/accessprof", show_default=True, help="Reset/form target in HTML output")
@click.option("--output", type=click.Path(dir_okay=False, path_type=Path), help="Write to a file instead of stdout")
def report(log_file, patterns, as_html, report_path, output):
    """Print a report of the observations in LOG_FILE."""
    if not log_file.exists():
        raise click.ClickException(f"log file {log_file} does not exist")

    store = LogStore(log_file=log_file)
    try:
        result = store.report(list(patterns))
    except AccessProfError as e:
        raise click.ClickException(str(e)) from e

    if as_html:
        text = render_html(result, report_path)
    else:
        since = result.since.isoformat() if result.since else "-"
        text = f"{result.total_count} request(s) since {since}\n" + render_table(result)

    if output is None:
        click.echo(text, nl=False)
        return

    output.write_text(text, encoding="utf-8")
    click.echo(f"Wrote {output} ({len(result.segments)} segment(s), {result.total_count} request(s))")


@cli.command()
@click.argument("log_file", envvar="ACCESSPROF_LOG_FILE", type=_LOG_FILE)
@click.confirmation_option(prompt="Discard all recorded history?")
def clear(log_file):
    """Truncate LOG_FILE, discarding its recorded history."""
    try:
        truncate(log_file)
    except AccessProfError as e:
        raise click.ClickException(str(e)) from e
    click.echo(f"Cleared {log_file}")
