"""CLI entry point: command definitions using Click.

Commands:
    init          Generate a template config file
    validate      Load the config and list its checkers
    check         Evaluate the configured checkers against a submission
    metrics       Print every metric for every class and method
"""

import functools
import json
import sys
from pathlib import Path
from typing import Any

import click

from issue_detector import __version__


# ---------------------------------------------------------------------------
# Helpers shared by all data commands
# ---------------------------------------------------------------------------

def _load_config(ctx: click.Context):
    """Load and validate the config named by --config."""
    from issue_detector.config import load

    obj = ctx.obj
    config = load(obj["config_path"])
    if obj["verbose"]:
        click.echo(
            f"[verbose] Loaded {len(config.checkers)} checker(s) from '{obj['config_path']}'",
            err=True,
        )
    return config


def _read_source(source: str) -> str:
    try:
        return Path(source).read_text(encoding="utf-8-sig")
    except OSError as exc:
        click.echo(f"Cannot read '{source}': {exc}", err=True)
        sys.exit(1)
    except UnicodeDecodeError as exc:
        click.echo(f"Cannot read '{source}': not valid UTF-8 ({exc.reason} at byte {exc.start})", err=True)
        sys.exit(1)


def _emit(text: str, ctx: click.Context) -> None:
    """Write text to stdout or to the file specified by --output."""
    output_path: str | None = ctx.obj["output_path"]
    if output_path:
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(text)
        click.echo(f"Report written to '{output_path}'", err=True)
    else:
        click.echo(text)


def _emit_json(data: Any, ctx: click.Context) -> None:
    indent = 2 if ctx.obj["pretty"] else None
    _emit(json.dumps(data, indent=indent, ensure_ascii=False), ctx)


def _handle_errors(func):
    """Decorator that maps configuration and parse errors to exit code 1."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        from issue_detector.config import ConfigError, InvalidConfigError
        from issue_detector.parser import ParseError

        try:
            return func(*args, **kwargs)
        except ParseError as exc:
            click.echo(f"Parse error: {exc}", err=True)
            sys.exit(1)
        except InvalidConfigError as exc:
            click.echo(f"Invalid checker: {exc}", err=True)
            sys.exit(1)
        except ConfigError as exc:
            click.echo(f"Configuration error: {exc}", err=True)
            sys.exit(1)

    return wrapper


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------

@click.group()
@click.option("--config", "config_path", default="issue-detector.yaml", show_default=True,
              help="Path to the checker configuration (YAML or authoring text).")
@click.option("--output", "output_path", default=None,
              help="Write output to a file instead of stdout.")
@click.option("--pretty", is_flag=True, default=False,
              help="Pretty-print the JSON output.")
@click.option("--verbose", is_flag=True, default=False,
              help="Enable verbose logging.")
@click.version_option(__version__, prog_name="issue-detector")
@click.pass_context
def cli(ctx: click.Context, config_path: str, output_path: str | None,
        pretty: bool, verbose: bool) -> None:
    """Issue detector: rule-based maintainability checks for C# submissions."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["output_path"] = output_path
    ctx.obj["pretty"] = pretty
    ctx.obj["verbose"] = verbose


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------

@cli.command("init")
@click.option("--output", "output_path", default="issue-detector.yaml", show_default=True,
              help="Path where the template config will be written (.yaml or .txt).")
def init_command(output_path: str) -> None:
    """Generate a template checker configuration."""
    from issue_detector.config import ConfigError, generate_template
    try:
        generate_template(output_path)
        click.echo(f"Template written to '{output_path}'.")
        click.echo("Edit it with the snippet ids, metrics and word lists for your exercise.")
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


# ---------------------------------------------------------------------------
# validate
# ---------------------------------------------------------------------------

@cli.command("validate")
@click.pass_context
@_handle_errors
def validate_command(ctx: click.Context) -> None:
    """Load the configuration and list its checkers."""
    from issue_detector.evaluator import CheckerRegistry

    config = _load_config(ctx)
    registry = CheckerRegistry(config.checkers)
    _emit_json({
        "config":        ctx.obj["config_path"],
        "parse_timeout": config.parse_timeout,
        "workers":       config.workers,
        "checkers":      [c.to_dict() for c in registry],
    }, ctx)


# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------

@cli.command("check")
@click.argument("source", type=click.Path(dir_okay=False))
@click.option("--only", "only_ids", multiple=True,
              help="Evaluate only the checker with this id (repeatable).")
@click.option("--format", "output_format", type=click.Choice(["json", "text"]),
              default="json", show_default=True, help="Report format.")
@click.option("--strict", is_flag=True, default=False,
              help="Exit with status 1 when any checker fails.")
@click.pass_context
@_handle_errors
def check_command(ctx: click.Context, source: str, only_ids: tuple[str, ...],
                  output_format: str, strict: bool) -> None:
    """Evaluate the configured checkers against the C# file SOURCE."""
    from issue_detector.evaluator import check_source
    from issue_detector.report import render_text

    config = _load_config(ctx)
    checkers = [config.find_checker(i) for i in only_ids] if only_ids else config.checkers
    text = _read_source(source)

    if ctx.obj["verbose"]:
        click.echo(
            f"[verbose] Evaluating {len(checkers)} checker(s) against '{source}' "
            f"with {config.workers} worker(s)",
            err=True,
        )

    report = check_source(
        text,
        checkers,
        source_name=source,
        parse_timeout=config.parse_timeout,
        workers=config.workers,
    )

    if ctx.obj["verbose"]:
        for verdict in report.skipped:
            click.echo(f"[verbose] Skipped {verdict.checker_id}: {verdict.diagnostic}", err=True)

    if output_format == "text":
        _emit(render_text(report), ctx)
    else:
        _emit_json(report.to_dict(), ctx)

    if strict and not report.passed:
        sys.exit(1)


# ---------------------------------------------------------------------------
# metrics
# ---------------------------------------------------------------------------

@cli.command("metrics")
@click.argument("source", type=click.Path(dir_okay=False))
@click.pass_context
@_handle_errors
def metrics_command(ctx: click.Context, source: str) -> None:
    """Print every metric for every class and method of SOURCE.

    Needs no configuration file; useful for choosing checker thresholds.
    """
    from issue_detector.index import index_source
    from issue_detector.report import build_metrics_report

    if ctx.obj["verbose"]:
        click.echo(f"[verbose] Indexing '{source}'", err=True)

    unit = index_source(_read_source(source), source_name=source)
    _emit_json(build_metrics_report(unit), ctx)
