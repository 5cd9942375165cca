"""stagediff CLI — Typer application root.

Entry point for the ``stagediff`` console script.  ``init`` and ``commit``
are Typer sub-applications; commands that take positional PATH arguments
are registered as plain ``@cli.command()`` functions so Click parses their
options in any position.
"""
from __future__ import annotations

import logging

import typer

from stagediff._repo import require_repo
from stagediff.commands import commit, init
from stagediff.commands.add import run_add, run_rm
from stagediff.commands.status import run_status
from stagediff.commands.update_index import run_update_index
from stagediff.errors import ExitCode, StagediffError
from stagediff.settings import configure_logging

logger = logging.getLogger(__name__)

cli = typer.Typer(
    name="stagediff",
    help="stagediff — compare HEAD, the staging index and the working tree.",
    no_args_is_help=True,
)


@cli.callback()
def _root() -> None:
    configure_logging()


cli.add_typer(init.app, name="init", help="Initialise a new stagediff repository.")
cli.add_typer(commit.app, name="commit", help="Record the staging index as a commit.")


@cli.command("status", help="Show drift between HEAD, the staging index and the working tree.")
def _status_cmd(
    args: list[str] = typer.Argument(
        None,
        metavar="[REV] [PATHS]...",
        help="Revision to compare against (default HEAD), then paths to limit the comparison to.",
    ),
    rev: str | None = typer.Option(
        None, "--rev", "-r", help="Compare against this commit or branch; all arguments are paths."
    ),
    short: bool = typer.Option(False, "--short", "-s", help="Condensed XY-code output."),
    porcelain: bool = typer.Option(
        False, "--porcelain", help="Machine-readable output (stable for scripting)."
    ),
    as_json: bool = typer.Option(False, "--json", help="Emit every result set as JSON."),
) -> None:
    run_status(
        args=list(args or []),
        revision=rev,
        short=short,
        porcelain=porcelain,
        as_json=as_json,
    )


@cli.command("add", help="Stage file contents into the index.")
def _add_cmd(
    paths: list[str] = typer.Argument(..., help="Files or directories to stage."),
    force: bool = typer.Option(False, "--force", "-f", help="Also stage ignored files."),
) -> None:
    root = require_repo()
    try:
        staged = run_add(root, paths, force=force)
    except StagediffError as exc:
        typer.echo(f"❌ {exc}")
        raise typer.Exit(code=exc.exit_code)
    except OSError as exc:
        typer.echo(f"stagediff add failed: {exc}")
        logger.error("stagediff add error: %s", exc, exc_info=True)
        raise typer.Exit(code=ExitCode.INTERNAL_ERROR)
    for path in staged:
        typer.echo(f"add '{path}'")


@cli.command("rm", help="Remove paths from the index (and the working tree).")
def _rm_cmd(
    paths: list[str] = typer.Argument(..., help="Staged files or directories to remove."),
    cached: bool = typer.Option(
        False, "--cached", help="Only remove from the index; keep the working-tree files."
    ),
) -> None:
    root = require_repo()
    try:
        removed = run_rm(root, paths, cached=cached)
    except StagediffError as exc:
        typer.echo(f"❌ {exc}")
        raise typer.Exit(code=exc.exit_code)
    except OSError as exc:
        typer.echo(f"stagediff rm failed: {exc}")
        logger.error("stagediff rm error: %s", exc, exc_info=True)
        raise typer.Exit(code=ExitCode.INTERNAL_ERROR)
    for path in removed:
        typer.echo(f"rm '{path}'")


@cli.command("update-index", help="Set assume-unchanged / skip-worktree flags on staged paths.")
def _update_index_cmd(
    paths: list[str] = typer.Argument(..., help="Staged files or directories."),
    assume_unchanged: bool | None = typer.Option(
        None,
        "--assume-unchanged/--no-assume-unchanged",
        help="Set or clear the assume-unchanged flag.",
    ),
    skip_worktree: bool | None = typer.Option(
        None,
        "--skip-worktree/--no-skip-worktree",
        help="Set or clear the skip-worktree flag.",
    ),
) -> None:
    root = require_repo()
    try:
        updated = run_update_index(
            root,
            paths,
            assume_unchanged=assume_unchanged,
            skip_worktree=skip_worktree,
        )
    except StagediffError as exc:
        typer.echo(f"❌ {exc}")
        raise typer.Exit(code=exc.exit_code)
    if not updated:
        raise typer.Exit(code=ExitCode.USER_ERROR)


if __name__ == "__main__":
    cli()
