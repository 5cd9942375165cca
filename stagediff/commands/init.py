"""stagediff init — initialise a new repository.

Creates the ``.stage/`` directory tree in the current working directory::

    .stage/
        repo.json            repo_id (UUID), schema_version, created_at
        HEAD                 text pointer → refs/heads/<branch>
        refs/heads/<branch>  empty (no commits yet)
        index.json           empty staging index
        config.toml          [core] [status] defaults

Flags
-----
``--default-branch TEXT``
    Name of the initial branch (default: ``main``).
``--force``
    Re-initialise even if ``.stage/`` already exists.  Preserves the
    existing ``repo_id``, index and config.
"""
from __future__ import annotations

import datetime
import json
import logging
import pathlib
import uuid

import typer

from stagediff._repo import STAGE_DIR
from stagediff.config import DEFAULT_CONFIG_TOML
from stagediff.errors import ExitCode
from stagediff.index import StagingIndex, index_path

logger = logging.getLogger(__name__)

app = typer.Typer()

_SCHEMA_VERSION = "1"


def run_init(cwd: pathlib.Path, *, force: bool = False, default_branch: str = "main") -> str:
    """Create ``.stage/`` under *cwd* and return the repo id.

    Raises ``typer.Exit`` with ``USER_ERROR`` when a repository already
    exists and *force* is not set.
    """
    stage_dir = cwd / STAGE_DIR
    already_exists = stage_dir.is_dir()

    if already_exists and not force:
        typer.echo(
            f"Already a stagediff repository at {cwd}.\n"
            "Use --force to reinitialise."
        )
        raise typer.Exit(code=ExitCode.USER_ERROR)

    existing_repo_id: str | None = None
    if already_exists:
        repo_json_path = stage_dir / "repo.json"
        if repo_json_path.exists():
            try:
                existing_repo_id = json.loads(repo_json_path.read_text()).get("repo_id")
            except (json.JSONDecodeError, OSError):
                logger.warning("⚠️ Corrupt repo.json — generating a fresh repo_id")

    try:
        (stage_dir / "refs" / "heads").mkdir(parents=True, exist_ok=True)

        repo_id = existing_repo_id or str(uuid.uuid4())
        repo_json = {
            "repo_id": repo_id,
            "schema_version": _SCHEMA_VERSION,
            "created_at": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        }
        (stage_dir / "repo.json").write_text(json.dumps(repo_json, indent=2) + "\n")
        (stage_dir / "HEAD").write_text(f"refs/heads/{default_branch}\n")

        ref_file = stage_dir / "refs" / "heads" / default_branch
        if not ref_file.exists():
            ref_file.write_text("")

        config_path = stage_dir / "config.toml"
        if not config_path.exists():
            config_path.write_text(DEFAULT_CONFIG_TOML)

        if not index_path(cwd).exists():
            StagingIndex().save(cwd)
    except OSError as exc:
        typer.echo(f"❌ Cannot initialise repository at {cwd}: {exc}")
        raise typer.Exit(code=ExitCode.INTERNAL_ERROR)

    logger.info("✅ Initialised repository %s at %s", repo_id, cwd)
    return repo_id


@app.callback(invoke_without_command=True)
def init(
    ctx: typer.Context,
    force: bool = typer.Option(
        False,
        "--force",
        help="Re-initialise even if this is already a stagediff repository.",
    ),
    default_branch: str = typer.Option(
        "main",
        "--default-branch",
        metavar="BRANCH",
        help="Name of the initial branch (default: main).",
    ),
) -> None:
    """Initialise a new stagediff repository in the current directory."""
    cwd = pathlib.Path.cwd()
    reinit = (cwd / STAGE_DIR).is_dir()
    run_init(cwd, force=force, default_branch=default_branch)
    verb = "Reinitialised existing" if reinit else "Initialised empty"
    typer.echo(f"{verb} stagediff repository in {cwd / STAGE_DIR}")
