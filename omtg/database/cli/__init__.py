#!/usr/bin/env python3
"""
OMT-G Integrity Guard CLI
-------------------------

Modular command-line interface for the guarded database.

This module provides the main CLI group and shared context setup
for all guard commands.

Command Structure:
    - Setup (init, apply)
    - Catalog (columns, triggers, domains)
    - Validation (validate)

Usage:
    # Get general help
    omtgdb --help

    # Create the tables of a schema module and attach validators
    omtgdb --db-url sqlite:///data/transport.db apply examples.transportation:metadata

    # Re-check committed data
    omtgdb validate --table bus_route_segment
"""
import click
import logging
from pathlib import Path

from omtg.core.config import load_config
from omtg.core.logging_manager import OMTGLogger
from omtg.core.paths import CONFIG_PATH, LOG_DIR
from omtg.database.manager import OMTGDatabase


@click.group()
@click.option(
    "--db-url",
    type=str,
    default=None,
    help="SQLAlchemy database URL (overrides the configuration file)",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=str(CONFIG_PATH),
    help="Path to YAML configuration file",
)
@click.option(
    "--log-dir",
    type=click.Path(),
    default=str(LOG_DIR),
    help="Path to log directory",
)
@click.option(
    "--verbose",
    is_flag=True,
    help="Show detailed errors and tracebacks",
)
@click.pass_context
def cli(ctx, db_url, config_path, log_dir, verbose):
    """OMT-G Integrity Guard CLI"""

    # Suppress Alembic INFO logging by default
    logging.getLogger("alembic").setLevel(logging.WARNING)

    ctx.ensure_object(dict)
    ctx.obj["db_url"] = db_url
    ctx.obj["config_path"] = Path(config_path)
    ctx.obj["log_dir"] = Path(log_dir)
    ctx.obj["verbose"] = verbose
    ctx.obj["logger"] = OMTGLogger(Path(log_dir), component_name="cli")


def get_db(ctx) -> OMTGDatabase:
    """Get or create database instance from context."""
    if "db" not in ctx.obj:
        config = load_config(ctx.obj["config_path"])
        db = OMTGDatabase(
            db_url=ctx.obj["db_url"],
            config=config,
            log_dir=ctx.obj["log_dir"],
        )
        db.restore()
        ctx.obj["db"] = db
        ctx.call_on_close(db.dispose)
    return ctx.obj["db"]


# Import and register command modules
# These imports must come after CLI group definition
from .setup import init, apply  # noqa: E402
from .catalog import columns, triggers, domains  # noqa: E402
from .validate import validate  # noqa: E402

cli.add_command(init)
cli.add_command(apply)
cli.add_command(columns)
cli.add_command(triggers)
cli.add_command(domains)
cli.add_command(validate)


if __name__ == "__main__":
    cli(obj={})
