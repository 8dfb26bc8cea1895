"""
Setup Commands
--------------

Catalog initialization and schema application.

Commands:
    - init: Create the catalog tables
    - apply: Create the tables of a schema module and attach validators
"""
import importlib
import sys
from pathlib import Path

import click
from sqlalchemy import MetaData

from omtg.core.logging_manager import handle_cli_error
from omtg.core.exceptions import ConfigurationError, OMTGError
from . import get_db


def load_metadata(target: str) -> MetaData:
    """
    Import a MetaData object from a ``module:attribute`` reference.

    The attribute may be a MetaData or any object carrying a ``metadata``
    attribute (e.g. a declarative base).

    Raises:
        ConfigurationError: If the reference cannot be resolved
    """
    module_name, _, attribute = target.partition(":")
    if not module_name or not attribute:
        raise ConfigurationError(
            f"Expected MODULE:ATTRIBUTE, got '{target}'"
        )
    # Schema modules are resolved from the working directory, like `python -m`
    cwd = str(Path.cwd())
    if cwd not in sys.path:
        sys.path.insert(0, cwd)
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import '{module_name}': {e}") from e

    obj = getattr(module, attribute, None)
    if obj is None:
        raise ConfigurationError(f"Module '{module_name}' has no '{attribute}'")
    metadata = obj if isinstance(obj, MetaData) else getattr(obj, "metadata", None)
    if not isinstance(metadata, MetaData):
        raise ConfigurationError(f"'{target}' is not a MetaData object")
    return metadata


@click.command()
@click.pass_context
def init(ctx):
    """Initialize the catalog tables."""
    try:
        db = get_db(ctx)
        click.echo("🗄️  Initializing OMT-G catalog...")
        db.initialize_catalog()
        click.echo(f"✅ Catalog ready at {db._safe_url()}")

    except OMTGError as e:
        handle_cli_error(ctx, e, "init")


@click.command()
@click.argument("target")
@click.pass_context
def apply(ctx, target):
    """Create the tables declared in TARGET (MODULE:ATTR) and attach validators."""
    try:
        metadata = load_metadata(target)
        db = get_db(ctx)

        click.echo(f"🚀 Applying schema from {target}...")
        classified = db.create_tables(metadata)

        if classified:
            click.echo("\n📐 Geometry columns:")
            for column in classified:
                click.echo(
                    f"  • {column.table}.{column.column}: "
                    f"{column.omtg_class.display_name}"
                )
        else:
            click.echo("  No OMT-G geometry columns found")

        attached = db.attachments()
        click.echo(f"\n✅ {len(attached)} trigger(s) attached")

    except OMTGError as e:
        handle_cli_error(ctx, e, "apply", {"target": target})
