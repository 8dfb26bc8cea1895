"""
Catalog Commands
----------------

Inspect what the guard knows about the database.

Commands:
    - columns: List classified geometry columns
    - triggers: List attached triggers
    - domains: List the recognized column domains
"""
import click

from omtg.core.logging_manager import handle_cli_error
from omtg.core.exceptions import OMTGError
from omtg.topology.classes import OMTGClass
from omtg.topology.rules import get_rule
from . import get_db


@click.command()
@click.pass_context
def columns(ctx):
    """List classified geometry columns."""
    try:
        db = get_db(ctx)
        recorded = db.geometry_columns()

        if not recorded:
            click.echo("No geometry columns recorded")
            return

        click.echo(f"📐 Geometry columns ({len(recorded)}):")
        for column in recorded:
            click.echo(
                f"  • {column.table}.{column.column}  "
                f"{column.omtg_class.domain}"
            )

    except OMTGError as e:
        handle_cli_error(ctx, e, "columns")


@click.command()
@click.pass_context
def triggers(ctx):
    """List attached triggers."""
    try:
        db = get_db(ctx)
        records = db.attachment_records()

        if not records:
            click.echo("No triggers attached")
            return

        click.echo(f"⚙️  Triggers ({len(records)}):")
        for record in records:
            line = f"  • {record.hook_id}  [{record.rule}]"
            if record.is_cross_table:
                line += f"  -> {record.secondary_table}.{record.secondary_column}"
                if record.predicate:
                    line += f" ({record.predicate})"
            click.echo(line)

    except OMTGError as e:
        handle_cli_error(ctx, e, "triggers")


@click.command()
def domains():
    """List the recognized column domains."""
    click.echo("Recognized domains:")
    for omtg_class in OMTGClass:
        rule = get_rule(omtg_class)
        status = rule.description if rule else "no validator"
        click.echo(f"  • {omtg_class.domain:<24} {status}")
