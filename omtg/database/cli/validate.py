"""
Validation Commands
-------------------

On-demand re-check of committed data.

Commands:
    - validate: Run attached validators and report violations
"""
import click

from omtg.core.logging_manager import handle_cli_error
from omtg.core.exceptions import OMTGError
from . import get_db


@click.command()
@click.option("--table", "-t", default=None, help="Only validate this table's triggers")
@click.pass_context
def validate(ctx, table):
    """Validate committed data against attached triggers."""
    try:
        db = get_db(ctx)
        click.echo("🔍 Validating...")
        report = db.validate(table)

        if not report.results:
            click.echo("No triggers attached")
            return

        for hook_id, violations in report.results.items():
            if not violations:
                click.echo(f"  ✓ {hook_id}")
                continue
            click.echo(f"  ✗ {hook_id}")
            for violation in violations:
                click.echo(f"      {violation.message} {violation.detail}")

        if report.is_valid:
            click.echo("\n✅ All constraints hold")
        else:
            click.echo(
                f"\n❌ {len(report.violations)} violation(s) in "
                f"{len(report.failed_hooks)} trigger(s)",
                err=True,
            )
            ctx.exit(1)

    except OMTGError as e:
        handle_cli_error(ctx, e, "validate")
