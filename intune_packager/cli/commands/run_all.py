"""Batch automation command"""

import click

from ..decorators import config_required
from ..utils.output import console, format_batch_result
from ..utils.status import exit_code_for
from ...utils.async_utils import run_async


@click.command(name='run-all')
@click.argument('folders', nargs=-1)
@click.pass_context
@config_required
def run_all(ctx, folders):
    """Process every automation-ready folder, one after another

    With FOLDERS given, only those folders are processed. A failing
    label does not stop the batch; the exit code is 1 when any label
    failed and 2 when authentication failed.
    """
    async def _run():
        async with ctx.obj.open_pipeline() as pipeline:
            with console.status("Processing managed titles..."):
                return await pipeline.run_batch(list(folders) or None)

    batch = run_async(_run())

    if not batch.results:
        console.print("[yellow]No automation-ready folders found[/yellow]")
        return

    format_batch_result(batch)
    ctx.exit(exit_code_for(batch.results))
