"""On-demand queue command"""

import click

from ..decorators import config_required
from ..utils.output import console, format_batch_result
from ..utils.status import exit_code_for
from ...constants import DEFAULT_TRIGGER_IDLE_POLLS, DEFAULT_TRIGGER_POLL_INTERVAL
from ...services.trigger_watcher import TriggerWatcher
from ...utils.async_utils import run_async


@click.command()
@click.argument('folders', nargs=-1)
@click.option('--interval', type=click.FloatRange(min=0), default=DEFAULT_TRIGGER_POLL_INTERVAL,
              show_default=True, help='Seconds between queue polls')
@click.option('--idle-polls', type=click.IntRange(min=1), default=DEFAULT_TRIGGER_IDLE_POLLS,
              show_default=True, help='Exit after this many empty polls in a row')
@click.pass_context
@config_required
def ondemand(ctx, folders, interval, idle_polls):
    """Process folders requested through Queue/{folder}.trigger files

    FOLDERS are queued before watching starts. Triggers are handled one
    at a time and deleted afterwards; the command exits once the queue
    has stayed empty for --idle-polls polls.

    Examples:
        # Drain whatever is queued
        intune-packager ondemand

        # Queue one title and process it
        intune-packager ondemand firefox_6A6E8E3B-1C57-4F0C-9C7A-1F1E0F6E2D11
    """
    async def _run():
        async with ctx.obj.open_pipeline() as pipeline:
            watcher = TriggerWatcher(pipeline, poll_interval=interval, max_idle_polls=idle_polls)
            for folder in folders:
                watcher.enqueue(folder)
            with console.status("Watching the on-demand queue..."):
                return await watcher.run()

    batch = run_async(_run())

    if not batch.results:
        console.print("[yellow]No on-demand requests were queued[/yellow]")
        return

    format_batch_result(batch)
    ctx.exit(exit_code_for(batch.results))
