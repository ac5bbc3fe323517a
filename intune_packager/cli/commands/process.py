"""Single label processing command"""

import click

from ..decorators import config_required
from ..utils.output import console, format_label_result
from ..utils.progress import ProgressManager, upload_progress_callback
from ..utils.status import exit_code_for
from ...utils.async_utils import run_async


@click.command()
@click.argument('folder')
@click.option('--notify/--no-notify', default=None,
              help='Send a Teams notification for this run (default: per configuration)')
@click.pass_context
@config_required
def process(ctx, folder, notify):
    """Process one managed title folder

    FOLDER is the label_trackingID folder below ManagedTitles. The label
    is resolved, the artifact downloaded or taken from the cache, built,
    uploaded when its version is not in Intune yet, and older versions
    are retired.

    Examples:
        # Process one title
        intune-packager process firefox_6A6E8E3B-1C57-4F0C-9C7A-1F1E0F6E2D11

        # Process without posting to Teams
        intune-packager process firefox_6A6E8E3B-1C57-4F0C-9C7A-1F1E0F6E2D11 --no-notify
    """
    async def _run():
        async with ctx.obj.open_pipeline() as pipeline:
            with ProgressManager(console).file_progress() as progress:
                callback = upload_progress_callback(progress, folder)
                return await pipeline.process(folder, progress=callback, notify=notify)

    result = run_async(_run())
    format_label_result(result)
    ctx.exit(exit_code_for([result]))
